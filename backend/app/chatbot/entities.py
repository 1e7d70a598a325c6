"""Regex-level entity extraction over lowercased utterances.

Every extractor is independent and returns ``None`` when its signal is absent.
"""
import re
from typing import Any, Dict, Optional

from app.core.constants import INDIAN_CITIES, SERVICE_CATEGORIES

BEDROOM_PATTERN = re.compile(r"(\d+)\s*(bhk|bedrooms?|beds?)\b")

# (pattern, multiplier applied when the bare number is < 1000)
BUDGET_PATTERNS = [
    (re.compile(r"(\d+)\s*k\b"), 1000),
    (re.compile(r"(\d+)\s*thousand"), 1000),
    (re.compile(r"under\s*(\d+)\s*(k?)"), None),
    (re.compile(r"max\s*(\d+)\s*(k?)"), None),
    (re.compile(r"upto\s*(\d+)\s*(k?)"), None),
    (re.compile(r"(\d{4,6})\b"), 1),
]

MIN_BEDROOMS = 1
MAX_BEDROOMS = 10


def extract_bedrooms(text: str) -> Optional[int]:
    match = BEDROOM_PATTERN.search(text.lower())
    if not match:
        return None
    count = int(match.group(1))
    if MIN_BEDROOMS <= count <= MAX_BEDROOMS:
        return count
    return None


def extract_budget(text: str) -> Optional[int]:
    text = text.lower()
    for pattern, multiplier in BUDGET_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        amount = int(match.group(1))
        if amount <= 0:
            return None
        if multiplier is None:
            # under/max/upto carry an optional k suffix
            multiplier = 1000 if match.group(2) else 1
        if amount < 1000:
            amount *= multiplier
        return amount
    return None


def extract_service_category(text: str) -> Optional[str]:
    text = text.lower()
    for category, keywords in SERVICE_CATEGORIES:
        if any(keyword in text for keyword in keywords):
            return category
    return None


def extract_location(text: str) -> Optional[str]:
    text = text.lower()
    for city in INDIAN_CITIES:
        if city in text:
            return city.title()
    return None


def extract_entities(text: str) -> Dict[str, Any]:
    """Run every extractor and keep the signals that were found."""
    found = {
        "bedrooms": extract_bedrooms(text),
        "budget": extract_budget(text),
        "location": extract_location(text),
        "service_category": extract_service_category(text),
    }
    return {key: value for key, value in found.items() if value is not None}
