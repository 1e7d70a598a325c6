"""Rule-based intent detection.

Pure functions only: nothing here touches the database or the network, so the
fast path can classify an utterance without any I/O.
"""
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from app.chatbot.entities import extract_entities
from app.core.constants import (
    COMPLEX_LENGTH_THRESHOLD,
    COMPLEXITY_MARKERS,
    GREETING_WORDS,
    HELP_WORDS,
    PROJECT_KEYWORDS,
    PROPERTY_KEYWORDS,
    SERVICE_KEYWORDS,
)

NON_LETTERS = re.compile(r"[^a-z]+")

MARKER_PATTERNS = [
    re.compile(r"\b" + re.escape(marker) + r"\b") for marker in COMPLEXITY_MARKERS
]

CONFIDENCE = {
    "property_with_bedrooms": 0.9,
    "property": 0.8,
    "service": 0.8,
    "project": 0.7,
    "general": 0.6,
    "empty": 0.5,
}


@dataclass
class Intent:
    type: str = "general"
    action: str = "info"
    entities: Dict[str, Any] = field(default_factory=dict)
    confidence: float = CONFIDENCE["empty"]
    original_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def is_property(self) -> bool:
        return self.type == "property"

    def copy(self) -> "Intent":
        return Intent(
            type=self.type,
            action=self.action,
            entities=dict(self.entities),
            confidence=self.confidence,
            original_text=self.original_text,
        )


def _count_hits(text: str, keywords) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def _classify(scan: str) -> str:
    if "bhk" in scan:
        return "property"

    scores = [
        ("property", _count_hits(scan, PROPERTY_KEYWORDS)),
        ("service", _count_hits(scan, SERVICE_KEYWORDS)),
        ("project", _count_hits(scan, PROJECT_KEYWORDS)),
    ]
    best_type, best_score = "general", 0
    # strict > keeps the earlier entry on ties
    for query_type, score in scores:
        if score > best_score:
            best_type, best_score = query_type, score
    return best_type


def detect_intent(text: str, default_location: str = "") -> Intent:
    lowered = (text or "").lower()
    intent = Intent(original_text=text or "")

    if not lowered.strip():
        if default_location:
            intent.entities["location"] = default_location
        return intent

    scan = NON_LETTERS.sub(" ", lowered)
    intent.type = _classify(scan)
    intent.entities = extract_entities(lowered)

    if intent.type == "property":
        if "rent" in scan:
            intent.action = "rent"
            intent.entities["listing_type"] = "rent"
        elif "sale" in scan or "buy" in scan:
            intent.action = "sale"
            intent.entities["listing_type"] = "sale"
        else:
            intent.action = "search"
        if "bedrooms" in intent.entities:
            intent.confidence = CONFIDENCE["property_with_bedrooms"]
        else:
            intent.confidence = CONFIDENCE["property"]
    elif intent.type == "service":
        intent.action = "book"
        intent.confidence = CONFIDENCE["service"]
    elif intent.type == "project":
        intent.action = "info"
        intent.confidence = CONFIDENCE["project"]
    else:
        intent.action = "info"
        intent.confidence = CONFIDENCE["general"]

    if "location" not in intent.entities and default_location:
        intent.entities["location"] = default_location

    return intent


def is_complex(text: str) -> bool:
    """Whether an utterance should skip the fast path."""
    text = text or ""
    if len(text) > COMPLEX_LENGTH_THRESHOLD:
        return True
    lowered = text.lower()
    hits = sum(1 for pattern in MARKER_PATTERNS if pattern.search(lowered))
    return hits >= 2


def _contains_phrase(text: str, phrases) -> bool:
    lowered = NON_LETTERS.sub(" ", (text or "").lower())
    padded = f" {' '.join(lowered.split())} "
    return any(f" {phrase} " in padded for phrase in phrases)


def is_greeting(text: str) -> bool:
    return _contains_phrase(text, GREETING_WORDS)


def is_help_request(text: str) -> bool:
    return _contains_phrase(text, HELP_WORDS)
