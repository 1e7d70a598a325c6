"""Prompt assembly for the LLM path.

Every builder here is a pure function returning a list of ``PromptMessage``
records, so a prompt can be compared in a test without touching the network.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.chatbot.intent import Intent
from app.core.constants import ACTIONS, ENTITY_KEYS, LISTING_TYPES, PROPERTY_TYPES, QUERY_TYPES
from app.utils.message_templates import count_properties, format_location, format_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptMessage:
    role: str  # system | user | assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def system_preamble(platform_name: str) -> str:
    return (
        f"You are {platform_name} Assistant, a helpful assistant for the {platform_name} "
        "marketplace. The platform offers:\n\n"
        "1. Property listings: rental and sale properties (residential and commercial)\n"
        "2. Home services: cleaning, plumbing, electrical, maintenance and more\n"
        "3. Construction projects: residential, commercial and infrastructure\n\n"
        "Guidelines:\n"
        "- Be helpful, accurate and concise\n"
        "- Use the listing data you are given; never invent listings or prices\n"
        "- Ask for missing details (location, budget, bedrooms) when needed\n"
        "- End with a helpful next step\n"
        "- Keep replies under 200 words"
    )


def _format_map(values: Dict[str, Any], empty: str) -> str:
    if not values:
        return empty
    return ", ".join(f"{key}: {value}" for key, value in values.items())


def summarize_listings(listings: List[Dict[str, Any]], total: int, limit: int) -> str:
    if not listings:
        return "No properties found matching the criteria."
    lines = [f"Found {count_properties(total)}:"]
    for listing in listings[:limit]:
        lines.append(
            f"- {listing.get('title', 'Untitled')} in {format_location(listing)} "
            f"for {format_price(listing)}"
        )
    return "\n".join(lines)


def instruction_block(intent: Intent, location: str) -> str:
    entities = _format_map(intent.entities, "None specified")
    if intent.type == "property":
        return (
            "You are helping the user find properties.\n"
            f"- Intent: {intent.action}\n"
            f"- Location context: {location or 'unknown'}\n"
            f"- Entities: {entities}\n\n"
            "Mention key features (bedrooms, location, price), suggest ways to "
            "refine the search, and offer to contact property owners."
        )
    if intent.type == "service":
        return (
            "You are helping the user find and book home services.\n"
            f"- Service category: {intent.entities.get('service_category') or 'unspecified'}\n"
            f"- Location context: {location or 'unknown'}\n"
            f"- Entities: {entities}\n\n"
            "Explain how booking works and ask for the location if it is missing."
        )
    if intent.type == "project":
        return (
            "You are helping the user explore construction or infrastructure projects.\n"
            f"- Location context: {location or 'unknown'}\n"
            f"- Entities: {entities}\n\n"
            "Explain how to get project details and connect with contractors."
        )
    return (
        "You are answering a general question about the platform.\n"
        f"- Location context: {location or 'unknown'}\n\n"
        "Answer directly and guide the user to the right section of the platform."
    )


def build_parse_prompt(text: str, location: str, context_fields: Dict[str, Any]) -> List[PromptMessage]:
    instructions = (
        "Analyze the user query and extract structured information.\n\n"
        "Only classify as property/service/project if clearly related:\n"
        "- property: rent, sale, buy, property, house, apartment, BHK, bedroom\n"
        "- service: service, book, cleaning, plumbing, electrical, maintenance\n"
        "- project: project, construction, build, contractor\n"
        "- general: everything else\n\n"
        f"User location: \"{location or ''}\"\n"
        f"Session context: {json.dumps(context_fields, sort_keys=True)}\n\n"
        "Respond ONLY with a JSON object:\n"
        "{\n"
        '  "query_type": "property|service|project|general",\n'
        '  "intent": "rent|sale|book|info|search",\n'
        '  "entities": {"location": "...", "property_type": "residential|commercial", '
        '"listing_type": "rent|sale", "bedrooms": 2, "budget": 15000, "service_category": "..."},\n'
        '  "confidence": 0.0\n'
        "}"
    )
    return [
        PromptMessage("system", instructions),
        PromptMessage("user", text),
    ]


def build_reply_prompt(
    *,
    text: str,
    intent: Intent,
    history,
    listings: List[Dict[str, Any]],
    total: int,
    location: str = "",
    platform_name: str = "TreesIndia",
    max_listings: int = 3,
) -> List[PromptMessage]:
    """Compose the reply prompt.

    Order: system preamble, prior turns (oldest first), the per-type
    instruction block, the data summary, then the user's text last.
    """
    messages = [PromptMessage("system", system_preamble(platform_name))]
    for turn in history:
        role = turn.role if turn.role in ("user", "assistant") else "user"
        messages.append(PromptMessage(role, turn.content))
    messages.append(PromptMessage("system", instruction_block(intent, location)))
    if intent.type == "property":
        messages.append(
            PromptMessage("system", "Available property data:\n" + summarize_listings(listings, total, max_listings))
        )
    messages.append(PromptMessage("user", text))
    return messages


def build_suggestions_prompt(intent: Intent, location: str) -> List[PromptMessage]:
    content = (
        "Generate 3-5 short, actionable follow-up suggestions for the user.\n\n"
        f"- Query type: {intent.type}\n"
        f"- Intent: {intent.action}\n"
        f"- Location: {location or 'unknown'}\n"
        f"- Entities: {_format_map(intent.entities, 'None specified')}\n\n"
        'Respond ONLY with a JSON array of strings, e.g. ["suggestion 1", "suggestion 2"]'
    )
    return [PromptMessage("system", content)]


def _clean_entities(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    entities: Dict[str, Any] = {}
    for key in ENTITY_KEYS:
        value = raw.get(key)
        if value in (None, ""):
            continue
        if key in ("bedrooms", "budget"):
            try:
                value = int(float(value))
            except (TypeError, ValueError):
                continue
            if key == "bedrooms" and not 1 <= value <= 10:
                continue
            if key == "budget" and value <= 0:
                continue
        elif not isinstance(value, str):
            continue
        elif key == "listing_type" and value not in LISTING_TYPES:
            continue
        elif key == "property_type" and value not in PROPERTY_TYPES:
            continue
        elif key == "location":
            value = value.strip().title()
        entities[key] = value
    return entities


def intent_from_llm(payload: Any, fallback: Intent) -> Intent:
    """Build an Intent from the structured-parse JSON, keeping rule results for gaps."""
    if not isinstance(payload, dict):
        logger.info("Structured parse returned %s, using rule-based intent", type(payload).__name__)
        return fallback.copy()

    intent = fallback.copy()
    query_type = payload.get("query_type")
    if query_type in QUERY_TYPES:
        intent.type = query_type

    action = payload.get("intent")
    if action in ACTIONS:
        intent.action = action

    entities = dict(fallback.entities)
    entities.update(_clean_entities(payload.get("entities")))
    intent.entities = entities

    if intent.type == "property" and intent.action not in ("rent", "sale", "search"):
        intent.action = entities.get("listing_type", "search")

    confidence: Optional[float]
    try:
        confidence = float(payload.get("confidence"))
    except (TypeError, ValueError):
        confidence = None
    if confidence is not None:
        intent.confidence = min(1.0, max(0.0, confidence))
    return intent
