from dataclasses import dataclass, field
from typing import Any, Dict, List

from app.chatbot.intent import is_greeting, is_help_request
from app.core.constants import LISTINGS_IN_REPLY
from app.utils.message_templates import count_properties, describe_filters, listing_card

APOLOGY_MESSAGE = (
    "Sorry, I'm having trouble answering that right now 🤖\n"
    "Please try again in a moment, or rephrase your question."
)

FIELD_PROMPTS = {
    "location": "📍 Which city or area are you looking in?",
    "bedrooms": "🛏️ How many bedrooms (BHK) do you need?",
    "budget": "💰 What is your budget?",
}


@dataclass
class TemplateData:
    listings: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    filters: Dict[str, Any] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    platform_name: str = "TreesIndia"


def welcome(platform_name="TreesIndia"):
    return (
        f"Hello 👋\n"
        f"Welcome to {platform_name} 🏡\n\n"
        "I can help you with:\n"
        "• Finding properties to rent or buy\n"
        "• Booking home services\n"
        "• Exploring construction projects\n\n"
        "What are you looking for today?"
    )


def greeting(platform_name="TreesIndia"):
    return (
        f"Hello 👋 Welcome to {platform_name}!\n\n"
        "Tell me what you need, for example:\n"
        "• 2BHK for rent in Siliguri\n"
        "• Book a cleaning service\n"
        "• Construction projects near me"
    )


def help_text(platform_name="TreesIndia"):
    return (
        f"Sure 😊 Here's what I can do on {platform_name}:\n"
        "• 🏠 Search properties by city, BHK and budget\n"
        "• 🔧 Book cleaning, plumbing, electrical and more\n"
        "• 🏗️ Find construction and renovation projects\n\n"
        "Try: \"3BHK rent in Siliguri under 20k\""
    )


def menu(platform_name="TreesIndia"):
    return (
        f"I'm the {platform_name} assistant 🤖\n\n"
        "I can help you with:\n"
        "1️⃣ Properties for rent or sale\n"
        "2️⃣ Home services\n"
        "3️⃣ Construction projects\n\n"
        "What would you like to do?"
    )


def llm_unavailable():
    return (
        "Our smart assistant is unavailable right now 🤖\n"
        "You can still search with simple queries like \"2BHK rent in Siliguri\"."
    )


def ask_missing(missing):
    lines = ["I can help you find the right property 🏠", "Just tell me a bit more:"]
    lines += [FIELD_PROMPTS[key] for key in missing if key in FIELD_PROMPTS]
    return "\n".join(lines)


def no_results(filters):
    described = describe_filters(filters)
    if described:
        return (
            f"❌ No properties found {described}.\n"
            "Try widening your budget or searching a nearby area."
        )
    return "❌ No properties found. Try a different search."


def property_results(data: TemplateData):
    shown = data.listings[:LISTINGS_IN_REPLY]
    described = describe_filters(data.filters)
    header = f"🏠 Found {count_properties(data.total)}"
    if described:
        header += f" {described}"
    parts = [header + ":"]
    parts += [listing_card(i, listing) for i, listing in enumerate(shown, start=1)]
    if data.total > LISTINGS_IN_REPLY:
        parts.append(f"… and {data.total - LISTINGS_IN_REPLY} more")
    return "\n\n".join(parts)


def service_catalogue(category=None):
    if category:
        opening = f"🔧 Looking for {category} services? We can help."
    else:
        opening = "🔧 We offer a range of home services."
    return (
        f"{opening}\n\n"
        "Available services:\n"
        "• Cleaning\n"
        "• Plumbing\n"
        "• Electrical\n"
        "• Painting\n"
        "• Carpentry\n"
        "• Maintenance & repairs\n\n"
        "Tell me your location and preferred date to book."
    )


def project_catalogue():
    return (
        "🏗️ We list construction and renovation projects.\n\n"
        "• Residential construction\n"
        "• Commercial projects\n"
        "• Renovation & remodelling\n\n"
        "Tell me the city and type of project you're interested in."
    )


def render(intent, data: TemplateData) -> str:
    if intent.type == "property":
        if data.missing:
            return ask_missing(data.missing)
        if data.total == 0:
            return no_results(data.filters)
        return property_results(data)

    if intent.type == "service":
        return service_catalogue(intent.entities.get("service_category"))

    if intent.type == "project":
        return project_catalogue()

    if is_greeting(intent.original_text):
        return greeting(data.platform_name)
    if is_help_request(intent.original_text):
        return help_text(data.platform_name)
    return menu(data.platform_name)
