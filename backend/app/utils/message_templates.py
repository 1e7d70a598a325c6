from app.core.constants import DESCRIPTION_PREVIEW_CHARS


def format_amount(value):
    amount = int(round(float(value)))
    return f"₹{amount:,}"


def format_price(listing):
    if listing.get("monthly_rent"):
        return f"{format_amount(listing['monthly_rent'])}/month"
    if listing.get("sale_price"):
        return format_amount(listing["sale_price"])
    return "Price on inquiry"


def format_location(listing):
    parts = [listing.get("city"), listing.get("state")]
    return ", ".join(p for p in parts if p) or "Location on request"


def format_rooms(listing):
    bedrooms = listing.get("bedrooms")
    bathrooms = listing.get("bathrooms")
    parts = []
    if bedrooms:
        parts.append(f"{bedrooms} BHK")
    if bathrooms:
        parts.append(f"{bathrooms} Bath")
    return " | ".join(parts)


def count_properties(total):
    return f"{total} property" if total == 1 else f"{total} properties"


def truncate(text, limit=DESCRIPTION_PREVIEW_CHARS):
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def listing_card(index, listing):
    lines = [
        f"{index}. *{listing.get('title', 'Untitled')}*",
        f"📍 {format_location(listing)}",
        f"💰 {format_price(listing)}",
    ]
    rooms = format_rooms(listing)
    if rooms:
        lines.append(f"🛏️ {rooms}")
    description = truncate(listing.get("description"))
    if description:
        lines.append(f"📝 {description}")
    return "\n".join(lines)


def describe_filters(filters):
    parts = []
    if filters.get("bedrooms"):
        parts.append(f"{filters['bedrooms']} BHK")
    if filters.get("listing_type") == "rent":
        parts.append("for rent")
    elif filters.get("listing_type") == "sale":
        parts.append("for sale")
    if filters.get("city"):
        parts.append(f"in {filters['city']}")
    if filters.get("max_price"):
        parts.append(f"under {format_amount(filters['max_price'])}")
    return " ".join(parts)
