import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.constants import (
    MAX_LISTINGS,
    PROPERTY_GENERAL_SUGGESTIONS,
    PROPERTY_RENT_SUGGESTIONS,
    PROPERTY_SALE_SUGGESTIONS,
)
from app.core.errors import ListingStoreError
from app.models.property import Property

logger = logging.getLogger(__name__)

REQUIRED_PROPERTY_INFO = ("location", "bedrooms", "budget")


@dataclass
class SearchResult:
    listings: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    applied_filters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "properties": self.listings,
            "total": self.total,
            "filters": self.applied_filters,
        }


def listing_to_dict(p: Property) -> Dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description or "",
        "monthly_rent": p.monthly_rent,
        "sale_price": p.sale_price,
        "bedrooms": p.bedrooms,
        "bathrooms": p.bathrooms,
        "area": p.area,
        "city": p.city,
        "state": p.state,
        "address": p.address,
        "listing_type": p.listing_type,
        "property_type": p.property_type,
        "images": list(p.images or []),
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def _pick(key, entities, context):
    value = entities.get(key)
    if value is None and context:
        value = context.get(key)
    return value


def property_filters(intent, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Resolve the filter set for a property search; entities override context."""
    entities = intent.entities
    context = context or {}
    filters: Dict[str, Any] = {}

    listing_type = _pick("listing_type", entities, context)
    if listing_type in ("rent", "sale"):
        filters["listing_type"] = listing_type

    bedrooms = _pick("bedrooms", entities, context)
    if bedrooms is not None:
        filters["bedrooms"] = int(bedrooms)

    filters["property_type"] = _pick("property_type", entities, context) or "residential"

    city = entities.get("location") or context.get("location") or context.get("city")
    if city:
        filters["city"] = city

    budget = _pick("budget", entities, context)
    if budget is not None:
        filters["max_price"] = int(budget)

    return filters


def search_properties(db: Session, intent, context: Optional[Dict[str, Any]] = None) -> SearchResult:
    filters = property_filters(intent, context)

    query = db.query(Property).filter(
        Property.is_approved.is_(True),
        Property.status == "available",
    )

    if "listing_type" in filters:
        query = query.filter(Property.listing_type == filters["listing_type"])
    if "bedrooms" in filters:
        query = query.filter(Property.bedrooms == filters["bedrooms"])
    query = query.filter(Property.property_type == filters["property_type"])
    if "city" in filters:
        query = query.filter(Property.city.ilike(f"%{filters['city']}%"))

    # price column depends on what the user is after
    if "max_price" in filters:
        action = intent.action if intent.action in ("rent", "sale") else filters.get("listing_type")
        if action == "rent":
            query = query.filter(Property.monthly_rent <= filters["max_price"])
        elif action == "sale":
            query = query.filter(Property.sale_price <= filters["max_price"])

    try:
        rows = query.order_by(Property.created_at.desc(), Property.id.desc()).limit(MAX_LISTINGS).all()
    except SQLAlchemyError as exc:
        logger.exception("Listing search failed with filters %s", filters)
        raise ListingStoreError(filters=filters) from exc

    listings = [listing_to_dict(p) for p in rows]
    logger.debug("Listing search %s returned %d rows", filters, len(listings))
    return SearchResult(listings=listings, total=len(listings), applied_filters=filters)


def search_services(db: Session, intent, context: Optional[Dict[str, Any]] = None) -> SearchResult:
    filters = {}
    category = _pick("service_category", intent.entities, context or {})
    if category:
        filters["category"] = category
    location = _pick("location", intent.entities, context or {})
    if location:
        filters["city"] = location
    return SearchResult(applied_filters=filters)


def search_projects(db: Session, intent, context: Optional[Dict[str, Any]] = None) -> SearchResult:
    filters = {}
    location = _pick("location", intent.entities, context or {})
    if location:
        filters["city"] = location
    return SearchResult(applied_filters=filters)


SEARCHERS = {
    "property": search_properties,
    "service": search_services,
    "project": search_projects,
}


def search(db: Session, intent, context: Optional[Dict[str, Any]] = None) -> SearchResult:
    searcher = SEARCHERS.get(intent.type)
    if searcher is None:
        return SearchResult()
    return searcher(db, intent, context)


def missing(intent) -> List[str]:
    if intent.type != "property":
        return []
    return [key for key in REQUIRED_PROPERTY_INFO if intent.entities.get(key) in (None, "")]


def property_suggestions(intent) -> List[str]:
    if intent.action == "rent":
        seeds = PROPERTY_RENT_SUGGESTIONS
    elif intent.action == "sale":
        seeds = PROPERTY_SALE_SUGGESTIONS
    else:
        seeds = []
    return list(seeds) + list(PROPERTY_GENERAL_SUGGESTIONS)
