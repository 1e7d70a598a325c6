"""Typed session context.

Sessions persist their context as a JSON map. ``SessionContext`` is the typed
view over that map: the known keys are validated fields and anything else is
kept verbatim under ``extensions``.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.constants import LISTING_TYPES, PROPERTY_TYPES

logger = logging.getLogger(__name__)

# Entity keys a property follow-up inherits from the previous turns
CARRIED_ENTITIES = ("bedrooms", "budget", "location", "listing_type")

# Keys the structured-parse prompt is allowed to see
PROMPT_FIELDS = (
    "location",
    "city",
    "bedrooms",
    "budget",
    "listing_type",
    "property_type",
    "service_category",
)


class SessionContext(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    location: Optional[str] = None
    city: Optional[str] = None
    bedrooms: Optional[int] = Field(default=None, ge=1, le=10)
    budget: Optional[int] = Field(default=None, gt=0)
    listing_type: Optional[str] = None
    property_type: Optional[str] = None
    service_category: Optional[str] = None

    extensions: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def known_fields(cls):
        return [name for name in cls.model_fields if name != "extensions"]

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "SessionContext":
        ctx = cls()
        ctx.merge(raw or {})
        return ctx

    def to_dict(self) -> Dict[str, Any]:
        data = {
            name: getattr(self, name)
            for name in self.known_fields()
            if getattr(self, name) is not None
        }
        if self.extensions:
            data["extensions"] = dict(self.extensions)
        return data

    def merge(self, raw: Dict[str, Any]) -> "SessionContext":
        """Fold an untyped map into this context.

        Known keys are validated one at a time so a single bad value does not
        discard the rest of the update.
        """
        known = set(self.known_fields())
        for key, value in (raw or {}).items():
            if key == "extensions" and isinstance(value, dict):
                self.extensions.update(value)
                continue
            if key not in known:
                self.extensions[key] = value
                continue
            if value is None or value == "":
                continue
            try:
                setattr(self, key, value)
            except ValidationError:
                logger.warning("Dropping context key %s with invalid value %r", key, value)
                continue
        self._normalize()
        return self

    def _normalize(self):
        if self.listing_type and self.listing_type not in LISTING_TYPES:
            logger.warning("Dropping unknown listing_type %r", self.listing_type)
            self.listing_type = None
        if self.property_type and self.property_type not in PROPERTY_TYPES:
            logger.warning("Dropping unknown property_type %r", self.property_type)
            self.property_type = None

    def apply_intent(self, intent) -> "SessionContext":
        """Record the entities of a turn; the turn's intent is the authority."""
        entities = intent.entities
        update = {key: entities.get(key) for key in PROMPT_FIELDS if entities.get(key) is not None}
        if "location" in update:
            update.setdefault("city", update["location"])
        return self.merge(update)

    def fill_intent(self, intent):
        """Carry unset property filters from earlier turns into ``intent``."""
        for key in CARRIED_ENTITIES:
            if key in intent.entities:
                continue
            value = getattr(self, key)
            if value is None and key == "location":
                value = self.city
            if value is not None:
                intent.entities[key] = value
        if intent.action == "search" and intent.entities.get("listing_type") in LISTING_TYPES:
            intent.action = intent.entities["listing_type"]
        return intent

    def prompt_fields(self) -> Dict[str, Any]:
        return {
            key: getattr(self, key)
            for key in PROMPT_FIELDS
            if getattr(self, key) is not None
        }
