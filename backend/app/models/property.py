from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    Text,
)

from app.database.base import Base
from app.utils.clock import utcnow


class Property(Base):
    """Read model of the marketplace listings table."""

    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    monthly_rent = Column(Float, nullable=True)
    sale_price = Column(Float, nullable=True)

    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Integer, nullable=True)
    area = Column(Float, nullable=True)

    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=True)
    address = Column(String(255), nullable=True)

    listing_type = Column(String(10), nullable=False)  # rent | sale
    property_type = Column(String(20), default="residential")  # residential | commercial
    images = Column(JSON, default=list)

    status = Column(String(20), default="available")
    is_approved = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow, index=True)
