"""SQLAlchemy async models."""
import uuid

from sqlalchemy import (
    JSON, BigInteger, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from listing_ingest.db import Base

LISTING_STATUSES = ("draft", "pending", "approved", "rejected", "sold")


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class Listing(Base):
    """A property listing submitted by an owner."""
    __tablename__ = "listings"

    id = Column(String(40), primary_key=True, default=lambda: gen_id("lst"))
    owner_id = Column(String, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    street_address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(2), nullable=False)
    zipcode = Column(String(10), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    property_type = Column(String, nullable=False)
    listing_type = Column(String(10), nullable=False)
    list_price = Column(Float, nullable=False)
    hoa_fees = Column(Float, nullable=True)
    property_tax = Column(Float, nullable=True)

    # NULL means unknown
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Float, nullable=True)
    square_feet = Column(Integer, nullable=True)
    lot_size = Column(Float, nullable=True)
    lot_size_unit = Column(String(20), nullable=True)
    year_built = Column(Integer, nullable=True)
    stories = Column(Integer, nullable=True)
    garage_spaces = Column(Integer, nullable=True)

    contact_name = Column(String(100), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(20), nullable=False)

    features = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    images = relationship(
        "ListingImage",
        back_populates="listing",
        cascade="all, delete-orphan",
        order_by="ListingImage.display_order",
        passive_deletes=True,
    )


class ListingImage(Base):
    """One stored image asset (primary rendition plus three thumbnails)."""
    __tablename__ = "listing_images"

    id = Column(String(40), primary_key=True, default=lambda: gen_id("img"))
    listing_id = Column(String(40), ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    object_key = Column(String(512), nullable=False, unique=True)
    url = Column(String, nullable=False)
    thumbnail_small_url = Column(String, nullable=False)
    thumbnail_medium_url = Column(String, nullable=False)
    thumbnail_large_url = Column(String, nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_primary = Column(Boolean, nullable=False, default=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    byte_size = Column(BigInteger, nullable=False)
    mime_type = Column(String(50), nullable=False)
    caption = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    listing = relationship("Listing", back_populates="images")

    __table_args__ = (
        Index("idx_listing_image_order", "listing_id", "display_order"),
    )


class AuditLog(Base):
    """Append-only record of listing activity."""
    __tablename__ = "audit_logs"

    id = Column(String(40), primary_key=True, default=lambda: gen_id("aud"))
    owner_id = Column(String, nullable=True, index=True)
    action = Column(String(120), nullable=False)
    target_type = Column(String(120), nullable=True)
    target_id = Column(String(200), nullable=True)
    detail = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PendingObjectDeletion(Base):
    """Object key whose delete failed and must be retried by the sweep."""
    __tablename__ = "pending_object_deletions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    object_key = Column(String(512), nullable=False, index=True)
    reason = Column(String(120), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)
