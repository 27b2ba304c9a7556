"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from listing_ingest.facts import FACT_RULES, UNKNOWN, Fact, parse_fact, to_wire
from listing_ingest.settings import settings

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UploadedImage(BaseModel):
    """Asset descriptor returned by the image upload endpoint."""
    key: str
    url: str
    thumbnail_small_url: str
    thumbnail_medium_url: str
    thumbnail_large_url: str
    width: int
    height: int
    byte_size: int
    mime_type: str
    display_order: int = 0
    is_primary: bool = False
    original_name: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class UploadResponse(BaseModel):
    success: bool = True
    images: List[UploadedImage]
    count: int


class ImageAssetIn(BaseModel):
    """Pre-uploaded asset descriptor submitted with a listing."""
    key: str = Field(min_length=1)
    url: str = Field(min_length=1)
    thumbnail_small_url: str = Field(min_length=1)
    thumbnail_medium_url: str = Field(min_length=1)
    thumbnail_large_url: str = Field(min_length=1)
    display_order: int
    is_primary: bool
    width: int = Field(ge=0)
    height: int = Field(ge=0)
    byte_size: int = Field(ge=0)
    mime_type: str = Field(min_length=1)
    caption: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ListingSubmission(BaseModel):
    """A complete listing submission: scalar fields plus asset descriptors."""
    title: str = Field(min_length=10, max_length=200)
    description: str = Field(min_length=50)
    street_address: str = Field(min_length=5, max_length=255)
    city: str = Field(min_length=2, max_length=100)
    state: str = Field(min_length=2, max_length=2)
    zipcode: str = Field(min_length=5, max_length=10)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    property_type: str = Field(min_length=1)
    listing_type: Literal["sale", "rent"]
    list_price: float = Field(ge=0)
    hoa_fees: Optional[float] = Field(default=None, ge=0)
    property_tax: Optional[float] = Field(default=None, ge=0)

    # -1 means unknown for every fact
    bedrooms: Fact
    bathrooms: Fact
    square_feet: Fact
    lot_size: Fact
    lot_size_unit: Optional[str] = None
    year_built: Fact
    stories: Fact = UNKNOWN
    garage_spaces: Fact = UNKNOWN

    contact_name: str = Field(min_length=1, max_length=100)
    contact_email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    contact_phone: str = Field(min_length=1, max_length=20)

    features: Optional[Dict[str, Any]] = None
    images: List[ImageAssetIn] = Field(
        min_length=settings.MIN_IMAGES_PER_LISTING,
        max_length=settings.MAX_IMAGES_PER_LISTING,
    )
    # Moderation statuses are never accepted here
    status: Optional[Literal["draft", "pending"]] = None

    class Config:
        arbitrary_types_allowed = True

    @field_validator(*FACT_RULES, mode="before")
    @classmethod
    def _parse_fact(cls, value, info: ValidationInfo):
        return parse_fact(info.field_name, value)

    def listing_columns(self) -> Dict[str, Any]:
        """Scalar fields as record-store column values."""
        columns = self.model_dump(exclude={"images", "status", *FACT_RULES})
        for name in FACT_RULES:
            columns[name] = getattr(self, name).to_column()
        columns["features"] = self.features or {}
        columns["status"] = self.status or "pending"
        return columns


class ImageAssetOut(BaseModel):
    id: str
    listing_id: str
    object_key: str
    url: str
    thumbnail_small_url: str
    thumbnail_medium_url: str
    thumbnail_large_url: str
    display_order: int
    is_primary: bool
    width: int
    height: int
    byte_size: int
    mime_type: str
    caption: Optional[str] = None

    class Config:
        from_attributes = True


class ListingOut(BaseModel):
    id: str
    owner_id: str
    status: str
    title: str
    description: str
    street_address: str
    city: str
    state: str
    zipcode: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    property_type: str
    listing_type: str
    list_price: float
    hoa_fees: Optional[float] = None
    property_tax: Optional[float] = None
    bedrooms: int
    bathrooms: float
    square_feet: int
    lot_size: float
    lot_size_unit: Optional[str] = None
    year_built: int
    stories: int
    garage_spaces: int
    contact_name: str
    contact_email: str
    contact_phone: str
    features: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    images: List[ImageAssetOut] = []

    class Config:
        from_attributes = True

    @field_validator(*FACT_RULES, mode="before")
    @classmethod
    def _render_fact(cls, value):
        return to_wire(value)


class ListingResponse(BaseModel):
    success: bool = True
    listing: ListingOut


class ListingsResponse(BaseModel):
    listings: List[ListingOut]
    count: int


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[List[FieldError]] = None
