from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class RelationshipIds(BaseModel):
    """
    Directory identifiers resolved by the caller. Values are forwarded only when
    they are syntactically valid UUIDs; anything else is dropped and logged.
    """
    location_id: Any = None
    listing_type_id: Any = None
    property_type_id: Any = None
    property_status_id: Any = None
    title_deed_id: Any = None
    price_modifier_id: Any = None
    land_type_id: Any = None

    indoor_feature_ids: list[Any] = Field(default_factory=list)
    outdoor_feature_ids: list[Any] = Field(default_factory=list)
    view_ids: list[Any] = Field(default_factory=list)
    infrastructure_ids: list[Any] = Field(default_factory=list)


class ListingPublishInput(BaseModel):
    id: str
    kind: Literal["property", "land"] = "property"
    purpose: Literal["sale", "rent"] = "sale"

    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    price: Decimal | int | float | str | None = None
    currency: str = Field(default="EUR", min_length=3, max_length=3)

    bedrooms: Decimal | int | float | str | None = None
    bathrooms: Decimal | int | float | str | None = None
    covered_area: Decimal | int | float | str | None = None
    land_size: Decimal | int | float | str | None = None
    year_built: int | str | None = None

    address: dict[str, Any] | None = None
    coordinates: Coordinates | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    relationships: RelationshipIds = Field(default_factory=RelationshipIds)
    image_urls: list[str] = Field(default_factory=list)

    # reference id inputs
    reference_id: str | None = None
    owner_phone: str | None = None
    owner_email: str | None = None
    title_deed_number: str | None = None

    # reviewer assignment inputs
    region: str | None = None
    submitter_email: str | None = None
    submitter_external_id: str | None = None


class PublishOut(BaseModel):
    listing_id: str
    status: str
    ok: bool
    correlation_id: str
    message: str
    attempt_number: int | None = None
    error_code: str | None = None
    external_id: str | None = None
    external_url: str | None = None


class UploadAttemptOut(BaseModel):
    id: str
    listing_id: str
    attempt_number: int
    status: str
    error_code: str | None
    error_message: str | None
    duration_ms: int | None
    started_at: datetime | None
    completed_at: datetime | None
