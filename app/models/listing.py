from datetime import datetime
from decimal import Decimal

from sqlalchemy import Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from app.core.ids import LISTING_PREFIX, gen_id

from app.models.base import Base, JSONType, TimestampMixin


class Listing(TimestampMixin, Base):
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id(LISTING_PREFIX))
    user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    # "property" | "land"
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="property")
    # "sale" | "rent"
    purpose: Mapped[str] = mapped_column(String(10), nullable=False, default="sale")

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")

    bedrooms: Mapped[int | None] = mapped_column(nullable=True)
    bathrooms: Mapped[Decimal | None] = mapped_column(Numeric(4, 1), nullable=True)
    covered_area: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)  # m2
    land_size: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)  # m2
    year_built: Mapped[int | None] = mapped_column(nullable=True)

    address: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    coordinates: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # {latitude, longitude}
    # kind-specific extras (building density, energy class, video url, ...)
    attributes: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    region: Mapped[str | None] = mapped_column(String(80), nullable=True)
    # directory ids: name -> id or list of ids
    relationships: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    image_urls: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    owner_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    owner_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title_deed_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    submitter_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitter_external_id: Mapped[str | None] = mapped_column(String(80), nullable=True)

    # draft | queued | uploading | uploaded | failed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    reference_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    external_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # set by the dispatcher when it hands a queued listing to the worker
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
