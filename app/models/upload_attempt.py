from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from app.core.ids import ATTEMPT_PREFIX, gen_id

from app.models.base import Base, JSONType


class UploadAttempt(Base):
    __tablename__ = "listing_upload_attempts"
    __table_args__ = (
        UniqueConstraint("listing_id", "attempt_number", name="uq_upload_attempt_number"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id(ATTEMPT_PREFIX))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, index=True)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success/failed/timeout/rate_limited
    error_code: Mapped[str | None] = mapped_column(String(80), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_response: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # redacted snapshot

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
