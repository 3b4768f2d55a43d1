from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.listing import Listing
from app.models.upload_attempt import UploadAttempt
from app.services.listing_state import InvalidStatusTransition, ensure_transition

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptRecord:
    listing_id: str
    attempt_number: int
    status: str  # success/failed/timeout/rate_limited
    duration_ms: int
    error_message: str | None = None
    error_code: str | None = None
    raw_response: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class StatusUpdate:
    id: str
    status: str
    external_id: str | None = None
    external_url: str | None = None
    published_at: datetime | None = None
    reference_id: str | None = None


@runtime_checkable
class PersistenceGateway(Protocol):
    """
    What the publication glue needs from storage.
    """

    async def get_listing(self, listing_id: str) -> Listing | None:
        ...

    async def next_attempt_number(self, listing_id: str) -> int:
        ...

    async def record_attempt(self, attempt: AttemptRecord) -> None:
        ...

    async def update_status(self, change: StatusUpdate) -> None:
        """
        Must reject transitions outside draft -> queued -> uploading -> uploaded|failed
        (and failed -> queued), including ones lost to a concurrent writer.
        """
        ...

    async def commit(self) -> None:
        ...

    async def list_attempts(self, listing_id: str) -> list[UploadAttempt]:
        ...


class SqlPersistenceGateway:
    """SQLAlchemy implementation. The caller owns the session; run_publish commits through it."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_listing(self, listing_id: str) -> Listing | None:
        stmt = select(Listing).where(Listing.id == listing_id).execution_options(populate_existing=True)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def next_attempt_number(self, listing_id: str) -> int:
        current = (await self.db.execute(
            select(func.max(UploadAttempt.attempt_number)).where(UploadAttempt.listing_id == listing_id)
        )).scalar_one_or_none()
        return (current or 0) + 1

    async def record_attempt(self, attempt: AttemptRecord) -> None:
        self.db.add(UploadAttempt(
            listing_id=attempt.listing_id,
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            error_code=attempt.error_code,
            error_message=attempt.error_message,
            raw_response=attempt.raw_response,
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            duration_ms=attempt.duration_ms,
        ))
        await self.db.flush()

    async def update_status(self, change: StatusUpdate) -> None:
        listing = await self.get_listing(change.id)
        if listing is None:
            raise LookupError(f"Listing {change.id} not found")

        current = listing.status
        ensure_transition(listing.id, current, change.status)

        values: dict[str, Any] = {"status": change.status}
        if change.status == "queued":
            values["dispatched_at"] = None
        if change.external_id is not None:
            values["external_id"] = change.external_id
        if change.external_url is not None:
            values["external_url"] = change.external_url
        if change.published_at is not None:
            values["published_at"] = change.published_at
        if change.reference_id is not None:
            values["reference_id"] = change.reference_id

        # compare-and-set on the status we read
        result = await self.db.execute(
            update(Listing)
            .where(Listing.id == listing.id, Listing.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # another session moved it first
            await self.db.refresh(listing)
            raise InvalidStatusTransition(listing.id, listing.status, change.status)

        await self.db.refresh(listing)
        log.info("listing %s: %s -> %s", listing.id, current, change.status)

    async def commit(self) -> None:
        await self.db.commit()

    async def list_attempts(self, listing_id: str) -> list[UploadAttempt]:
        rows = (await self.db.execute(
            select(UploadAttempt)
            .where(UploadAttempt.listing_id == listing_id)
            .order_by(UploadAttempt.attempt_number.asc())
        )).scalars().all()
        return list(rows)
