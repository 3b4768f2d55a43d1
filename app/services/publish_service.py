from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from opentelemetry import trace
from pydantic import ValidationError

from app.core.ids import new_correlation_id
from app.destinations.base import PublishResult
from app.models.listing import Listing
from app.schemas.listing import ListingPublishInput, RelationshipIds
from app.services.errors import attempt_status_for, user_message
from app.services.listing_state import is_publishable
from app.services.persistence import AttemptRecord, PersistenceGateway, StatusUpdate
from app.services.publisher import ListingPublisher
from app.services.rate_limit import TokenRateLimiter
from app.services.redaction import redact_payload

log = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class PublishOutcome:
    listing_id: str
    status: str
    ok: bool
    correlation_id: str
    message: str
    attempt_number: int | None = None
    error_code: str | None = None
    retryable: bool = False
    external_id: str | None = None
    external_url: str | None = None


class ListingNotFound(LookupError):
    def __init__(self, listing_id: str):
        super().__init__(f"Listing {listing_id} not found")
        self.listing_id = listing_id


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_publish_input(listing: Listing) -> ListingPublishInput:
    return ListingPublishInput(
        id=listing.id,
        kind=listing.kind,
        purpose=listing.purpose,
        title=listing.title,
        description=listing.description or "",
        price=listing.price,
        currency=listing.currency or "EUR",
        bedrooms=listing.bedrooms,
        bathrooms=listing.bathrooms,
        covered_area=listing.covered_area,
        land_size=listing.land_size,
        year_built=listing.year_built,
        address=listing.address,
        coordinates=listing.coordinates,
        attributes=listing.attributes or {},
        relationships=RelationshipIds.model_validate(listing.relationships or {}),
        image_urls=list(listing.image_urls or []),
        reference_id=listing.reference_id,
        owner_phone=listing.owner_phone,
        owner_email=listing.owner_email,
        title_deed_number=listing.title_deed_number,
        region=listing.region,
        submitter_email=listing.submitter_email,
        submitter_external_id=listing.submitter_external_id,
    )


def _current(listing: Listing, correlation_id: str, message: str) -> PublishOutcome:
    return PublishOutcome(
        listing_id=listing.id,
        status=listing.status,
        ok=listing.status == "uploaded",
        correlation_id=correlation_id,
        message=message,
        external_id=listing.external_id,
        external_url=listing.external_url,
    )


async def _require_listing(gateway: PersistenceGateway, listing_id: str) -> Listing:
    listing = await gateway.get_listing(listing_id)
    if listing is None:
        raise ListingNotFound(listing_id)
    return listing


async def enqueue_publish(
    gateway: PersistenceGateway,
    listing_id: str,
    *,
    rate_limiter: TokenRateLimiter | None = None,
    rate_limit: int = 10,
    rate_window_seconds: int = 3600,
) -> PublishOutcome:
    """
    draft/failed -> queued. An uploaded listing returns its existing result and
    a listing already in flight is left alone.
    """
    correlation_id = new_correlation_id()
    listing = await _require_listing(gateway, listing_id)

    if listing.status == "uploaded":
        return _current(listing, correlation_id, f"Listing already published: {listing.external_url}")
    if not is_publishable(listing.status):
        return _current(listing, correlation_id, f"Listing is already {listing.status}")

    if rate_limiter is not None:
        owner = listing.user_id or listing.submitter_email or listing.id
        rl = await rate_limiter.allow(key=f"publish:{owner}", limit=rate_limit, window_seconds=rate_window_seconds)
        if not rl.allowed:
            attempt_number = await gateway.next_attempt_number(listing.id)
            now = _now()
            await gateway.record_attempt(AttemptRecord(
                listing_id=listing.id,
                attempt_number=attempt_number,
                status="rate_limited",
                duration_ms=0,
                error_code="RATE_LIMITED",
                error_message=f"Publish limit of {rate_limit} per {rate_window_seconds}s reached, resets in {rl.reset_seconds}s",
                started_at=now,
                completed_at=now,
            ))
            log.warning("publish: listing %s rate limited for %s", listing.id, owner)
            return PublishOutcome(
                listing_id=listing.id,
                status=listing.status,
                ok=False,
                correlation_id=correlation_id,
                message=user_message("RATE_LIMITED", correlation_id),
                attempt_number=attempt_number,
                error_code="RATE_LIMITED",
                retryable=True,
            )

    await gateway.update_status(StatusUpdate(id=listing.id, status="queued"))
    return PublishOutcome(
        listing_id=listing.id,
        status="queued",
        ok=False,
        correlation_id=correlation_id,
        message=f"Listing queued for publishing. (ref {correlation_id})",
    )


def _invalid_input_result(error: ValidationError) -> PublishResult:
    problems = error.errors(include_url=False, include_context=False, include_input=False)
    message = "; ".join(
        f"{'.'.join(str(p) for p in problem['loc'])}: {problem['msg']}" for problem in problems
    )
    return PublishResult(
        ok=False,
        retryable=False,
        error_code="VALIDATION_ERROR",
        error_message=f"Stored listing is not publishable: {message}",
        detail={"validation_errors": problems},
    )


async def _finish(
    gateway: PersistenceGateway,
    listing: Listing,
    result: PublishResult,
    *,
    correlation_id: str,
    started_at: datetime,
    duration_ms: int,
) -> PublishOutcome:
    completed_at = _now()
    error_code = None if result.ok else (result.error_code or "NETWORK_ERROR")
    attempt_number = await gateway.next_attempt_number(listing.id)
    detail = result.detail or {}
    await gateway.record_attempt(AttemptRecord(
        listing_id=listing.id,
        attempt_number=attempt_number,
        status=attempt_status_for(error_code),
        duration_ms=duration_ms,
        error_code=error_code,
        error_message=result.error_message,
        raw_response=redact_payload(detail),
        started_at=started_at,
        completed_at=completed_at,
    ))

    if result.ok:
        await gateway.update_status(StatusUpdate(
            id=listing.id,
            status="uploaded",
            external_id=result.external_id,
            external_url=result.external_url,
            published_at=completed_at,
            reference_id=detail.get("reference_id"),
        ))
        await gateway.commit()
        log.info("publish: listing %s attempt %d uploaded in %dms", listing.id, attempt_number, duration_ms)
        return PublishOutcome(
            listing_id=listing.id,
            status="uploaded",
            ok=True,
            correlation_id=correlation_id,
            message=f"Listing published: {result.external_url} (ref {correlation_id})",
            attempt_number=attempt_number,
            external_id=result.external_id,
            external_url=result.external_url,
        )

    await gateway.update_status(StatusUpdate(
        id=listing.id,
        status="failed",
        reference_id=detail.get("reference_id"),
    ))
    await gateway.commit()
    log.warning(
        "publish: listing %s attempt %d failed code=%s ref=%s",
        listing.id, attempt_number, error_code, correlation_id,
    )
    return PublishOutcome(
        listing_id=listing.id,
        status="failed",
        ok=False,
        correlation_id=correlation_id,
        message=user_message(error_code, correlation_id),
        attempt_number=attempt_number,
        error_code=error_code,
        retryable=result.retryable,
    )


async def run_publish(
    gateway: PersistenceGateway,
    publisher: ListingPublisher,
    listing_id: str,
    *,
    correlation_id: str | None = None,
) -> PublishOutcome:
    """
    queued -> uploading -> uploaded|failed, in two transactions: the claim is
    committed before the first upstream call, the attempt and final status after
    the last one. Unexpected errors are recorded as INTERNAL_ERROR, then re-raised.
    """
    correlation_id = correlation_id or new_correlation_id()
    listing = await _require_listing(gateway, listing_id)
    if listing.status == "uploaded":
        return _current(listing, correlation_id, f"Listing already published: {listing.external_url}")

    # rejects anything that is not queued, including a listing another session just claimed
    await gateway.update_status(StatusUpdate(id=listing.id, status="uploading"))
    await gateway.commit()

    started_at = _now()
    t0 = time.perf_counter()

    def elapsed_ms() -> int:
        return int((time.perf_counter() - t0) * 1000)

    with tracer.start_as_current_span("listing.publish") as span:
        span.set_attribute("listing.id", listing.id)
        span.set_attribute("listing.kind", listing.kind)
        span.set_attribute("correlation.id", correlation_id)
        try:
            result = await publisher.publish(to_publish_input(listing))
        except ValidationError as e:
            log.warning("publish: listing %s has %d invalid stored fields", listing.id, e.error_count())
            result = _invalid_input_result(e)
        except Exception as e:
            log.exception("publish: listing %s crashed ref=%s", listing.id, correlation_id)
            crashed = PublishResult(
                ok=False,
                retryable=False,
                error_code="INTERNAL_ERROR",
                error_message=f"{type(e).__name__}: {e}",
            )
            await _finish(
                gateway, listing, crashed,
                correlation_id=correlation_id, started_at=started_at, duration_ms=elapsed_ms(),
            )
            raise
        if not result.ok:
            span.set_attribute("publish.error_code", result.error_code or "")

    return await _finish(
        gateway, listing, result,
        correlation_id=correlation_id, started_at=started_at, duration_ms=elapsed_ms(),
    )


async def publish_listing(
    gateway: PersistenceGateway,
    publisher: ListingPublisher,
    listing_id: str,
    *,
    rate_limiter: TokenRateLimiter | None = None,
    rate_limit: int = 10,
    rate_window_seconds: int = 3600,
) -> PublishOutcome:
    """Enqueue and run inline, for callers that wait for the result."""
    queued = await enqueue_publish(
        gateway,
        listing_id,
        rate_limiter=rate_limiter,
        rate_limit=rate_limit,
        rate_window_seconds=rate_window_seconds,
    )
    if queued.status != "queued":
        return queued
    return await run_publish(gateway, publisher, listing_id, correlation_id=queued.correlation_id)
