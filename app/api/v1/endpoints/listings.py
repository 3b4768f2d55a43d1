from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_publisher_bundle, get_rate_limiter
from app.core.config import settings
from app.core.db import get_db
from app.schemas.listing import PublishOut, UploadAttemptOut
from app.services.listing_state import InvalidStatusTransition
from app.services.persistence import SqlPersistenceGateway
from app.services.publish_service import (
    ListingNotFound,
    PublishOutcome,
    enqueue_publish,
    publish_listing,
)
from app.services.rate_limit import TokenRateLimiter
from app.services.wiring import PublisherBundle

router = APIRouter()


def _publish_out(outcome: PublishOutcome) -> PublishOut:
    return PublishOut(
        listing_id=outcome.listing_id,
        status=outcome.status,
        ok=outcome.ok,
        correlation_id=outcome.correlation_id,
        message=outcome.message,
        attempt_number=outcome.attempt_number,
        error_code=outcome.error_code,
        external_id=outcome.external_id,
        external_url=outcome.external_url,
    )


@router.post("/listings/{listing_id}/publish", response_model=PublishOut, status_code=202)
async def publish(
    listing_id: str,
    response: Response,
    wait: bool = False,
    db: AsyncSession = Depends(get_db),
    bundle: PublisherBundle = Depends(get_publisher_bundle),
    rate_limiter: TokenRateLimiter | None = Depends(get_rate_limiter),
) -> PublishOut:
    gateway = SqlPersistenceGateway(db)
    limits = {
        "rate_limiter": rate_limiter,
        "rate_limit": settings.publish_rate_limit,
        "rate_window_seconds": settings.publish_rate_window_seconds,
    }
    try:
        if wait:
            outcome = await publish_listing(gateway, bundle.publisher, listing_id, **limits)
        else:
            outcome = await enqueue_publish(gateway, listing_id, **limits)
    except ListingNotFound:
        raise HTTPException(status_code=404, detail="Listing not found")
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

    await db.commit()

    if outcome.error_code == "RATE_LIMITED" and outcome.status != "failed":
        response.status_code = 429
    elif wait or outcome.status == "uploaded":
        response.status_code = 200
    return _publish_out(outcome)


@router.get("/listings/{listing_id}/attempts", response_model=list[UploadAttemptOut])
async def list_attempts(listing_id: str, db: AsyncSession = Depends(get_db)) -> list[UploadAttemptOut]:
    gateway = SqlPersistenceGateway(db)
    if await gateway.get_listing(listing_id) is None:
        raise HTTPException(status_code=404, detail="Listing not found")

    rows = await gateway.list_attempts(listing_id)
    return [
        UploadAttemptOut(
            id=r.id,
            listing_id=r.listing_id,
            attempt_number=r.attempt_number,
            status=r.status,
            error_code=r.error_code,
            error_message=r.error_message,
            duration_ms=r.duration_ms,
            started_at=r.started_at,
            completed_at=r.completed_at,
        )
        for r in rows
    ]
