import asyncio
import logging

from app.core.config import settings
from app.core.db import SessionLocal
from app.services.listing_state import InvalidStatusTransition
from app.services.persistence import SqlPersistenceGateway
from app.services.publish_service import ListingNotFound, PublishOutcome, enqueue_publish, run_publish
from app.services.retry import MAX_PUBLISH_RETRIES, compute_backoff_seconds, should_retry
from app.services.wiring import PublisherBundle, build_publisher
from worker.celery_app import celery

log = logging.getLogger(__name__)

# One loop and one publisher per worker process: breakers and the token cache
# must survive across tasks.
_loop: asyncio.AbstractEventLoop | None = None
_bundle: PublisherBundle | None = None


def _run(coro):
    global _loop
    if _loop is None:
        _loop = asyncio.new_event_loop()
    return _loop.run_until_complete(coro)


def _publisher_bundle() -> PublisherBundle:
    global _bundle
    if _bundle is None:
        _bundle = build_publisher(settings)
    return _bundle


async def _publish_listing(listing_id: str, *, requeue: bool) -> PublishOutcome | None:
    bundle = _publisher_bundle()
    async with SessionLocal() as db:
        gateway = SqlPersistenceGateway(db)
        try:
            if requeue:
                # retry of a failed attempt: failed -> queued, no rate limit
                queued = await enqueue_publish(gateway, listing_id)
                if queued.status != "queued":
                    await db.commit()
                    return queued
            outcome = await run_publish(gateway, bundle.publisher, listing_id)
        except ListingNotFound:
            log.warning("publish task: listing %s not found", listing_id)
            return None
        except InvalidStatusTransition as e:
            # another task already picked it up
            log.info("publish task: skipping %s: %s", listing_id, e)
            await db.rollback()
            return None
        await db.commit()
    return outcome


@celery.task(name="worker.tasks.publish_listing", bind=True, max_retries=MAX_PUBLISH_RETRIES)
def publish_listing_task(self, listing_id: str) -> dict | None:
    outcome = _run(_publish_listing(listing_id, requeue=self.request.retries > 0))
    if outcome is None:
        return None

    if not outcome.ok and outcome.retryable and should_retry(outcome.error_code, self.request.retries):
        countdown = compute_backoff_seconds(self.request.retries + 1)
        log.info(
            "publish task: listing %s failed with %s, retry %d in %ds",
            listing_id, outcome.error_code, self.request.retries + 1, countdown,
        )
        raise self.retry(countdown=countdown)

    return {
        "listing_id": outcome.listing_id,
        "status": outcome.status,
        "error_code": outcome.error_code,
        "correlation_id": outcome.correlation_id,
    }
