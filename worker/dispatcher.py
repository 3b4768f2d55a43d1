import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select, update

from app.core.db import SessionLocal
from app.models.listing import Listing
from worker.celery_app import celery


log = logging.getLogger(__name__)

POLL_SECONDS = 2
BATCH_SIZE = 100
# a queued listing whose task never started is handed out again after this long
REDISPATCH_AFTER = timedelta(minutes=10)


async def _tick() -> int:
    now = datetime.now(timezone.utc)
    async with SessionLocal() as db:
        stmt = (
            select(Listing.id)
            .where(
                Listing.status == "queued",
                or_(Listing.dispatched_at.is_(None), Listing.dispatched_at <= now - REDISPATCH_AFTER),
            )
            .order_by(Listing.updated_at.asc())
            .with_for_update(skip_locked=True)
            .limit(BATCH_SIZE)
        )
        ids = (await db.execute(stmt)).scalars().all()
        if not ids:
            await db.commit()
            return 0

        await db.execute(update(Listing).where(Listing.id.in_(ids)).values(dispatched_at=now))
        await db.commit()

    log.info("tick: enqueueing %d listings", len(ids))
    for listing_id in ids:
        celery.send_task("worker.tasks.publish_listing", args=[listing_id], queue="publish")

    return len(ids)


async def main():
    celery.connection().ensure_connection(max_retries=3)

    log.info("dispatcher: started")
    while True:
        try:
            await _tick()
        except Exception:
            log.exception("dispatcher: tick crashed")
        await asyncio.sleep(POLL_SECONDS)


if __name__ == "__main__":
    asyncio.run(main())
