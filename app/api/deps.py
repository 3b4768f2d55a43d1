from fastapi import HTTPException, Request

from app.services.rate_limit import TokenRateLimiter
from app.services.wiring import PublisherBundle


def get_publisher_bundle(request: Request) -> PublisherBundle:
    bundle = getattr(request.app.state, "publisher", None)
    if bundle is None:
        raise HTTPException(status_code=503, detail="Publisher is not initialised")
    return bundle


def get_rate_limiter(request: Request) -> TokenRateLimiter | None:
    return getattr(request.app.state, "rate_limiter", None)
