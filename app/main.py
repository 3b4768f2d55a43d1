import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.telemetry import setup_telemetry
from app.services.rate_limit import TokenRateLimiter
from app.services.wiring import build_publisher

logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # one publisher per process so breakers and the token cache are shared by requests
    bundle = build_publisher(settings)
    app.state.publisher = bundle
    app.state.rate_limiter = TokenRateLimiter(settings.redis_url) if settings.publish_rate_limit_enabled else None
    try:
        yield
    finally:
        await bundle.close()
        if app.state.rate_limiter is not None:
            await app.state.rate_limiter.aclose()


app = FastAPI(title="Listing Publisher API", version="0.1.0", lifespan=lifespan)

setup_telemetry(app)
app.include_router(v1_router)
