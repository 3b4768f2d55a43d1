from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from app.services.errors import PublishError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    token_type: str
    expires_at: datetime
    refresh_token: str | None = None

    def usable_at(self, now: datetime, safety_buffer: timedelta) -> bool:
        return now < self.expires_at - safety_buffer


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_token_response(body: dict[str, Any], *, now: datetime) -> CachedToken:
    try:
        expires_in = int(body.get("expires_in") or 0)
    except (TypeError, ValueError):
        raise PublishError("OAUTH_ERROR", f"Invalid expires_in in token response: {body.get('expires_in')!r}") from None
    return CachedToken(
        access_token=str(body["access_token"]),
        token_type=str(body.get("token_type") or "Bearer"),
        expires_at=now + timedelta(seconds=expires_in),
        refresh_token=body.get("refresh_token"),
    )


class TokenProvider:
    """
    Caches the directory bearer token and refreshes it through a client-credentials exchange.

    Concurrent cold-start refreshes are not deduplicated: each caller may run its own
    exchange and the last writer wins. A failed refresh never touches the cache.
    """

    def __init__(
        self,
        exchange: Callable[[], Awaitable[dict[str, Any]]],
        *,
        safety_buffer_seconds: int = 300,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._exchange = exchange
        self._buffer = timedelta(seconds=safety_buffer_seconds)
        self._now = now
        self._cached: CachedToken | None = None
        self.refresh_count = 0

    @property
    def cached(self) -> CachedToken | None:
        return self._cached

    def invalidate(self) -> None:
        self._cached = None

    async def get_token(self) -> CachedToken:
        cached = self._cached
        if cached is not None and cached.usable_at(self._now(), self._buffer):
            return cached
        return await self._refresh()

    async def _refresh(self) -> CachedToken:
        self.refresh_count += 1
        try:
            body = await self._exchange()
        except PublishError as e:
            log.warning("token: refresh failed code=%s message=%s", e.code, e.message)
            raise
        token = parse_token_response(body, now=self._now())
        self._cached = token
        log.info("token: refreshed, expires at %s", token.expires_at.isoformat())
        return token
