from datetime import datetime, timedelta, timezone

import pytest

from app.services.errors import PublishError
from app.services.token_provider import TokenProvider, parse_token_response


class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class Exchange:
    def __init__(self, expires_in: int = 3600):
        self.calls = 0
        self.expires_in = expires_in
        self.error: PublishError | None = None

    async def __call__(self) -> dict:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"access_token": f"tok-{self.calls}", "token_type": "Bearer", "expires_in": self.expires_in}


@pytest.mark.asyncio
async def test_token_is_cached_until_safety_buffer():
    clock = Clock()
    exchange = Exchange(expires_in=3600)
    provider = TokenProvider(exchange, safety_buffer_seconds=300, now=clock)

    first = await provider.get_token()
    clock.now += timedelta(seconds=3299)
    second = await provider.get_token()

    assert first.access_token == second.access_token == "tok-1"
    assert exchange.calls == 1


@pytest.mark.asyncio
async def test_token_inside_safety_buffer_is_refreshed_once():
    clock = Clock()
    exchange = Exchange(expires_in=3600)
    provider = TokenProvider(exchange, safety_buffer_seconds=300, now=clock)

    await provider.get_token()
    clock.now += timedelta(seconds=3300)
    token = await provider.get_token()
    again = await provider.get_token()

    assert token.access_token == "tok-2"
    assert again.access_token == "tok-2"
    assert exchange.calls == 2
    assert provider.refresh_count == 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_cache():
    clock = Clock()
    exchange = Exchange(expires_in=3600)
    provider = TokenProvider(exchange, safety_buffer_seconds=300, now=clock)
    old = await provider.get_token()

    clock.now += timedelta(hours=2)
    exchange.error = PublishError("OAUTH_ERROR", "invalid_client", status_code=401)
    with pytest.raises(PublishError) as ei:
        await provider.get_token()

    assert ei.value.code == "OAUTH_ERROR"
    assert provider.cached == old


@pytest.mark.asyncio
async def test_invalidate_forces_refresh():
    exchange = Exchange()
    provider = TokenProvider(exchange, now=Clock())

    await provider.get_token()
    provider.invalidate()
    token = await provider.get_token()

    assert token.access_token == "tok-2"
    assert provider.cached == token


@pytest.mark.asyncio
async def test_missing_credentials_raise_config_error(publisher_bundle, fake_directory):
    publisher_bundle.connector._client_secret = None

    with pytest.raises(PublishError) as ei:
        await publisher_bundle.token_provider.get_token()

    assert ei.value.code == "CONFIG_ERROR"
    assert fake_directory.token_calls == 0


@pytest.mark.asyncio
async def test_token_endpoint_rejection_is_oauth_error(publisher_bundle, fake_directory):
    fake_directory.token_status = 401

    with pytest.raises(PublishError) as ei:
        await publisher_bundle.token_provider.get_token()

    assert ei.value.code == "OAUTH_ERROR"
    assert publisher_bundle.token_provider.cached is None


def test_parse_token_response_computes_absolute_expiry():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    token = parse_token_response({"access_token": "abc", "expires_in": "600"}, now=now)

    assert token.expires_at == now + timedelta(seconds=600)
    assert token.token_type == "Bearer"
    assert token.refresh_token is None
