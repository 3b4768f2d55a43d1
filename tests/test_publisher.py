import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.listing import ListingPublishInput, RelationshipIds
from app.services.circuit_breaker import CircuitState

LOCATION_ID = "11111111-1111-4111-8111-111111111111"


def _listing(**kwargs) -> ListingPublishInput:
    values = dict(
        id="lst_test",
        title="3BR House in Limassol",
        price=480000,
        bedrooms=3,
        region="Limassol",
        relationships=RelationshipIds(location_id=LOCATION_ID),
        owner_phone="+357 99 123456",
        owner_email="maria@example.com",
        title_deed_number="0/1234",
    )
    values.update(kwargs)
    return ListingPublishInput(**values)


@pytest.mark.asyncio
async def test_publish_with_one_broken_image_attaches_the_rest(publisher_bundle, fake_directory):
    urls = [fake_directory.image_url(n) for n in ("a", "b", "c")]
    fake_directory.missing_images.add(urls[1])

    result = await publisher_bundle.publisher.publish(_listing(image_urls=urls))

    assert result.ok, result.error_message
    assert result.external_id == "node-9001"
    assert result.external_url == "https://www.zyprus.com/Cyprus/property/node-9001"
    gallery = fake_directory.create_calls[0]["document"]["data"]["relationships"]["field_gallery_"]["data"]
    assert len(gallery) == 2
    assert result.detail["images"]["uploaded"] == 2
    assert result.detail["reference_id"] == "3456-MARI-0/1234"


@pytest.mark.asyncio
async def test_one_token_refresh_per_publish(publisher_bundle, fake_directory):
    # shorter than the safety buffer: every publish must refresh
    fake_directory.expires_in = 60
    urls = [fake_directory.image_url(n) for n in ("a", "b", "c")]

    first = await publisher_bundle.publisher.publish(_listing(image_urls=urls))
    assert first.ok
    assert fake_directory.token_calls == 1

    second = await publisher_bundle.publisher.publish(_listing(image_urls=urls))
    assert second.ok
    assert fake_directory.token_calls == 2
    assert publisher_bundle.token_provider.refresh_count == 2


@pytest.mark.asyncio
async def test_cached_token_is_reused_across_publishes(publisher_bundle, fake_directory):
    await publisher_bundle.publisher.publish(_listing())
    await publisher_bundle.publisher.publish(_listing())

    assert fake_directory.token_calls == 1
    auth = {c["headers"]["authorization"] for c in fake_directory.create_calls}
    assert auth == {"Bearer token-1"}


@pytest.mark.asyncio
async def test_slow_create_is_reported_as_timeout(publisher_bundle, fake_directory):
    fake_directory.create_delay = 1.0

    result = await publisher_bundle.publisher.publish(_listing())

    assert not result.ok
    assert result.error_code == "TIMEOUT"
    assert result.retryable
    assert publisher_bundle.breakers.property_create.stats().timeouts == 1


@pytest.mark.asyncio
async def test_validation_errors_do_not_trip_the_breaker(publisher_bundle, fake_directory):
    fake_directory.create_status = 422
    fake_directory.create_body = {
        "errors": [{
            "title": "Unprocessable Entity",
            "detail": "field_price: This value should be a number.",
            "source": {"pointer": "/data/attributes/field_price"},
        }]
    }

    results = [await publisher_bundle.publisher.publish(_listing()) for _ in range(6)]

    assert {r.error_code for r in results} == {"VALIDATION_ERROR"}
    assert not results[0].retryable
    assert "(/data/attributes/field_price)" in results[0].error_message
    assert publisher_bundle.breakers.property_create.state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_upstream_outage_opens_the_create_circuit(publisher_bundle, fake_directory):
    fake_directory.create_status = 503

    for _ in range(5):
        result = await publisher_bundle.publisher.publish(_listing())
        assert result.error_code == "NETWORK_ERROR"

    rejected = await publisher_bundle.publisher.publish(_listing())

    assert rejected.error_code == "CIRCUIT_OPEN"
    assert rejected.retryable
    assert len(fake_directory.create_calls) == 5
    # land creation has its own breaker
    assert publisher_bundle.breakers.land_create.state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_unauthorized_create_drops_the_cached_token(publisher_bundle, fake_directory):
    fake_directory.create_status = 401

    result = await publisher_bundle.publisher.publish(_listing())

    assert result.error_code == "OAUTH_ERROR"
    assert publisher_bundle.token_provider.cached is None


@pytest.mark.asyncio
async def test_missing_credentials_fail_without_network(publisher_bundle, fake_directory):
    publisher_bundle.connector._client_id = None

    result = await publisher_bundle.publisher.publish(_listing(image_urls=[fake_directory.image_url("a")]))

    assert result.error_code == "CONFIG_ERROR"
    assert not result.retryable
    assert fake_directory.token_calls == 0
    assert fake_directory.image_fetches == []


@pytest.mark.asyncio
async def test_land_listing_goes_to_land_endpoint(publisher_bundle, fake_directory):
    result = await publisher_bundle.publisher.publish(_listing(kind="land", land_size=800))

    assert result.ok
    assert fake_directory.create_calls[0]["kind"] == "land"
    assert result.external_url.endswith("/Cyprus/land/node-9001")


@pytest.mark.asyncio
async def test_expired_cached_token_is_refreshed_once_before_create(publisher_bundle, fake_directory):
    provider = publisher_bundle.token_provider
    await provider.get_token()
    provider._cached = dataclasses.replace(provider.cached, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
    urls = [fake_directory.image_url(n) for n in ("a", "b", "c")]

    result = await publisher_bundle.publisher.publish(_listing(image_urls=urls))

    assert result.ok
    assert fake_directory.token_calls == 2
    uploads = {r.headers["authorization"] for r in fake_directory.asset_calls}
    assert uploads == {"Bearer token-2"}
    assert fake_directory.create_calls[0]["headers"]["authorization"] == "Bearer token-2"


@pytest.mark.asyncio
async def test_non_finite_numbers_never_reach_the_create_call(publisher_bundle, fake_directory):
    results = [await publisher_bundle.publisher.publish(_listing(covered_area="NaN")) for _ in range(6)]

    assert all(r.ok for r in results)
    assert "field_covered_area" not in fake_directory.create_calls[0]["document"]["data"]["attributes"]
    assert publisher_bundle.breakers.property_create.stats().failures == 0
    assert publisher_bundle.breakers.property_create.state is CircuitState.CLOSED
