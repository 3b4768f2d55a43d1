import pytest


@pytest.mark.asyncio
async def test_publish_enqueues_by_default(client, make_listing, fake_directory):
    listing = await make_listing()

    r = await client.post(f"/v1/listings/{listing.id}/publish")

    assert r.status_code == 202, r.text
    body = r.json()
    assert body["status"] == "queued"
    assert body["ok"] is False
    assert fake_directory.create_calls == []


@pytest.mark.asyncio
async def test_publish_inline_with_wait(client, make_listing, fake_directory):
    listing = await make_listing(image_urls=[fake_directory.image_url("a"), fake_directory.image_url("b")])

    r = await client.post(f"/v1/listings/{listing.id}/publish", params={"wait": "true"})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["status"] == "uploaded"
    assert body["external_url"] == "https://www.zyprus.com/Cyprus/property/node-9001"

    r = await client.get(f"/v1/listings/{listing.id}/attempts")
    assert r.status_code == 200
    attempts = r.json()
    assert len(attempts) == 1
    assert attempts[0]["status"] == "success"
    assert attempts[0]["attempt_number"] == 1


@pytest.mark.asyncio
async def test_inline_failure_returns_user_message(client, make_listing, fake_directory):
    listing = await make_listing()
    fake_directory.create_status = 502

    r = await client.post(f"/v1/listings/{listing.id}/publish", params={"wait": "true"})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "failed"
    assert body["error_code"] == "NETWORK_ERROR"
    assert body["correlation_id"] in body["message"]


@pytest.mark.asyncio
async def test_unknown_listing_is_404(client):
    r = await client.post("/v1/listings/lst_nope/publish")
    assert r.status_code == 404

    r = await client.get("/v1/listings/lst_nope/attempts")
    assert r.status_code == 404
