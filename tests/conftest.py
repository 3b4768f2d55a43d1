import asyncio
import json
import os
import re

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base + all models so metadata is complete
from app.models.base import Base
from app.models.listing import Listing  # noqa: F401
from app.models.upload_attempt import UploadAttempt  # noqa: F401

from app.api.deps import get_publisher_bundle, get_rate_limiter
from app.core.config import Settings
from app.core.db import get_db
from app.main import app
from app.services.http_client import DirectoryHttpClient
from app.services.wiring import build_publisher

DIRECTORY_URL = "https://directory.test"
IMAGES_URL = "https://images.test"

LOCATION_ID = "11111111-1111-4111-8111-111111111111"


class FakeDirectory:
    """
    In-memory stand-in for the directory API and the image host, served through
    httpx.MockTransport. Tests flip the knobs, then read the recorded calls.
    """

    def __init__(self):
        self.token_status = 200
        self.expires_in = 3600
        self.create_status = 201
        self.create_body: dict | None = None
        self.create_delay = 0.0
        self.asset_status = 201
        self.missing_images: set[str] = set()
        self.non_image_urls: set[str] = set()
        self.on_create = None  # async callable run while the create call is in flight

        self.token_calls = 0
        self.asset_calls: list[httpx.Request] = []
        self.create_calls: list[dict] = []
        self.image_fetches: list[str] = []
        self._asset_seq = 0
        self._token_seq = 0

    def image_url(self, name: str) -> str:
        return f"{IMAGES_URL}/{name}.jpg"

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        path = request.url.path

        if url.startswith(IMAGES_URL):
            self.image_fetches.append(url)
            if url in self.missing_images:
                return httpx.Response(404, text="not found")
            if url in self.non_image_urls:
                return httpx.Response(200, headers={"content-type": "text/html"}, text="<html></html>")
            return httpx.Response(200, headers={"content-type": "image/jpeg"}, content=b"\xff\xd8\xff" + url.encode())

        if path == "/oauth/token":
            self.token_calls += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            self._token_seq += 1
            return httpx.Response(200, json={
                "access_token": f"token-{self._token_seq}",
                "token_type": "Bearer",
                "expires_in": self.expires_in,
            })

        m = re.fullmatch(r"/jsonapi/node/(property|land)/field_gallery_", path)
        if m:
            self.asset_calls.append(request)
            if self.asset_status >= 300:
                return httpx.Response(self.asset_status, json={"errors": [{"title": "Upload failed"}]})
            self._asset_seq += 1
            return httpx.Response(201, json={"data": {"type": "file--file", "id": f"file-{self._asset_seq}"}})

        m = re.fullmatch(r"/jsonapi/node/(property|land)", path)
        if m:
            if self.on_create is not None:
                await self.on_create()
            if self.create_delay:
                await asyncio.sleep(self.create_delay)
            doc = json.loads(request.content)
            self.create_calls.append({"kind": m.group(1), "headers": dict(request.headers), "document": doc})
            if self.create_status >= 300:
                return httpx.Response(self.create_status, json=self.create_body or {"errors": [{"title": "Error"}]})
            return httpx.Response(201, json=self.create_body or {"data": {"type": doc["data"]["type"], "id": "node-9001"}})

        return httpx.Response(404, json={"errors": [{"title": "Not Found", "detail": path}]})


def _test_db_url() -> str:
    return os.getenv("DATABASE_URL_TEST", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
def fake_directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        directory_api_url=DIRECTORY_URL,
        directory_client_id="client-id",
        directory_client_secret="client-secret",
        public_site_url="https://www.zyprus.com",
        create_timeout_seconds=0.2,
        regional_reviewer_ids={"famagusta": "55555555-5555-4555-8555-555555555555"},
        sale_primary_reviewer_id="66666666-6666-4666-8666-666666666666",
    )


@pytest_asyncio.fixture
async def publisher_bundle(test_settings, fake_directory):
    http = DirectoryHttpClient(transport=httpx.MockTransport(fake_directory.handler))
    bundle = build_publisher(test_settings, http_client=http)
    yield bundle
    await bundle.close()


@pytest_asyncio.fixture
async def async_engine():
    url = _test_db_url()
    kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}} if url.startswith("sqlite") else {}
    engine = create_async_engine(url, **kwargs)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine):
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_listing(db_session):
    async def _make(**overrides) -> Listing:
        values = {
            "kind": "property",
            "purpose": "sale",
            "title": "2BR Apartment in Strovolos",
            "description": "Bright apartment close to the university.",
            "price": 250000,
            "currency": "EUR",
            "bedrooms": 2,
            "bathrooms": 1,
            "covered_area": 95,
            "region": "Nicosia",
            "relationships": {"location_id": LOCATION_ID},
            "image_urls": [],
            "owner_phone": "+357 99 123456",
            "owner_email": "maria@example.com",
            "title_deed_number": "0/1234",
            "status": "draft",
        }
        values.update(overrides)
        listing = Listing(**values)
        db_session.add(listing)
        await db_session.commit()
        return listing

    return _make


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, publisher_bundle):
    """
    HTTP client that uses the test DB session and the mock-backed publisher via dependency override.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_publisher_bundle] = lambda: publisher_bundle
    app.dependency_overrides[get_rate_limiter] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
