from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from app.core.config import Settings
from app.destinations.directory.connector import DirectoryBreakers, DirectoryConnector, is_caller_error
from app.services.asset_uploader import BulkAssetUploader
from app.services.circuit_breaker import CircuitBreaker, LoggingListener
from app.services.http_client import DirectoryHttpClient
from app.services.payload_builder import RelationshipDefaults
from app.services.publisher import ListingPublisher
from app.services.reviewer_assignment import ReviewerRules
from app.services.token_provider import TokenProvider


@dataclass
class PublisherBundle:
    """Everything one process owns for publishing; close() releases the HTTP pool."""

    http: DirectoryHttpClient
    connector: DirectoryConnector
    token_provider: TokenProvider
    publisher: ListingPublisher

    @property
    def breakers(self) -> DirectoryBreakers:
        return self.connector.breakers

    async def close(self) -> None:
        await self.http.aclose()


def build_breaker(
    settings: Settings,
    name: str,
    *,
    timeout: float,
    error_filter: Callable[[BaseException], bool] | None = None,
    clock: Callable[[], float] | None = None,
) -> CircuitBreaker:
    kwargs = {"clock": clock} if clock is not None else {}
    return CircuitBreaker(
        name=name,
        timeout=timeout,
        error_threshold_percentage=settings.breaker_error_threshold_percentage,
        volume_threshold=settings.breaker_volume_threshold,
        rolling_count_timeout=settings.breaker_rolling_count_timeout,
        rolling_count_buckets=settings.breaker_rolling_count_buckets,
        reset_timeout=settings.breaker_reset_timeout,
        error_filter=error_filter,
        listeners=[LoggingListener()],
        **kwargs,
    )


def build_publisher(settings: Settings, http_client: DirectoryHttpClient | None = None) -> PublisherBundle:
    http = http_client or DirectoryHttpClient(
        timeout_seconds=max(settings.asset_timeout_seconds, settings.create_timeout_seconds),
        default_headers={"User-Agent": settings.directory_user_agent},
    )

    # bad input and auth rejections are the caller's fault, not the directory's
    breakers = DirectoryBreakers(
        token=build_breaker(settings, "directory.token", timeout=settings.token_timeout_seconds),
        assets=build_breaker(settings, "directory.assets", timeout=settings.asset_timeout_seconds,
                             error_filter=is_caller_error),
        property_create=build_breaker(settings, "directory.property_create", timeout=settings.create_timeout_seconds,
                                      error_filter=is_caller_error),
        land_create=build_breaker(settings, "directory.land_create", timeout=settings.create_timeout_seconds,
                                  error_filter=is_caller_error),
    )

    secret = settings.directory_client_secret
    connector = DirectoryConnector(
        http=http,
        base_url=settings.directory_api_url,
        client_id=settings.directory_client_id,
        client_secret=secret.get_secret_value() if secret is not None else None,
        breakers=breakers,
        user_agent=settings.directory_user_agent,
        token_timeout_seconds=settings.token_timeout_seconds,
        asset_timeout_seconds=settings.asset_timeout_seconds,
        create_timeout_seconds=settings.create_timeout_seconds,
        source_fetch_timeout_seconds=settings.source_fetch_timeout_seconds,
    )
    token_provider = TokenProvider(
        connector.exchange_client_credentials,
        safety_buffer_seconds=settings.token_safety_buffer_seconds,
    )
    publisher = ListingPublisher(
        connector=connector,
        token_provider=token_provider,
        uploader=BulkAssetUploader(connector, max_concurrency=settings.upload_max_concurrency),
        reviewer_rules=ReviewerRules.from_settings(settings),
        defaults=RelationshipDefaults.from_settings(settings),
        public_site_url=settings.public_site_url,
        public_listing_path=settings.public_listing_path,
    )
    return PublisherBundle(http=http, connector=connector, token_provider=token_provider, publisher=publisher)
