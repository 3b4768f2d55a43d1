from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from app.destinations.base import CreatedResource, ListingKind
from app.services.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitTimeoutError
from app.services.errors import PublishError
from app.services.http_client import DirectoryHttpClient, HttpResult
from app.services.payload_builder import CreateRequest

log = logging.getLogger(__name__)

T = TypeVar("T")

JSONAPI_CONTENT_TYPE = "application/vnd.api+json"


@dataclass(frozen=True)
class DirectoryBreakers:
    """One breaker per protected dependency so one outage never trips the others."""

    token: CircuitBreaker
    assets: CircuitBreaker
    property_create: CircuitBreaker
    land_create: CircuitBreaker

    def for_create(self, kind: ListingKind) -> CircuitBreaker:
        return self.property_create if kind == "property" else self.land_create

    def all(self) -> list[CircuitBreaker]:
        return [self.token, self.assets, self.property_create, self.land_create]


def aggregate_errors(detail: dict[str, Any]) -> str:
    """
    Collapse a JSON:API error document into one line:
    "title: detail (pointer); title: detail (pointer)".
    """
    errors = detail.get("errors")
    if not isinstance(errors, list) or not errors:
        msg = detail.get("message") or detail.get("error_description") or detail.get("error") or detail.get("raw")
        return str(msg) if msg else ""

    parts: list[str] = []
    for e in errors:
        if not isinstance(e, dict):
            parts.append(str(e))
            continue
        text = ": ".join(str(x) for x in (e.get("title"), e.get("detail")) if x) or "Unknown error"
        source = e.get("source")
        pointer = source.get("pointer") if isinstance(source, dict) else None
        if pointer:
            text += f" ({pointer})"
        parts.append(text)
    return "; ".join(parts)


def error_for_result(result: HttpResult, *, context: str, client_error_code: str = "VALIDATION_ERROR") -> PublishError:
    """Map a failed HttpResult onto the pipeline error taxonomy."""
    if result.error_code == "TIMEOUT":
        return PublishError("TIMEOUT", f"{context}: {result.error_message}", raw=result.detail)
    if result.error_code == "REQUEST_ERROR":
        return PublishError("NETWORK_ERROR", f"{context}: network error: {result.error_message}", raw=result.detail)

    status = result.status_code
    summary = aggregate_errors(result.detail) or (result.error_message or "request failed")
    message = f"{context}: {summary}"
    if status in (401, 403):
        code = "OAUTH_ERROR"
    elif status == 429:
        code = "RATE_LIMITED"
        if result.retry_after:
            message += f" (retry after {result.retry_after}s)"
    elif status is not None and 400 <= status < 500 and status != 408:
        code = client_error_code
    else:
        code = "NETWORK_ERROR"
    return PublishError(code, message, status_code=status, raw=result.detail)


def is_caller_error(e: BaseException) -> bool:
    """Errors that prove the dependency answered; breakers treat them as successes."""
    return isinstance(e, PublishError) and e.code in ("VALIDATION_ERROR", "OAUTH_ERROR")


class DirectoryConnector:
    """
    Transport and auth for the listing directory (a JSON:API backend).

    Every network operation goes through the breaker owned for that dependency.
    Breaker rejections and timeouts surface as CIRCUIT_OPEN / TIMEOUT.
    """

    destination = "directory"

    def __init__(
        self,
        *,
        http: DirectoryHttpClient,
        base_url: str,
        client_id: str | None,
        client_secret: str | None,
        breakers: DirectoryBreakers,
        user_agent: str = "listing-publisher",
        token_timeout_seconds: float = 10.0,
        asset_timeout_seconds: float = 30.0,
        create_timeout_seconds: float = 30.0,
        source_fetch_timeout_seconds: float = 20.0,
    ):
        self.http = http
        self.base_url = (base_url or "").rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._breakers = breakers
        self._user_agent = user_agent
        self.token_timeout_seconds = token_timeout_seconds
        self.asset_timeout_seconds = asset_timeout_seconds
        self.create_timeout_seconds = create_timeout_seconds
        self.source_fetch_timeout_seconds = source_fetch_timeout_seconds

    @property
    def breakers(self) -> DirectoryBreakers:
        return self._breakers

    async def _protected(self, breaker: CircuitBreaker, op: Callable[..., Awaitable[T]], *args: Any) -> T:
        try:
            return await breaker.fire(op, *args)
        except CircuitOpenError as e:
            raise PublishError("CIRCUIT_OPEN", str(e)) from None
        except CircuitTimeoutError as e:
            raise PublishError("TIMEOUT", str(e)) from None

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "User-Agent": self._user_agent}

    # token endpoint
    async def exchange_client_credentials(self) -> dict[str, Any]:
        if not self.base_url:
            raise PublishError("CONFIG_ERROR", "Directory API URL is not configured")
        if not self._client_id or not self._client_secret:
            raise PublishError("CONFIG_ERROR", "Directory client credentials are not configured")
        return await self._protected(self._breakers.token, self._token_request)

    async def _token_request(self) -> dict[str, Any]:
        result = await self.http.post_form(
            url=f"{self.base_url}/oauth/token",
            headers={"User-Agent": self._user_agent, "Accept": "application/json"},
            form={
                "grant_type": "client_credentials",
                "client_id": self._client_id or "",
                "client_secret": self._client_secret or "",
            },
            timeout_seconds=self.token_timeout_seconds,
        )
        if not result.ok:
            raise error_for_result(result, context="OAuth token request failed", client_error_code="OAUTH_ERROR")
        if not result.detail.get("access_token"):
            raise PublishError("OAUTH_ERROR", "OAuth token response has no access_token", raw=result.detail)
        return result.detail

    # asset endpoint
    async def upload_asset(self, *, kind: ListingKind, filename: str, content: bytes, token: str) -> str:
        return await self._protected(self._breakers.assets, self._asset_request, kind, filename, content, token)

    async def _asset_request(self, kind: ListingKind, filename: str, content: bytes, token: str) -> str:
        headers = self._auth_headers(token)
        headers.update({
            "Content-Type": "application/octet-stream",
            "Accept": JSONAPI_CONTENT_TYPE,
            "Content-Disposition": f'file; filename="{filename}"',
        })
        result = await self.http.post_binary(
            url=f"{self.base_url}/jsonapi/node/{kind}/field_gallery_",
            headers=headers,
            content=content,
            timeout_seconds=self.asset_timeout_seconds,
        )
        if not result.ok:
            raise error_for_result(result, context=f"Asset upload failed for {filename}")
        data = result.detail.get("data")
        asset_id = data.get("id") if isinstance(data, dict) else None
        if not asset_id:
            raise PublishError("NETWORK_ERROR", f"Asset upload for {filename} returned no id", raw=result.detail)
        return str(asset_id)

    # resource-create endpoint
    async def create_resource(self, request: CreateRequest, *, token: str) -> CreatedResource:
        breaker = self._breakers.for_create(request.kind)
        return await self._protected(breaker, self._create_request, request, token)

    async def _create_request(self, request: CreateRequest, token: str) -> CreatedResource:
        headers = self._auth_headers(token)
        headers.update({"Content-Type": JSONAPI_CONTENT_TYPE, "Accept": JSONAPI_CONTENT_TYPE})
        result = await self.http.post_json(
            url=f"{self.base_url}/jsonapi/node/{request.kind}",
            headers=headers,
            json_body=request.to_document(),
            timeout_seconds=self.create_timeout_seconds,
        )
        if not result.ok:
            raise error_for_result(result, context=f"Directory rejected {request.resource_type}")
        data = result.detail.get("data")
        created_id = data.get("id") if isinstance(data, dict) else None
        if not created_id:
            raise PublishError("NETWORK_ERROR", "Create response has no resource id", status_code=result.status_code, raw=result.detail)
        log.info("directory: created %s id=%s", request.resource_type, created_id)
        return CreatedResource(id=str(created_id), raw=result.detail)
