from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Literal

import httpx


HttpMethod = Literal["GET", "POST"]


@dataclass(frozen=True)
class HttpResult:
    """Outcome of one directory call. Classification into error codes happens in the connector."""

    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None  # TIMEOUT, REQUEST_ERROR or HTTP_<status>
    error_message: str | None = None
    retry_after: str | None = None


@dataclass(frozen=True)
class BinaryResult:
    ok: bool
    status_code: int | None
    content: bytes = b""
    content_type: str | None = None

    error_code: str | None = None
    error_message: str | None = None


def _is_json_response(resp: httpx.Response) -> bool:
    # the directory answers application/vnd.api+json
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or "+json" in ct


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class DirectoryHttpClient:
    """
    One pooled httpx.AsyncClient for the directory and the image hosts.

    Never retries and never raises for transport or HTTP failures: callers get an
    HttpResult / BinaryResult and decide. Breakers sit above this layer.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        max_response_body_chars: int = 20_000,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._default_headers = dict(default_headers or {})
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _parse_body(self, resp: httpx.Response) -> dict[str, Any]:
        if _is_json_response(resp):
            try:
                parsed = resp.json()
            except ValueError:
                return {"raw": _cap_text(resp.text, max_chars=self._max_body)}
            return parsed if isinstance(parsed, dict) else {"data": parsed}
        return {
            "raw": _cap_text(resp.text, max_chars=self._max_body),
            "content_type": resp.headers.get("content-type"),
        }

    async def request(
        self,
        *,
        method: HttpMethod,
        url: str,
        headers: Mapping[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        form: Mapping[str, str] | None = None,
        content: bytes | None = None,
        timeout_seconds: float | None = None,
    ) -> HttpResult:
        h = {**self._default_headers, **dict(headers or {})}
        extra: dict[str, Any] = {}
        if timeout_seconds is not None:
            extra["timeout"] = httpx.Timeout(timeout_seconds)

        try:
            resp = await self._client.request(
                method,
                url,
                headers=h,
                json=json_body,
                data=dict(form) if form is not None else None,
                content=content,
                **extra,
            )
        except httpx.TimeoutException as e:
            return HttpResult(ok=False, status_code=None, detail={"error": "timeout"},
                              error_code="TIMEOUT", error_message=str(e) or "request timed out")
        except httpx.RequestError as e:
            # DNS, connection refused, TLS
            return HttpResult(ok=False, status_code=None, detail={"error": "request_error"},
                              error_code="REQUEST_ERROR", error_message=str(e) or type(e).__name__)

        detail = self._parse_body(resp)
        if resp.is_success:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail)
        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retry_after=resp.headers.get("retry-after"),
        )

    async def post_json(self, *, url: str, headers: Mapping[str, str] | None = None, json_body: dict[str, Any], timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="POST", url=url, headers=headers, json_body=json_body, timeout_seconds=timeout_seconds)

    async def post_form(self, *, url: str, headers: Mapping[str, str] | None = None, form: Mapping[str, str], timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="POST", url=url, headers=headers, form=form, timeout_seconds=timeout_seconds)

    async def post_binary(self, *, url: str, headers: Mapping[str, str] | None = None, content: bytes, timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="POST", url=url, headers=headers, content=content, timeout_seconds=timeout_seconds)

    async def fetch_bytes(self, *, url: str, timeout_seconds: float | None = None) -> BinaryResult:
        """GET a source image. Image hosts get no directory headers."""
        extra: dict[str, Any] = {}
        if timeout_seconds is not None:
            extra["timeout"] = httpx.Timeout(timeout_seconds)
        try:
            resp = await self._client.get(url, **extra)
        except httpx.TimeoutException as e:
            return BinaryResult(ok=False, status_code=None, error_code="TIMEOUT", error_message=str(e) or "fetch timed out")
        except httpx.RequestError as e:
            return BinaryResult(ok=False, status_code=None, error_code="REQUEST_ERROR", error_message=str(e) or type(e).__name__)

        content_type = resp.headers.get("content-type")
        if not resp.is_success:
            return BinaryResult(
                ok=False,
                status_code=resp.status_code,
                content_type=content_type,
                error_code=f"HTTP_{resp.status_code}",
                error_message=f"HTTP {resp.status_code} {resp.reason_phrase}".strip(),
            )
        return BinaryResult(ok=True, status_code=resp.status_code, content=resp.content, content_type=content_type)
