from __future__ import annotations

from typing import Any, Literal

ErrorCode = Literal[
    "CONFIG_ERROR",
    "OAUTH_ERROR",
    "VALIDATION_ERROR",
    "TIMEOUT",
    "NETWORK_ERROR",
    "CIRCUIT_OPEN",
    "RATE_LIMITED",
    "INTERNAL_ERROR",
]

# Never auto-retried; the caller has to change config or input first.
PERMANENT_CODES = frozenset({"CONFIG_ERROR", "VALIDATION_ERROR", "INTERNAL_ERROR"})

TEMPORARY_CODES = frozenset({"CIRCUIT_OPEN", "TIMEOUT", "NETWORK_ERROR", "RATE_LIMITED"})


class PublishError(Exception):
    """Typed failure raised inside the publication pipeline."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status_code: int | None = None,
        raw: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.raw = raw

    @property
    def retryable(self) -> bool:
        return self.code not in PERMANENT_CODES

    def __repr__(self) -> str:
        return f"PublishError(code={self.code!r}, message={self.message!r}, status_code={self.status_code!r})"


class AssetError(Exception):
    """Per-image failure. Never escapes the bulk uploader."""

    code = "ASSET_ERROR"


class AssetFetchError(AssetError):
    code = "FETCH_FAILED"


class AssetContentTypeError(AssetError):
    code = "UNSUPPORTED_CONTENT_TYPE"


class AssetUploadError(AssetError):
    code = "UPLOAD_FAILED"


def attempt_status_for(error_code: str | None) -> str:
    """UploadAttempt.status for a finished attempt."""
    if error_code is None:
        return "success"
    if error_code == "TIMEOUT":
        return "timeout"
    if error_code == "RATE_LIMITED":
        return "rate_limited"
    return "failed"


def user_message(error_code: str | None, correlation_id: str) -> str:
    # Short text for end users; payloads and stack traces stay in the attempt log.
    if error_code is None:
        return f"Listing published. (ref {correlation_id})"
    if error_code in TEMPORARY_CODES:
        return f"The listing service is temporarily unavailable, please retry later. (ref {correlation_id})"
    if error_code == "VALIDATION_ERROR":
        return f"The listing was rejected, please check its details and try again. (ref {correlation_id})"
    return f"The listing could not be published. (ref {correlation_id})"
