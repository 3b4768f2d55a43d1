from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ListingKind = Literal["property", "land"]


@dataclass(frozen=True)
class PublishResult:
    ok: bool
    retryable: bool = False
    error_code: str | None = None
    error_message: str | None = None
    status_code: int | None = None
    detail: dict[str, Any] | None = None
    external_id: str | None = None  # directory resource id, if created
    external_url: str | None = None


@dataclass(frozen=True)
class CreatedResource:
    id: str
    raw: dict[str, Any] = field(default_factory=dict)
