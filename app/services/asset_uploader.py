from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.core.concurrency import settle_all
from app.destinations.base import ListingKind
from app.destinations.directory.connector import DirectoryConnector
from app.services.errors import (
    AssetContentTypeError,
    AssetError,
    AssetFetchError,
    AssetUploadError,
    PublishError,
)

log = logging.getLogger(__name__)

ALLOWED_BINARY_TYPES = ("application/octet-stream", "binary/octet-stream")

EXTENSIONS = {
    "jpeg": "jpg",
    "pjpeg": "jpg",
    "svg+xml": "svg",
    "octet-stream": "jpg",
}


@dataclass(frozen=True)
class UploadedAsset:
    source_url: str
    asset_id: str


@dataclass(frozen=True)
class AssetFailure:
    source_url: str
    code: str
    message: str


@dataclass(frozen=True)
class AssetUploadReport:
    uploaded: list[UploadedAsset] = field(default_factory=list)
    failures: list[AssetFailure] = field(default_factory=list)
    total: int = 0

    @property
    def asset_ids(self) -> list[str]:
        return [a.asset_id for a in self.uploaded]

    @property
    def success_ratio(self) -> float:
        return len(self.uploaded) / self.total if self.total else 0.0

    def summary(self) -> dict:
        return {
            "uploaded": len(self.uploaded),
            "total": self.total,
            "failures": [{"url": f.source_url, "code": f.code, "message": f.message} for f in self.failures],
        }


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_image_content_type(content_type: str | None) -> bool:
    mt = _media_type(content_type)
    return mt.startswith("image/") or mt in ALLOWED_BINARY_TYPES


def derive_filename(kind: ListingKind, index: int, content_type: str | None) -> str:
    subtype = _media_type(content_type).rsplit("/", 1)[-1] or "jpg"
    ext = EXTENSIONS.get(subtype, subtype)
    return f"{kind}-image-{index + 1}.{ext}"


class BulkAssetUploader:
    """
    Uploads the gallery for one listing. Every source URL runs concurrently;
    a failing image is logged and skipped, never failing its siblings.
    """

    def __init__(self, connector: DirectoryConnector, *, max_concurrency: int | None = None):
        self._connector = connector
        self._max_concurrency = max_concurrency

    async def upload(self, urls: list[str], *, token: str, kind: ListingKind = "property") -> AssetUploadReport:
        if not urls:
            return AssetUploadReport()
        if not token:
            raise PublishError("CONFIG_ERROR", "Asset upload requires a directory access token")
        if not self._connector.base_url:
            raise PublishError("CONFIG_ERROR", "Directory API URL is not configured")

        total = len(urls)
        log.info("assets: starting parallel upload of %d images", total)

        outcomes = await settle_all(
            (self._upload_one(url, i, token=token, kind=kind) for i, url in enumerate(urls)),
            max_concurrency=self._max_concurrency,
        )

        uploaded: list[UploadedAsset] = []
        failures: list[AssetFailure] = []
        for i, (url, outcome) in enumerate(zip(urls, outcomes)):
            if outcome.ok and outcome.value is not None:
                uploaded.append(outcome.value)
                continue
            err = outcome.error
            if isinstance(err, AssetError):
                code = err.code
            elif isinstance(err, PublishError):
                code = err.code
            else:
                code = type(err).__name__
            log.error("assets: image %d/%d failed (%s): %s", i + 1, total, url, err)
            failures.append(AssetFailure(source_url=url, code=code, message=str(err)))

        report = AssetUploadReport(uploaded=uploaded, failures=failures, total=total)
        log.info(
            "assets: upload complete %d/%d successful (%.1f%%)",
            len(uploaded), total, report.success_ratio * 100,
        )
        return report

    async def _upload_one(self, url: str, index: int, *, token: str, kind: ListingKind) -> UploadedAsset:
        fetched = await self._connector.http.fetch_bytes(
            url=url, timeout_seconds=self._connector.source_fetch_timeout_seconds,
        )
        if not fetched.ok:
            raise AssetFetchError(f"Failed to fetch image: {fetched.error_message}")
        if not is_image_content_type(fetched.content_type):
            raise AssetContentTypeError(f"Not an image: content-type {fetched.content_type!r}")
        if not fetched.content:
            raise AssetFetchError("Fetched image is empty")

        filename = derive_filename(kind, index, fetched.content_type)
        try:
            asset_id = await self._connector.upload_asset(
                kind=kind, filename=filename, content=fetched.content, token=token,
            )
        except PublishError as e:
            raise AssetUploadError(f"{e.code}: {e.message}") from e

        log.info("assets: uploaded image %d (%s) as %s", index + 1, url, asset_id)
        return UploadedAsset(source_url=url, asset_id=asset_id)
