from __future__ import annotations

import logging
from typing import Any

from app.destinations.base import ListingKind, PublishResult
from app.destinations.directory.connector import DirectoryConnector
from app.schemas.listing import ListingPublishInput
from app.services.asset_uploader import AssetUploadReport, BulkAssetUploader
from app.services.errors import PublishError
from app.services.payload_builder import RelationshipDefaults, build_create_request
from app.services.reference_id import resolve_reference_id
from app.services.reviewer_assignment import ReviewerRules, Submitter, assign_reviewer
from app.services.token_provider import TokenProvider

log = logging.getLogger(__name__)


class ListingPublisher:
    """
    Publishes one listing to the directory:
    reference id -> token -> gallery upload -> payload -> create call -> result.

    Pipeline failures come back as PublishResult(ok=False, ...) with the error code,
    never as a silent success. Programming errors propagate.
    """

    def __init__(
        self,
        *,
        connector: DirectoryConnector,
        token_provider: TokenProvider,
        uploader: BulkAssetUploader,
        reviewer_rules: ReviewerRules,
        defaults: RelationshipDefaults,
        public_site_url: str,
        public_listing_path: str = "/Cyprus/{kind}/{id}",
    ):
        self.connector = connector
        self.token_provider = token_provider
        self.uploader = uploader
        self.reviewer_rules = reviewer_rules
        self.defaults = defaults
        self.public_site_url = public_site_url.rstrip("/")
        self.public_listing_path = public_listing_path

    def public_url(self, kind: ListingKind, external_id: str) -> str:
        return self.public_site_url + self.public_listing_path.format(kind=kind, id=external_id)

    async def publish(self, listing: ListingPublishInput) -> PublishResult:
        reference_id = resolve_reference_id(
            listing.reference_id,
            phone=listing.owner_phone,
            email=listing.owner_email,
            title_deed=listing.title_deed_number,
        )
        detail: dict[str, Any] = {"reference_id": reference_id}
        report: AssetUploadReport | None = None

        try:
            # one token for every call of this publish
            token = await self.token_provider.get_token()

            report = await self.uploader.upload(listing.image_urls, token=token.access_token, kind=listing.kind)
            detail["images"] = report.summary()
            if listing.image_urls and not report.uploaded:
                log.warning("publish: listing %s has no gallery, all %d images failed", listing.id, report.total)

            reviewer_id = assign_reviewer(
                region=listing.region,
                purpose=listing.purpose,
                submitter=Submitter(email=listing.submitter_email, external_user_id=listing.submitter_external_id),
                rules=self.reviewer_rules,
            )
            request = build_create_request(
                listing,
                reference_id=reference_id,
                asset_ids=report.asset_ids,
                reviewer_id=reviewer_id,
                defaults=self.defaults,
            )
            created = await self.connector.create_resource(request, token=token.access_token)

        except PublishError as e:
            if e.code == "OAUTH_ERROR" and e.status_code == 401:
                # directory no longer accepts the cached token
                self.token_provider.invalidate()
            log.warning("publish: listing %s failed code=%s message=%s", listing.id, e.code, e.message)
            if e.raw is not None:
                detail["response"] = e.raw
            return PublishResult(
                ok=False,
                retryable=e.retryable,
                error_code=e.code,
                error_message=e.message,
                status_code=e.status_code,
                detail=detail,
            )

        external_url = self.public_url(listing.kind, created.id)
        detail["response"] = created.raw
        log.info("publish: listing %s created as %s (%s)", listing.id, created.id, external_url)
        return PublishResult(
            ok=True,
            external_id=created.id,
            external_url=external_url,
            detail=detail,
        )
