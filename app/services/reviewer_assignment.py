from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

from app.core.config import DEFAULT_LISTING_REVIEWER_ID

Purpose = Literal["sale", "rent"]


@dataclass(frozen=True)
class Submitter:
    email: str | None = None
    external_user_id: str | None = None  # directory user id of the submitting agent


@dataclass(frozen=True)
class ReviewerRules:
    default_reviewer_id: str = DEFAULT_LISTING_REVIEWER_ID
    sale_primary_reviewer_id: str | None = None
    # region (lower-cased) -> directory user id of the regional account
    regional_reviewer_ids: Mapping[str, str] = field(default_factory=dict)
    # sale listings in these regions are reviewed by the regional account only
    regional_only_regions: frozenset[str] = frozenset({"famagusta"})

    @classmethod
    def from_settings(cls, s) -> "ReviewerRules":
        return cls(
            default_reviewer_id=s.default_reviewer_id,
            sale_primary_reviewer_id=s.sale_primary_reviewer_id,
            regional_reviewer_ids={k.strip().lower(): v for k, v in s.regional_reviewer_ids.items()},
            regional_only_regions=frozenset(r.strip().lower() for r in s.regional_only_regions),
        )


def assign_reviewer(
    *,
    region: str | None,
    purpose: Purpose,
    submitter: Submitter | None,
    rules: ReviewerRules,
) -> str:
    """
    Pick the reviewer/instructor for a new listing. Pure: same inputs, same reviewer.

    - rent: the submitting agent reviews their own rental
    - sale in a regional-only region: that region's account
    - sale elsewhere: the primary sale reviewer
    - otherwise the region's account, then the fixed default
    """
    key = (region or "").strip().lower()
    regional = rules.regional_reviewer_ids.get(key) if key else None

    if purpose == "rent" and submitter is not None and submitter.external_user_id:
        return submitter.external_user_id

    if purpose == "sale":
        if key in rules.regional_only_regions and regional:
            return regional
        if rules.sale_primary_reviewer_id:
            return rules.sale_primary_reviewer_id

    if regional:
        return regional
    return rules.default_reviewer_id


OUTSIDE_REGION_MESSAGE = (
    "Unfortunately, you are not allowed to market a property outside your region. "
    "Please contact the relevant regional manager for assistance."
)


@dataclass(frozen=True)
class RegionPermission:
    allowed: bool
    message: str | None = None


def check_region_permission(*, agent_region: str | None, target_region: str | None, is_admin: bool = False) -> RegionPermission:
    """Agents list only in their own region; admins and agents without a region are not restricted."""
    if is_admin:
        return RegionPermission(allowed=True)

    home = (agent_region or "").strip().lower()
    if home and home != (target_region or "").strip().lower():
        return RegionPermission(allowed=False, message=OUTSIDE_REGION_MESSAGE)
    return RegionPermission(allowed=True)
