from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from app.destinations.base import ListingKind
from app.schemas.listing import ListingPublishInput

log = logging.getLogger(__name__)

UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

RESOURCE_TYPES: dict[str, str] = {
    "property": "node--property",
    "land": "node--land",
}


@dataclass(frozen=True)
class Relationship:
    resource_type: str
    ids: tuple[str, ...]
    many: bool = False

    def to_data(self) -> dict[str, str] | list[dict[str, str]]:
        refs = [{"type": self.resource_type, "id": i} for i in self.ids]
        return refs if self.many else refs[0]


@dataclass(frozen=True)
class CreateRequest:
    """Typed create-resource request; to_document() renders the JSON:API body."""

    kind: ListingKind
    resource_type: str
    attributes: Mapping[str, Any]
    relationships: Mapping[str, Relationship] = field(default_factory=dict)

    def relationship_ids(self, name: str) -> tuple[str, ...]:
        rel = self.relationships.get(name)
        return rel.ids if rel else ()

    def to_document(self) -> dict[str, Any]:
        return {
            "data": {
                "type": self.resource_type,
                "attributes": dict(self.attributes),
                "relationships": {name: {"data": rel.to_data()} for name, rel in self.relationships.items()},
            }
        }


class CreateRequestBuilder:
    def __init__(self, kind: ListingKind):
        self.kind = kind
        self._attributes: dict[str, Any] = {}
        self._relationships: dict[str, Relationship] = {}

    def attribute(self, name: str, value: Any) -> "CreateRequestBuilder":
        if value is not None:
            self._attributes[name] = value
        return self

    def relationship(self, name: str, resource_type: str, ref_id: str | None) -> "CreateRequestBuilder":
        if ref_id:
            self._relationships[name] = Relationship(resource_type, (ref_id,))
        return self

    def relationships(self, name: str, resource_type: str, ref_ids: Iterable[str]) -> "CreateRequestBuilder":
        ids = tuple(ref_ids)
        if ids:
            self._relationships[name] = Relationship(resource_type, ids, many=True)
        return self

    def build(self) -> CreateRequest:
        return CreateRequest(
            kind=self.kind,
            resource_type=RESOURCE_TYPES[self.kind],
            attributes=dict(self._attributes),
            relationships=dict(self._relationships),
        )


@dataclass(frozen=True)
class RelationshipDefaults:
    location_id: str
    listing_type_id: str
    property_type_id: str
    title_deed_id: str | None = None
    land_type_id: str | None = None

    @classmethod
    def from_settings(cls, s) -> "RelationshipDefaults":
        return cls(
            location_id=s.default_location_id,
            listing_type_id=s.default_listing_type_id,
            property_type_id=s.default_property_type_id,
            title_deed_id=s.default_title_deed_id,
            land_type_id=s.default_land_type_id,
        )


# coercion to what the directory expects
def as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError, OverflowError):
        log.warning("payload: dropping non-numeric value %r", value)
        return None


def as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        f = float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        log.warning("payload: dropping non-numeric value %r", value)
        return None
    # NaN and Infinity are not valid JSON
    if not math.isfinite(f):
        log.warning("payload: dropping non-finite value %r", value)
        return None
    return f


def as_decimal_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    try:
        d = Decimal(str(value).replace(",", ""))
    except InvalidOperation:
        log.warning("payload: dropping non-numeric value %r", value)
        return None
    if not d.is_finite():
        log.warning("payload: dropping non-finite value %r", value)
        return None
    return format(d.normalize(), "f") if d == d.to_integral() else str(d)


def valid_relationship_id(name: str, value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, str) and UUID_RE.match(value.strip()):
        return value.strip()
    log.warning("payload: dropping malformed %s id %r", name, value)
    return None


def valid_relationship_ids(name: str, values: Iterable[Any] | None) -> list[str]:
    out: list[str] = []
    for v in values or ():
        ok = valid_relationship_id(name, v)
        if ok and ok not in out:
            out.append(ok)
    return out


def _with_default(name: str, value: Any, default: str | None) -> str | None:
    ref = valid_relationship_id(name, value)
    if ref is None and default:
        log.info("payload: %s not provided, using default %s", name, default)
        return default
    return ref


def build_create_request(
    listing: ListingPublishInput,
    *,
    reference_id: str,
    asset_ids: Iterable[str],
    reviewer_id: str,
    defaults: RelationshipDefaults,
) -> CreateRequest:
    rel = listing.relationships
    extra = listing.attributes or {}
    b = CreateRequestBuilder(listing.kind)

    # Unpublished until a human reviewer approves it
    b.attribute("status", False)
    b.attribute("title", listing.title)
    b.attribute("body", {"value": listing.description or "", "format": "plain_text"})
    b.attribute("field_ai_state", "draft")
    b.attribute("field_price", as_decimal_str(listing.price))
    b.attribute("field_currency", listing.currency.upper())
    b.attribute("field_reference_id", reference_id)
    if listing.coordinates is not None:
        b.attribute("field_coordinates", {"lat": listing.coordinates.latitude, "lng": listing.coordinates.longitude})

    if listing.kind == "property":
        b.attribute("field_no_bedrooms", as_int(listing.bedrooms))
        b.attribute("field_no_bathrooms", as_int(listing.bathrooms))
        b.attribute("field_covered_area", as_float(listing.covered_area))
        b.attribute("field_year_built", as_int(listing.year_built))
        b.attribute("field_new_build", bool(extra.get("new_build", False)))
        b.attribute("field_energy_class", extra.get("energy_class"))
        b.attribute("field_video_url", extra.get("video_url"))

        b.relationship("field_property_type", "taxonomy_term--property_type",
                       _with_default("field_property_type", rel.property_type_id, defaults.property_type_id))
        b.relationship("field_property_status", "taxonomy_term--property_status",
                       valid_relationship_id("field_property_status", rel.property_status_id))
        b.relationships("field_indoor_property_features", "taxonomy_term--indoor_property_features",
                        valid_relationship_ids("field_indoor_property_features", rel.indoor_feature_ids))
        b.relationships("field_outdoor_property_features", "taxonomy_term--outdoor_property_features",
                        valid_relationship_ids("field_outdoor_property_features", rel.outdoor_feature_ids))
    else:
        b.attribute("field_land_size", as_float(listing.land_size))
        b.attribute("field_building_density", as_float(extra.get("building_density")))
        b.attribute("field_site_coverage", as_float(extra.get("site_coverage")))
        b.attribute("field_floors", as_int(extra.get("max_floors")))
        b.attribute("field_height", as_float(extra.get("max_height")))

        land_type = _with_default("field_land_type", rel.land_type_id, defaults.land_type_id)
        if land_type is None:
            log.warning("payload: no land type for listing %s and no default configured", listing.id)
        b.relationship("field_land_type", "taxonomy_term--land_type", land_type)
        b.relationships("field_infrastructure_", "taxonomy_term--infrastructure_",
                        valid_relationship_ids("field_infrastructure_", rel.infrastructure_ids))

    b.relationship("field_location", "node--location",
                   _with_default("field_location", rel.location_id, defaults.location_id))
    b.relationship("field_listing_type", "taxonomy_term--listing_type",
                   _with_default("field_listing_type", rel.listing_type_id, defaults.listing_type_id))
    b.relationship("field_title_deed", "taxonomy_term--title_deed",
                   _with_default("field_title_deed", rel.title_deed_id, defaults.title_deed_id))
    b.relationship("field_price_modifier", "taxonomy_term--price_modifier",
                   valid_relationship_id("field_price_modifier", rel.price_modifier_id))
    b.relationships("field_property_views", "taxonomy_term--property_views",
                    valid_relationship_ids("field_property_views", rel.view_ids))

    b.relationships("field_gallery_", "file--file", asset_ids)
    b.relationship("field_reviewer", "user--user", reviewer_id)
    b.relationship("field_instructor", "user--user", reviewer_id)

    return b.build()
