"""Column alias mapping from raw upstream attributes to canonical tenement fields."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Iterable, Mapping

from tenement_sync.common.errors import ConfigurationError
from tenement_sync.common.models import Jurisdiction, TenementRecord
from tenement_sync.pipeline.normalise import canonical_tenement, coerce_area

TRUTHY_FLAGS = {"Y", "YES", "TRUE", "T", "1"}


@dataclass(frozen=True)
class FieldMap:
    """Candidate attribute names per canonical field, tried in order."""

    number: tuple[str, ...] = ()
    number_parts: tuple[str, ...] = ()
    number_separator: str = ""
    object_id: tuple[str, ...] = ()
    type: tuple[str, ...] = ()
    status: tuple[str, ...] = ()
    holder_name: tuple[str, ...] = ()
    application_date: tuple[str, ...] = ()
    grant_date: tuple[str, ...] = ()
    expiry_date: tuple[str, ...] = ()
    anniversary_date: tuple[str, ...] = ()
    markout_date: tuple[str, ...] = ()
    area: tuple[str, ...] = ()
    area_sqm: tuple[str, ...] = ()
    section29: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any] | None, defaults: "FieldMap | None" = None) -> "FieldMap":
        base = defaults or cls()
        if not cfg:
            return base
        known = {f.name for f in fields(cls)}
        unknown = set(cfg) - known
        if unknown:
            raise ConfigurationError(f"Unknown field mapping keys: {', '.join(sorted(unknown))}")
        overrides: dict[str, Any] = {}
        for key, value in cfg.items():
            if key == "number_separator":
                overrides[key] = str(value)
            elif isinstance(value, str):
                overrides[key] = (value,)
            else:
                overrides[key] = tuple(str(v) for v in value)
        return replace(base, **overrides)


def lowered_keys(attributes: Mapping[str, Any]) -> dict[str, Any]:
    return {str(key).strip().lower(): value for key, value in attributes.items()}


def lookup_first(attributes: Mapping[str, Any], candidates: Iterable[str]) -> Any | None:
    """First non-empty value among ``candidates``; ``attributes`` keys must already be lower-cased."""
    for key in candidates:
        value = attributes.get(key.lower())
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _number(attrs: dict[str, Any], field_map: FieldMap, jurisdiction: Jurisdiction) -> Any | None:
    number = lookup_first(attrs, field_map.number)
    if number is not None:
        return number
    if field_map.number_parts:
        parts = [lookup_first(attrs, (part,)) for part in field_map.number_parts]
        if all(part is not None for part in parts):
            return field_map.number_separator.join(str(part).strip() for part in parts)
    object_id = lookup_first(attrs, field_map.object_id)
    if object_id is not None:
        return f"{jurisdiction.value}-{object_id}"
    return None


def _area(attrs: dict[str, Any], field_map: FieldMap) -> float | None:
    area = coerce_area(lookup_first(attrs, field_map.area))
    if area is not None:
        return area
    square_metres = coerce_area(lookup_first(attrs, field_map.area_sqm))
    if square_metres is None:
        return None
    return square_metres / 10000


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().upper() in TRUTHY_FLAGS


def map_attributes(
    attributes: Mapping[str, Any],
    jurisdiction: Jurisdiction,
    field_map: FieldMap,
    *,
    default_type: str | None = None,
    default_status: str | None = None,
    geometry: dict | None = None,
) -> TenementRecord | None:
    attrs = lowered_keys(attributes)
    return canonical_tenement(
        jurisdiction,
        _number(attrs, field_map, jurisdiction),
        raw_type=lookup_first(attrs, field_map.type) or default_type,
        raw_status=lookup_first(attrs, field_map.status) or default_status,
        holder_name=lookup_first(attrs, field_map.holder_name),
        application_date=lookup_first(attrs, field_map.application_date),
        grant_date=lookup_first(attrs, field_map.grant_date),
        expiry_date=lookup_first(attrs, field_map.expiry_date),
        anniversary_date=lookup_first(attrs, field_map.anniversary_date),
        markout_date=lookup_first(attrs, field_map.markout_date),
        area=_area(attrs, field_map),
        section29_flag=_flag(lookup_first(attrs, field_map.section29)),
        geometry=geometry,
    )
