"""Reconcile jurisdiction vocabularies, date encodings and areas into canonical values."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

from tenement_sync.common.models import Jurisdiction, TenementRecord

UNKNOWN = "Unknown"

TYPE_LABELS: dict[Jurisdiction, dict[str, str]] = {
    Jurisdiction.WA: {
        "E": "Exploration Licence",
        "EL": "Exploration Licence",
        "M": "Mining Lease",
        "ML": "Mining Lease",
        "P": "Prospecting Licence",
        "PL": "Prospecting Licence",
        "G": "General Purpose Lease",
        "GPL": "General Purpose Lease",
        "L": "Miscellaneous Licence",
        "R": "Retention Licence",
    },
    Jurisdiction.QLD: {
        "EPM": "Exploration Permit for Minerals",
        "EPC": "Exploration Permit for Coal",
        "ML": "Mining Lease",
        "MC": "Mining Claim",
        "MDL": "Mineral Development Licence",
    },
    Jurisdiction.VIC: {
        "EL": "Exploration Licence",
        "ML": "Mining Licence",
        "MIN": "Mining Licence",
        "RL": "Retention Licence",
        "PL": "Prospecting Licence",
    },
    Jurisdiction.NSW: {
        "EL": "Exploration Licence",
        "ML": "Mining Lease",
        "MPL": "Mining Purposes Lease",
        "AL": "Assessment Lease",
        "PLL": "Petroleum Production Lease",
    },
    Jurisdiction.NT: {
        "EL": "Exploration Licence",
        "ML": "Mineral Lease",
        "MA": "Mineral Authority",
        "MC": "Mineral Claim",
        "EMEL": "Extractive Mineral Exploration Licence",
        "EML": "Extractive Mineral Lease",
    },
    Jurisdiction.TAS: {
        "EL": "Exploration Licence",
        "ML": "Mining Lease",
        "RL": "Retention Licence",
    },
}

STATUS_LABELS: dict[str, str] = {
    "LIVE": "Active",
    "ACTIVE": "Active",
    "GRANTED": "Active",
    "CURRENT": "Active",
    "PENDING": "Pending",
    "APPLICATION": "Pending",
    "EXPIRED": "Expired",
    "CANCELLED": "Expired",
    "SURRENDERED": "Expired",
}

CANONICAL_STATUSES = frozenset(STATUS_LABELS.values())

_LOCALE_DATE_FORMATS = (
    "%d/%m/%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%Y/%m/%d",
    "%Y%m%d",
)
_ISO_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "nan"}:
        return None
    return text


def normalize_type(raw: Any, jurisdiction: Jurisdiction | str) -> str:
    text = _clean_text(raw)
    if text is None:
        return UNKNOWN
    table = TYPE_LABELS.get(Jurisdiction.parse(jurisdiction), {})
    return table.get(text.upper(), text)


def normalize_status(raw: Any, jurisdiction: Jurisdiction | str | None = None) -> str:
    # One table serves every jurisdiction; the argument keeps call sites symmetric with normalize_type.
    text = _clean_text(raw)
    if text is None:
        return UNKNOWN
    return STATUS_LABELS.get(text.upper(), text)


def _from_epoch_millis(value: float) -> str | None:
    if not math.isfinite(value):
        return None
    try:
        return (_EPOCH + timedelta(milliseconds=value)).date().isoformat()
    except OverflowError:
        return None


def _from_iso(text: str) -> str | None:
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        match = _ISO_PREFIX.match(text)
        if not match:
            return None
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3))).isoformat()
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def coerce_date(value: Any) -> str | None:
    """Return an ISO ``YYYY-MM-DD`` string, or None when the input cannot be read as a date."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return _from_epoch_millis(float(value))

    text = _clean_text(value)
    if text is None:
        return None
    if text.lstrip("-").isdigit() and len(text.lstrip("-")) >= 10:
        return _from_epoch_millis(float(text))
    if _ISO_PREFIX.match(text):
        return _from_iso(text)
    for fmt in _LOCALE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def coerce_area(value: Any) -> float | None:
    """Hectares from a number or a string such as ``"118.04 HA"``, ``"5000 m2"`` or ``"3 km2"``; negatives are None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        area = float(value)
    else:
        text = _clean_text(value)
        if text is None:
            return None
        match = _NUMBER.search(text.replace(",", ""))
        if match is None:
            return None
        area = float(match.group(0))
        lowered = text.lower()
        if "km2" in lowered or "km²" in lowered or "sq km" in lowered:
            area = area * 100
        elif "m2" in lowered or "sqm" in lowered or "m²" in lowered:
            area = area / 10000
    if not math.isfinite(area) or area < 0:
        return None
    return area


def canonical_tenement(
    jurisdiction: Jurisdiction,
    number: Any,
    *,
    raw_type: Any,
    raw_status: Any,
    holder_name: Any = None,
    application_date: Any = None,
    grant_date: Any = None,
    expiry_date: Any = None,
    anniversary_date: Any = None,
    markout_date: Any = None,
    area: Any = None,
    section29_flag: bool = False,
    geometry: dict | None = None,
) -> TenementRecord | None:
    """Build a canonical record, or None when the row carries no tenement number."""
    clean_number = _clean_text(number)
    if clean_number is None:
        return None
    return TenementRecord(
        number=clean_number,
        jurisdiction=jurisdiction,
        type=normalize_type(raw_type, jurisdiction),
        status=normalize_status(raw_status, jurisdiction),
        holder_name=_clean_text(holder_name),
        application_date=coerce_date(application_date),
        grant_date=coerce_date(grant_date),
        expiry_date=coerce_date(expiry_date),
        anniversary_date=coerce_date(anniversary_date),
        markout_date=coerce_date(markout_date),
        area_ha=coerce_area(area),
        section29_flag=bool(section29_flag),
        geometry=geometry,
    )


def dedupe_by_number(records: list[TenementRecord]) -> list[TenementRecord]:
    """Drop repeated tenement numbers, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[TenementRecord] = []
    for record in records:
        if record.number in seen:
            continue
        seen.add(record.number)
        unique.append(record)
    return unique
