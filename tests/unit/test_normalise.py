from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from tenement_sync.common.models import Jurisdiction
from tenement_sync.pipeline.normalise import (
    CANONICAL_STATUSES,
    canonical_tenement,
    coerce_area,
    coerce_date,
    dedupe_by_number,
    normalize_status,
    normalize_type,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("LIVE", "Active"),
        ("granted", "Active"),
        (" Current ", "Active"),
        ("Application", "Pending"),
        ("SURRENDERED", "Expired"),
        ("cancelled", "Expired"),
    ],
)
def test_normalize_status_maps_shared_vocabulary(raw, expected):
    assert normalize_status(raw, Jurisdiction.WA) == expected


def test_normalize_status_passes_through_unmapped_and_defaults_empty():
    assert normalize_status("Under Objection", Jurisdiction.NSW) == "Under Objection"
    assert normalize_status("", Jurisdiction.NSW) == "Unknown"
    assert normalize_status(None) == "Unknown"


def test_normalize_type_is_per_jurisdiction():
    assert normalize_type("E", Jurisdiction.WA) == "Exploration Licence"
    assert normalize_type("ml", Jurisdiction.VIC) == "Mining Licence"
    assert normalize_type("ML", Jurisdiction.NT) == "Mineral Lease"
    assert normalize_type("EPM", Jurisdiction.QLD) == "Exploration Permit for Minerals"
    assert normalize_type("EPM", Jurisdiction.WA) == "EPM"
    assert normalize_type("  ", Jurisdiction.TAS) == "Unknown"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (1672531200000, "2023-01-01"),
        ("1672531200000", "2023-01-01"),
        ("2023-06-01", "2023-06-01"),
        ("2023-06-01T10:15:00Z", "2023-06-01"),
        ("2023-06-01 10:15:00", "2023-06-01"),
        ("01/06/2023", "2023-06-01"),
        ("01-06-2023", "2023-06-01"),
        ("1 Jun 2023", "2023-06-01"),
        (date(2020, 2, 29), "2020-02-29"),
        (datetime(2021, 3, 4, 23, 0, tzinfo=timezone.utc), "2021-03-04"),
    ],
)
def test_coerce_date_accepts_upstream_encodings(value, expected):
    assert coerce_date(value) == expected


@pytest.mark.parametrize("value", [None, "", "not a date", "31/02/2023", True, "null"])
def test_coerce_date_returns_none_for_unparseable(value):
    assert coerce_date(value) is None


def test_coerce_area_handles_units_and_rejects_negatives():
    assert coerce_area("118.04 HA") == pytest.approx(118.04)
    assert coerce_area("50000 m2") == pytest.approx(5.0)
    assert coerce_area("1,250.5") == pytest.approx(1250.5)
    assert coerce_area(12) == 12.0
    assert coerce_area(-3) is None
    assert coerce_area("n/a") is None


def test_coerce_area_keeps_sign_of_text_and_scales_square_kilometres():
    assert coerce_area("-12.5") is None
    assert coerce_area("3 km2") == pytest.approx(300.0)
    assert coerce_area("2 sq km") == pytest.approx(200.0)
    assert coerce_area("850500 m2") == pytest.approx(85.05)


def test_canonical_tenement_requires_number():
    assert canonical_tenement(Jurisdiction.WA, "  ", raw_type="E", raw_status="LIVE") is None

    record = canonical_tenement(
        Jurisdiction.WA,
        " E 80/1234 ",
        raw_type="E",
        raw_status="LIVE",
        holder_name="  Example Pty Ltd ",
        grant_date="01/06/2023",
        area="120.5",
    )
    assert record is not None
    assert record.number == "E 80/1234"
    assert record.type == "Exploration Licence"
    assert record.status in CANONICAL_STATUSES
    assert record.holder_name == "Example Pty Ltd"
    assert record.grant_date == "2023-06-01"
    assert record.area_ha == pytest.approx(120.5)
    assert record.key == ("WA", "E 80/1234")


def test_dedupe_by_number_keeps_first_occurrence():
    first = canonical_tenement(Jurisdiction.NSW, "EL1", raw_type="EL", raw_status="Current", holder_name="First")
    second = canonical_tenement(Jurisdiction.NSW, "EL1", raw_type="EL", raw_status="Current", holder_name="Second")
    other = canonical_tenement(Jurisdiction.NSW, "EL2", raw_type="EL", raw_status="Current")

    unique = dedupe_by_number([first, second, other])

    assert [r.number for r in unique] == ["EL1", "EL2"]
    assert unique[0].holder_name == "First"
