"""Built-in sample tenements served when a source runs in degraded mode."""

from __future__ import annotations

from tenement_sync.common.models import Jurisdiction, TenementRecord
from tenement_sync.pipeline.normalise import canonical_tenement

SAMPLE_ROWS: dict[Jurisdiction, tuple[dict, ...]] = {
    Jurisdiction.VIC: (
        {
            "number": "EL9999",
            "type": "EL",
            "status": "Current",
            "holder_name": "Victoria Resources Pty Ltd",
            "application_date": "2023-02-20",
            "grant_date": "2023-08-15",
            "expiry_date": "2028-08-14",
            "area": 2200.0,
        },
        {
            "number": "MIN5678",
            "type": "MIN",
            "status": "Current",
            "holder_name": "Goldfields Victoria Mining Ltd",
            "application_date": "2021-05-11",
            "grant_date": "2022-01-19",
            "expiry_date": "2032-01-18",
            "area": 310.4,
        },
    ),
    Jurisdiction.NSW: (
        {
            "number": "EL8888",
            "type": "EL",
            "status": "Current",
            "holder_name": "NSW Mining Company Pty Ltd",
            "application_date": "2023-01-15",
            "grant_date": "2023-06-01",
            "expiry_date": "2026-05-31",
            "area": 1500.0,
        },
        {
            "number": "ML1234",
            "type": "ML",
            "status": "Current",
            "holder_name": "Hunter Valley Resources Ltd",
            "application_date": "2022-03-10",
            "grant_date": "2022-12-15",
            "expiry_date": "2043-12-14",
            "area": 850.5,
        },
    ),
    Jurisdiction.QLD: (
        {
            "number": "EPM27890",
            "type": "EPM",
            "status": "Current",
            "holder_name": "Queensland Mining Ventures Pty Ltd",
            "application_date": "2023-04-10",
            "grant_date": "2023-10-05",
            "expiry_date": "2028-10-04",
            "area": 4200.0,
        },
        {
            "number": "ML80234",
            "type": "ML",
            "status": "Current",
            "holder_name": "Sunshine State Resources Ltd",
            "application_date": "2022-08-15",
            "grant_date": "2023-03-20",
            "expiry_date": "2044-03-19",
            "area": 1800.5,
        },
    ),
}


def sample_tenements(jurisdiction: Jurisdiction) -> list[TenementRecord]:
    records = []
    for row in SAMPLE_ROWS.get(jurisdiction, ()):
        record = canonical_tenement(
            jurisdiction,
            row["number"],
            raw_type=row["type"],
            raw_status=row["status"],
            holder_name=row["holder_name"],
            application_date=row["application_date"],
            grant_date=row["grant_date"],
            expiry_date=row["expiry_date"],
            area=row["area"],
        )
        if record is not None:
            records.append(record)
    return records
