from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import func, select

from tenement_sync.common.errors import PersistenceError
from tenement_sync.common.models import Jurisdiction
from tenement_sync.common.store import create_store_engine, init_schema, tenements
from tenement_sync.pipeline.normalise import canonical_tenement
from tenement_sync.pipeline.upsert import BatchUpserter, chunked


@pytest.fixture()
def engine(tmp_path: Path):
    engine = create_store_engine(f"sqlite:///{tmp_path / 'store.db'}")
    init_schema(engine)
    yield engine
    engine.dispose()


def _record(number: str, holder: str = "Acme", status: str = "LIVE", jurisdiction=Jurisdiction.WA):
    return canonical_tenement(
        jurisdiction,
        number,
        raw_type="E",
        raw_status=status,
        holder_name=holder,
        grant_date="2023-06-01",
        area=10,
    )


def _stored(engine) -> list[dict]:
    with engine.connect() as conn:
        rows = conn.execute(select(tenements).order_by(tenements.c.jurisdiction, tenements.c.number)).mappings().all()
    return [dict(row) for row in rows]


def _count(engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(tenements)).scalar_one()


def test_chunked_preserves_order():
    assert [list(batch) for batch in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]


def test_batch_size_must_be_positive(engine):
    with pytest.raises(ValueError):
        BatchUpserter(engine, batch_size=0)


def test_upsert_writes_canonical_columns(engine):
    outcome = BatchUpserter(engine).upsert([_record("E 80/1")])

    assert outcome.imported == 1
    assert outcome.errors == []
    row = _stored(engine)[0]
    assert row["jurisdiction"] == "WA"
    assert row["type"] == "Exploration Licence"
    assert row["status"] == "Active"
    assert row["grant_date"] == date(2023, 6, 1)
    assert row["area_ha"] == 10.0
    assert row["last_sync_at"] is not None


def test_upsert_is_idempotent(engine):
    records = [_record(f"E 80/{i}") for i in range(25)]
    upserter = BatchUpserter(engine, batch_size=10)

    upserter.upsert(records)
    first = [{k: v for k, v in row.items() if k != "last_sync_at"} for row in _stored(engine)]
    upserter.upsert(records)
    second = [{k: v for k, v in row.items() if k != "last_sync_at"} for row in _stored(engine)]

    assert _count(engine) == 25
    assert first == second


def test_upsert_refreshes_existing_rows(engine):
    upserter = BatchUpserter(engine)
    upserter.upsert([_record("E 80/1", holder="Old Holder", status="PENDING")])
    upserter.upsert([_record("E 80/1", holder="New Holder", status="LIVE")])

    rows = _stored(engine)
    assert len(rows) == 1
    assert rows[0]["holder_name"] == "New Holder"
    assert rows[0]["status"] == "Active"


def test_in_batch_duplicates_keep_first_occurrence(engine):
    records = [_record("E 80/1", holder="First"), _record("E 80/2"), _record("E 80/1", holder="Second")]

    outcome = BatchUpserter(engine).upsert(records)

    assert outcome.imported == 2
    rows = _stored(engine)
    assert [row["number"] for row in rows] == ["E 80/1", "E 80/2"]
    assert rows[0]["holder_name"] == "First"


def test_same_number_in_other_jurisdiction_is_a_distinct_key(engine):
    BatchUpserter(engine).upsert([_record("EL1", jurisdiction=Jurisdiction.NSW), _record("EL1", jurisdiction=Jurisdiction.VIC)])
    assert _count(engine) == 2


def test_failed_batch_is_isolated(engine, monkeypatch):
    upserter = BatchUpserter(engine, batch_size=500)
    original = upserter._write_batch
    calls = {"n": 0}

    def flaky_write(rows):
        calls["n"] += 1
        if calls["n"] == 2:
            raise PersistenceError("database is locked")
        original(rows)

    monkeypatch.setattr(upserter, "_write_batch", flaky_write)
    progress = []

    outcome = upserter.upsert(
        [_record(f"E 80/{i}") for i in range(1200)],
        on_batch=lambda batch, done, total: progress.append((batch, done, total)),
    )

    assert outcome.imported == 700
    assert outcome.errors == ["Batch 2: database is locked"]
    assert outcome.batches == 3
    assert _count(engine) == 700
    assert progress == [(1, 500, 1200), (2, 1000, 1200), (3, 1200, 1200)]


def test_database_errors_become_persistence_errors(engine):
    upserter = BatchUpserter(engine)
    with engine.begin() as conn:
        conn.exec_driver_sql("DROP TABLE tenements")

    outcome = upserter.upsert([_record("E 80/1")])

    assert outcome.imported == 0
    assert len(outcome.errors) == 1
    assert outcome.errors[0].startswith("Batch 1: ")
