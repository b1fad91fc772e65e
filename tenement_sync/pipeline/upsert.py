"""Batched, failure-isolated upserts into the canonical tenement table."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, Sequence

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from tenement_sync.common.constants import DEFAULT_BATCH_SIZE
from tenement_sync.common.errors import PersistenceError
from tenement_sync.common.logging import log_event
from tenement_sync.common.models import TenementRecord
from tenement_sync.common.store import TENEMENT_KEY, as_date, dialect_insert, tenements
from tenement_sync.common.time_utils import utc_now

logger = logging.getLogger(__name__)

REFRESHED_COLUMNS = (
    "type",
    "status",
    "holder_name",
    "application_date",
    "grant_date",
    "expiry_date",
    "anniversary_date",
    "markout_date",
    "area_ha",
    "section29_flag",
    "geometry",
    "last_sync_at",
)


@dataclass
class ImportOutcome:
    imported: int = 0
    errors: list[str] = field(default_factory=list)
    batches: int = 0


BatchCallback = Callable[[int, int, int], None]


def chunked(records: Sequence[TenementRecord], size: int) -> Iterator[Sequence[TenementRecord]]:
    for i in range(0, len(records), size):
        yield records[i : i + size]


def to_row(record: TenementRecord, synced_at: datetime) -> dict:
    return {
        "jurisdiction": record.jurisdiction.value,
        "number": record.number,
        "type": record.type,
        "status": record.status,
        "holder_name": record.holder_name,
        "application_date": as_date(record.application_date),
        "grant_date": as_date(record.grant_date),
        "expiry_date": as_date(record.expiry_date),
        "anniversary_date": as_date(record.anniversary_date),
        "markout_date": as_date(record.markout_date),
        "area_ha": record.area_ha,
        "section29_flag": bool(record.section29_flag),
        "geometry": record.geometry,
        "last_sync_at": synced_at,
    }


def dedupe_rows(rows: list[dict]) -> list[dict]:
    """Keep the first row for each (jurisdiction, number) key, preserving order."""
    seen: set[tuple] = set()
    unique: list[dict] = []
    for row in rows:
        key = tuple(row[col] for col in TENEMENT_KEY)
        if key in seen:
            continue
        seen.add(key)
        unique.append(row)
    return unique


class BatchUpserter:
    def __init__(self, engine: Engine, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.engine = engine
        self.batch_size = batch_size

    def _statement(self, rows: list[dict]):
        stmt = dialect_insert(self.engine, tenements).values(rows)
        return stmt.on_conflict_do_update(
            index_elements=list(TENEMENT_KEY),
            set_={col: stmt.excluded[col] for col in REFRESHED_COLUMNS},
        )

    def _write_batch(self, rows: list[dict]) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(self._statement(rows))
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc).splitlines()[0]) from exc

    def upsert(
        self,
        records: Sequence[TenementRecord],
        *,
        on_batch: BatchCallback | None = None,
    ) -> ImportOutcome:
        """Write ``records`` batch by batch; a failed batch is recorded and the rest still run.

        ``on_batch`` receives ``(batch_number, records_done, total_records)`` after each batch.
        """
        outcome = ImportOutcome()
        total = len(records)
        batch_count = (total + self.batch_size - 1) // self.batch_size
        log_event(
            logger,
            f"upserting {total} tenements in {batch_count} batches",
            stage="upsert",
            event="UPSERT_START",
            rows_in=total,
        )

        done = 0
        for batch_number, batch in enumerate(chunked(records, self.batch_size), start=1):
            outcome.batches += 1
            started = time.monotonic()
            synced_at = utc_now()
            rows = dedupe_rows([to_row(record, synced_at) for record in batch])
            try:
                self._write_batch(rows)
            except PersistenceError as exc:
                outcome.errors.append(f"Batch {batch_number}: {exc}")
                log_event(
                    logger,
                    f"batch {batch_number}/{batch_count} failed: {exc}",
                    level=logging.ERROR,
                    stage="upsert",
                    event="BATCH_FAIL",
                    status="error",
                    batch=batch_number,
                    rows_in=len(batch),
                    error_code=exc.error_code,
                )
            else:
                outcome.imported += len(rows)
                log_event(
                    logger,
                    f"batch {batch_number}/{batch_count} upserted {len(rows)} records",
                    stage="upsert",
                    event="BATCH_OK",
                    status="ok",
                    batch=batch_number,
                    rows_in=len(batch),
                    rows_out=len(rows),
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            done += len(batch)
            if on_batch is not None:
                on_batch(batch_number, done, total)

        log_event(
            logger,
            f"upsert complete: {outcome.imported} records, {len(outcome.errors)} errors",
            stage="upsert",
            event="UPSERT_END",
            status="ok" if not outcome.errors else "partial",
            rows_in=total,
            rows_out=outcome.imported,
        )
        return outcome
