"""Sync orchestration: health sweeps, per-jurisdiction syncs and source status bookkeeping."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from tenement_sync.common.logging import log_event
from tenement_sync.common.models import DataSourceConfig, Jurisdiction, StatusCheck, StatusResult, SyncResult
from tenement_sync.common.store import (
    count_by_jurisdiction,
    get_enabled_source,
    list_enabled_sources,
    mark_sync_error,
    mark_sync_running,
    mark_sync_success,
    record_health,
)
from tenement_sync.pipeline.progress import ProgressTracker
from tenement_sync.pipeline.upsert import BatchUpserter
from tenement_sync.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class SyncOrchestrator:
    def __init__(
        self,
        engine: Engine,
        registry: ProviderRegistry,
        upserter: BatchUpserter,
        progress: ProgressTracker | None = None,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self.upserter = upserter
        self.progress = progress or ProgressTracker()

    def check_all_data_sources_status(self) -> list[StatusResult]:
        """Probe every enabled source and persist the outcome. Never raises."""
        try:
            sources = list_enabled_sources(self.engine)
        except SQLAlchemyError as exc:
            log_event(
                logger,
                f"could not list data sources: {exc}",
                level=logging.ERROR,
                stage="status",
                event="STATUS_SWEEP_FAIL",
                status="error",
                error_code="PERSISTENCE_ERROR",
            )
            return []

        results: list[StatusResult] = []
        for source in sources:
            try:
                check = self.registry.resolve(source.jurisdiction).check_status()
            except Exception as exc:  # noqa: BLE001 - one bad source must not stop the sweep
                check = StatusCheck.failed(_message(exc))
            try:
                record_health(self.engine, source.id, check.status, check.error)
            except SQLAlchemyError as exc:
                log_event(
                    logger,
                    f"could not record health for {source.name}: {exc}",
                    level=logging.ERROR,
                    stage="status",
                    jurisdiction=source.jurisdiction.value,
                    source=source.name,
                    event="HEALTH_WRITE_FAIL",
                    error_code="PERSISTENCE_ERROR",
                )
            results.append(
                StatusResult(
                    id=source.id,
                    name=source.name,
                    jurisdiction=source.jurisdiction.value,
                    status=check.status,
                    error=check.error,
                )
            )
        return results

    def sync_data_source(self, jurisdiction: Jurisdiction | str) -> SyncResult:
        code = Jurisdiction.parse(jurisdiction)
        source = get_enabled_source(self.engine, code)
        return self._run(source)

    def ingest_from_source(self, source: DataSourceConfig) -> None:
        self._run(source)

    def _run(self, source: DataSourceConfig) -> SyncResult:
        code = source.jurisdiction
        started = time.monotonic()
        mark_sync_running(self.engine, source.id)
        self.progress.start(code, f"Fetching records from {source.name}")
        log_event(
            logger,
            f"sync started for {source.name}",
            stage="sync",
            jurisdiction=code.value,
            source=source.name,
            event="SYNC_START",
        )

        try:
            adapter = self.registry.resolve(code)
            records = adapter.fetch_tenements()
            self.progress.advance(code, 0, len(records), f"Fetched {len(records)} records, importing")
            outcome = self.upserter.upsert(
                records,
                on_batch=lambda batch, done, total: self.progress.advance(
                    code, done, total, f"Imported batch {batch} ({done}/{total})"
                ),
            )
        except Exception as exc:
            message = _message(exc)
            self._persist_error(source, message)
            self.progress.finish(code, f"Sync failed: {message}", failed=True)
            log_event(
                logger,
                f"sync failed for {source.name}: {message}",
                level=logging.ERROR,
                stage="sync",
                jurisdiction=code.value,
                source=source.name,
                event="SYNC_FAIL",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            raise

        succeeded_batches = outcome.batches - len(outcome.errors)
        first_error = outcome.errors[0] if outcome.errors else None
        if outcome.errors and succeeded_batches == 0:
            self._persist_error(source, first_error)
            self.progress.finish(code, f"Import failed: {first_error}", failed=True)
            status = "error"
        else:
            mark_sync_success(self.engine, source.id, outcome.imported, last_error=first_error)
            self.progress.finish(code, f"Imported {outcome.imported} records")
            status = "partial" if outcome.errors else "ok"

        log_event(
            logger,
            f"sync finished for {source.name}: {outcome.imported} imported, {len(outcome.errors)} batch errors",
            stage="sync",
            jurisdiction=code.value,
            source=source.name,
            event="SYNC_END",
            status=status,
            rows_in=len(records),
            rows_out=outcome.imported,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return SyncResult(jurisdiction=code, imported=outcome.imported, errors=list(outcome.errors))

    def _persist_error(self, source: DataSourceConfig, message: str) -> None:
        try:
            mark_sync_error(self.engine, source.id, message)
        except SQLAlchemyError as exc:
            log_event(
                logger,
                f"could not record sync error for {source.name}: {exc}",
                level=logging.ERROR,
                stage="sync",
                jurisdiction=source.jurisdiction.value,
                source=source.name,
                event="STATUS_WRITE_FAIL",
                error_code="PERSISTENCE_ERROR",
            )

    def sync_many(
        self,
        jurisdictions: Iterable[Jurisdiction | str],
        *,
        max_workers: int = 3,
    ) -> dict[Jurisdiction, SyncResult | str]:
        """Sync independent jurisdictions concurrently; a failure is reported as its message."""
        codes = list(dict.fromkeys(Jurisdiction.parse(code) for code in jurisdictions))
        outcomes: dict[Jurisdiction, SyncResult | str] = {}
        if not codes:
            return outcomes
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(codes)))) as pool:
            futures = {code: pool.submit(self.sync_data_source, code) for code in codes}
            for code, future in futures.items():
                try:
                    outcomes[code] = future.result()
                except Exception as exc:  # noqa: BLE001 - reported per jurisdiction
                    outcomes[code] = _message(exc)
        return outcomes

    def ingest_all_sources(self) -> dict[str, SyncResult | str]:
        outcomes: dict[str, SyncResult | str] = {}
        for source in list_enabled_sources(self.engine):
            try:
                outcomes[source.name] = self._run(source)
            except Exception as exc:  # noqa: BLE001 - already persisted and logged by _run
                outcomes[source.name] = _message(exc)
        return outcomes

    def tenement_stats(self) -> dict[str, int]:
        counts = count_by_jurisdiction(self.engine)
        return {code.value: counts.get(code.value, 0) for code in Jurisdiction}
