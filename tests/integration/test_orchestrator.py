from __future__ import annotations

from pathlib import Path

import pytest

from tenement_sync.common.errors import ConfigurationError, PersistenceError, UpstreamSchemaError
from tenement_sync.common.models import Jurisdiction, StatusCheck, SyncResult
from tenement_sync.common.store import create_store_engine, get_enabled_source, init_schema, seed_data_sources
from tenement_sync.pipeline.normalise import canonical_tenement
from tenement_sync.pipeline.orchestrator import SyncOrchestrator
from tenement_sync.pipeline.progress import ProgressTracker
from tenement_sync.pipeline.upsert import BatchUpserter
from tenement_sync.providers.registry import ProviderRegistry

SOURCES = {
    Jurisdiction.WA: {"name": "WA source", "format": "ArcGIS-REST", "endpoint": "https://example.test/wa"},
    Jurisdiction.NSW: {"name": "NSW source", "format": "CSV", "endpoint": "https://example.test/nsw.csv"},
    Jurisdiction.TAS: {"name": "TAS source", "format": "ArcGIS-REST", "endpoint": "https://example.test/tas", "enabled": False},
}


class FakeAdapter:
    def __init__(self, jurisdiction, records=None, status=None, fetch_error=None, status_error=None):
        self.jurisdiction = jurisdiction
        self.records = records or []
        self.status = status or StatusCheck.active()
        self.fetch_error = fetch_error
        self.status_error = status_error

    def get_jurisdiction(self):
        return self.jurisdiction

    def check_status(self):
        if self.status_error is not None:
            raise self.status_error
        return self.status

    def fetch_tenements(self):
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.records)


def _records(jurisdiction, n):
    return [
        canonical_tenement(jurisdiction, f"{jurisdiction.value}-{i}", raw_type="EL", raw_status="Current")
        for i in range(n)
    ]


@pytest.fixture()
def engine(tmp_path: Path):
    engine = create_store_engine(f"sqlite:///{tmp_path / 'store.db'}")
    init_schema(engine)
    seed_data_sources(engine, SOURCES)
    yield engine
    engine.dispose()


def _orchestrator(engine, *adapters, batch_size=500):
    registry = ProviderRegistry()
    for adapter in adapters:
        registry.register(adapter)
    return SyncOrchestrator(engine, registry, BatchUpserter(engine, batch_size=batch_size), ProgressTracker())


@pytest.mark.integration
def test_seeding_is_idempotent(engine):
    assert seed_data_sources(engine, SOURCES) == 0


@pytest.mark.integration
def test_status_sweep_continues_past_failing_and_missing_adapters(engine):
    orchestrator = _orchestrator(
        engine,
        FakeAdapter(Jurisdiction.WA, status_error=RuntimeError("adapter exploded")),
    )

    results = orchestrator.check_all_data_sources_status()

    by_code = {result.jurisdiction: result for result in results}
    assert set(by_code) == {"WA", "NSW"}
    assert by_code["WA"].status == "Error"
    assert by_code["WA"].error == "adapter exploded"
    assert by_code["NSW"].status == "Error"
    assert "No adapter registered" in by_code["NSW"].error

    stored = get_enabled_source(engine, Jurisdiction.WA)
    assert stored.health_status == "Error"
    assert stored.last_error == "adapter exploded"
    assert stored.last_health_check is not None


@pytest.mark.integration
def test_status_sweep_records_active_sources(engine):
    orchestrator = _orchestrator(engine, FakeAdapter(Jurisdiction.WA), FakeAdapter(Jurisdiction.NSW))

    results = orchestrator.check_all_data_sources_status()

    assert [result.status for result in results] == ["Active", "Active"]
    assert get_enabled_source(engine, Jurisdiction.NSW).health_status == "Active"


@pytest.mark.integration
def test_sync_success_persists_status_and_count(engine):
    orchestrator = _orchestrator(engine, FakeAdapter(Jurisdiction.WA, records=_records(Jurisdiction.WA, 1200)))

    result = orchestrator.sync_data_source("WA")

    assert isinstance(result, SyncResult)
    assert result.imported == 1200
    assert result.errors == []
    source = get_enabled_source(engine, Jurisdiction.WA)
    assert source.sync_status == "success"
    assert source.record_count == 1200
    assert source.last_sync_attempt is not None
    assert source.last_sync_success is not None
    assert orchestrator.progress.get(Jurisdiction.WA).status == "completed"
    assert orchestrator.progress.get(Jurisdiction.WA).current_record == 1200
    assert orchestrator.tenement_stats()["WA"] == 1200
    assert orchestrator.tenement_stats()["NT"] == 0


@pytest.mark.integration
def test_sync_failure_persists_error_and_reraises(engine):
    orchestrator = _orchestrator(
        engine,
        FakeAdapter(Jurisdiction.NSW, fetch_error=UpstreamSchemaError("No tenements found")),
    )

    with pytest.raises(UpstreamSchemaError):
        orchestrator.sync_data_source(Jurisdiction.NSW)

    source = get_enabled_source(engine, Jurisdiction.NSW)
    assert source.sync_status == "error"
    assert source.last_error == "No tenements found"
    assert orchestrator.progress.get(Jurisdiction.NSW).status == "error"


@pytest.mark.integration
def test_sync_without_enabled_source_is_configuration_error(engine):
    orchestrator = _orchestrator(engine, FakeAdapter(Jurisdiction.TAS))

    with pytest.raises(ConfigurationError):
        orchestrator.sync_data_source("TAS")
    with pytest.raises(ConfigurationError):
        orchestrator.sync_data_source("QLD")


@pytest.mark.integration
def test_sync_without_adapter_marks_source_error(engine):
    orchestrator = _orchestrator(engine)

    with pytest.raises(ConfigurationError):
        orchestrator.sync_data_source("WA")
    assert get_enabled_source(engine, Jurisdiction.WA).sync_status == "error"


@pytest.mark.integration
def test_partial_batch_failure_keeps_success_status(engine, monkeypatch):
    orchestrator = _orchestrator(engine, FakeAdapter(Jurisdiction.WA, records=_records(Jurisdiction.WA, 1200)))
    original = orchestrator.upserter._write_batch
    calls = {"n": 0}

    def flaky_write(rows):
        calls["n"] += 1
        if calls["n"] == 2:
            raise PersistenceError("disk I/O error")
        original(rows)

    monkeypatch.setattr(orchestrator.upserter, "_write_batch", flaky_write)

    result = orchestrator.sync_data_source("WA")

    assert result.imported == 700
    assert result.errors == ["Batch 2: disk I/O error"]
    source = get_enabled_source(engine, Jurisdiction.WA)
    assert source.sync_status == "success"
    assert source.record_count == 700
    assert source.last_error == "Batch 2: disk I/O error"


@pytest.mark.integration
def test_all_batches_failing_marks_error_without_raising(engine, monkeypatch):
    orchestrator = _orchestrator(engine, FakeAdapter(Jurisdiction.WA, records=_records(Jurisdiction.WA, 3)))

    def always_fail(rows):
        raise PersistenceError("read-only database")

    monkeypatch.setattr(orchestrator.upserter, "_write_batch", always_fail)

    result = orchestrator.sync_data_source("WA")

    assert result.imported == 0
    assert result.errors == ["Batch 1: read-only database"]
    source = get_enabled_source(engine, Jurisdiction.WA)
    assert source.sync_status == "error"
    assert source.last_error == "Batch 1: read-only database"


@pytest.mark.integration
def test_sync_many_isolates_failures(engine):
    orchestrator = _orchestrator(
        engine,
        FakeAdapter(Jurisdiction.WA, records=_records(Jurisdiction.WA, 20)),
        FakeAdapter(Jurisdiction.NSW, fetch_error=RuntimeError("upstream gone")),
    )

    outcomes = orchestrator.sync_many(["WA", "NSW", "WA"], max_workers=2)

    assert set(outcomes) == {Jurisdiction.WA, Jurisdiction.NSW}
    assert outcomes[Jurisdiction.WA].imported == 20
    assert outcomes[Jurisdiction.NSW] == "upstream gone"


@pytest.mark.integration
def test_ingest_all_sources_runs_every_enabled_source(engine):
    orchestrator = _orchestrator(
        engine,
        FakeAdapter(Jurisdiction.WA, fetch_error=RuntimeError("boom")),
        FakeAdapter(Jurisdiction.NSW, records=_records(Jurisdiction.NSW, 5)),
    )

    outcomes = orchestrator.ingest_all_sources()

    assert outcomes["WA source"] == "boom"
    assert outcomes["NSW source"].imported == 5
    assert get_enabled_source(engine, Jurisdiction.NSW).sync_status == "success"


@pytest.mark.integration
def test_ingest_from_source_raises_after_persisting(engine):
    orchestrator = _orchestrator(engine, FakeAdapter(Jurisdiction.WA, fetch_error=RuntimeError("boom")))
    source = get_enabled_source(engine, Jurisdiction.WA)

    with pytest.raises(RuntimeError):
        orchestrator.ingest_from_source(source)
    assert get_enabled_source(engine, Jurisdiction.WA).last_error == "boom"


@pytest.mark.integration
def test_healthy_probe_keeps_last_sync_error(engine):
    adapter = FakeAdapter(Jurisdiction.WA, fetch_error=RuntimeError("upstream exploded"))
    orchestrator = _orchestrator(engine, adapter, FakeAdapter(Jurisdiction.NSW))

    with pytest.raises(RuntimeError):
        orchestrator.sync_data_source("WA")
    orchestrator.check_all_data_sources_status()

    source = get_enabled_source(engine, Jurisdiction.WA)
    assert source.health_status == "Active"
    assert source.sync_status == "error"
    assert source.last_error == "upstream exploded"

    adapter.status = StatusCheck.failed("probe timed out")
    orchestrator.check_all_data_sources_status()
    assert get_enabled_source(engine, Jurisdiction.WA).last_error == "probe timed out"
