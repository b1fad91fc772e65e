from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from tenement_sync.cli import parse_args, run_command
from tenement_sync.common.errors import TransientNetworkError
from tenement_sync.common.fs import read_json


def _nt_archive() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(
            "Titles.csv",
            "TITLE_NO,TITLE_TYPE,STATUS,HOLDER\nEL 1,EL,Granted,Alpha\nEL 2,EL,Application,Beta\n",
        )
    return buffer.getvalue()


class FakeNtClient:
    def get_bytes(self, url, **kwargs):
        return _nt_archive()

    def get_text(self, url, **kwargs):
        raise TransientNetworkError("offline")

    def get_json(self, url, **kwargs):
        raise TransientNetworkError("offline")


def _args(command: str, data_dir: Path, run_id: str, *extra: str):
    return parse_args(
        [
            command,
            "--config-dir",
            "config",
            "--data-dir",
            str(data_dir),
            "--run-id",
            run_id,
            *extra,
        ]
    )


@pytest.mark.integration
def test_cli_init_sync_and_stats(tmp_path: Path):
    data_dir = tmp_path / "data"
    client = FakeNtClient()

    assert run_command(_args("init", data_dir, "run-init"), http_client=client) == 0
    init_summary = read_json(data_dir / "run_meta" / "run-init.summary.json")
    assert init_summary["created_sources"] == 6

    assert run_command(_args("sync", data_dir, "run-sync", "--jurisdiction", "NT"), http_client=client) == 0
    sync_summary = read_json(data_dir / "run_meta" / "run-sync.summary.json")
    assert sync_summary["status"] == "success"
    assert sync_summary["imported"] == 2
    assert sync_summary["sources"]["NT"]["imported"] == 2
    assert sync_summary["progress"]["NT"]["status"] == "completed"

    assert run_command(_args("stats", data_dir, "run-stats"), http_client=client) == 0
    stats = read_json(data_dir / "run_meta" / "run-stats.summary.json")
    assert stats["counts"]["NT"] == 2
    assert stats["total"] == 2
    assert (data_dir / "run_meta" / "run-stats.log.jsonl").exists()
    assert (data_dir / "tenements.db").exists()


@pytest.mark.integration
def test_cli_status_reports_partial_when_sources_unreachable(tmp_path: Path):
    data_dir = tmp_path / "data"
    client = FakeNtClient()
    assert run_command(_args("init", data_dir, "run-init"), http_client=client) == 0

    exit_code = run_command(_args("status", data_dir, "run-status"), http_client=client)

    assert exit_code == 10
    summary = read_json(data_dir / "run_meta" / "run-status.summary.json")
    assert len(summary["sources"]) == 6
    assert {source["status"] for source in summary["sources"]} == {"Error"}
    assert run_command(_args("status", data_dir, "run-status-strict", "--strict"), http_client=client) == 20


@pytest.mark.integration
def test_cli_sync_of_unseeded_store_is_hard_failure(tmp_path: Path):
    exit_code = run_command(_args("sync", tmp_path / "data", "run-empty", "--jurisdiction", "WA"), http_client=FakeNtClient())
    assert exit_code == 20
