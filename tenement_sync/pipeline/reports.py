"""Run summary written at the end of every CLI invocation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from tenement_sync.common.fs import write_json
from tenement_sync.common.models import SyncResult
from tenement_sync.common.time_utils import utc_timestamp_iso


def summarise_sync_outcomes(outcomes: dict[Any, SyncResult | str]) -> dict:
    """Fold per-source outcomes into counts plus a status of success, partial or error."""
    sources: dict[str, dict] = {}
    imported = 0
    failed = 0
    batch_errors = 0
    for key, outcome in outcomes.items():
        name = getattr(key, "value", key)
        if isinstance(outcome, SyncResult):
            sources[name] = outcome.to_dict()
            imported += outcome.imported
            batch_errors += len(outcome.errors)
        else:
            sources[name] = {"error": outcome}
            failed += 1

    status = "success"
    if outcomes and failed == len(outcomes):
        status = "error"
    elif failed or batch_errors:
        status = "partial"

    return {
        "status": status,
        "imported": imported,
        "failed_sources": failed,
        "batch_error_count": batch_errors,
        "sources": sources,
    }


def write_run_summary(data_dir: Path, run_id: str, command: str, payload: dict) -> Path:
    summary_path = data_dir / "run_meta" / f"{run_id}.summary.json"
    write_json(
        summary_path,
        {
            "run_id": run_id,
            "command": command,
            "finished_at": utc_timestamp_iso(),
            **payload,
        },
    )
    return summary_path
