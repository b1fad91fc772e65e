"""CLI entrypoint for the Australian mining tenement sync pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from tenement_sync.common.config_loader import ConfigBundle, load_all_configs, resolve_jurisdictions
from tenement_sync.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, SUPPORTED_JURISDICTIONS
from tenement_sync.common.errors import PipelineError
from tenement_sync.common.fs import ensure_dir
from tenement_sync.common.http import HttpClient
from tenement_sync.common.ids import generate_run_id
from tenement_sync.common.logging import build_logger, log_event
from tenement_sync.common.store import create_store_engine, init_schema, seed_data_sources
from tenement_sync.pipeline.orchestrator import SyncOrchestrator
from tenement_sync.pipeline.progress import ProgressTracker
from tenement_sync.pipeline.reports import summarise_sync_outcomes, write_run_summary
from tenement_sync.pipeline.upsert import BatchUpserter
from tenement_sync.providers.registry import build_registry


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--jurisdiction", default="all", choices=[*SUPPORTED_JURISDICTIONS, "all"])
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--database-url", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def default_database_url(data_dir: Path) -> str:
    ensure_dir(data_dir)
    return f"sqlite:///{data_dir / 'tenements.db'}"


def build_orchestrator(engine, bundle: ConfigBundle, http_client: HttpClient) -> SyncOrchestrator:
    registry = build_registry(
        bundle.sources,
        http_client,
        retry_policy=bundle.retry_policy,
        page_delay=bundle.page_delay,
    )
    return SyncOrchestrator(
        engine,
        registry,
        BatchUpserter(engine, batch_size=bundle.batch_size),
        ProgressTracker(),
    )


def execute_command(
    command: str,
    args: argparse.Namespace,
    bundle: ConfigBundle,
    engine,
    http_client: HttpClient,
) -> dict:
    init_schema(engine)
    if command == "init":
        created = seed_data_sources(engine, bundle.sources)
        return {"status": "success", "created_sources": created, "configured_sources": len(bundle.sources)}

    orchestrator = build_orchestrator(engine, bundle, http_client)
    if command == "status":
        results = orchestrator.check_all_data_sources_status()
        unhealthy = [result for result in results if result.status != "Active"]
        return {
            "status": "partial" if unhealthy else "success",
            "sources": [result.to_dict() for result in results],
        }
    if command == "sync":
        jurisdictions = resolve_jurisdictions(args.jurisdiction, bundle.sources)
        outcomes = orchestrator.sync_many(jurisdictions, max_workers=bundle.max_workers)
        summary = summarise_sync_outcomes(outcomes)
        summary["progress"] = orchestrator.progress.snapshot()
        return summary
    if command == "stats":
        counts = orchestrator.tenement_stats()
        return {"status": "success", "counts": counts, "total": sum(counts.values())}
    raise ValueError(f"Unknown command: {command}")


def run_command(args: argparse.Namespace, *, http_client: HttpClient | None = None) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    engine = create_store_engine(args.database_url or default_database_url(data_dir))
    client = http_client or HttpClient()

    log_event(logger, "command start", run_id=run_id, stage=args.command, event="COMMAND_START", status="ok")
    try:
        payload = execute_command(args.command, args, bundle, engine, client)
    finally:
        if http_client is None:
            client.close()
        engine.dispose()

    write_run_summary(data_dir, run_id=run_id, command=args.command, payload=payload)
    status = payload["status"]
    log_event(
        logger,
        "command end",
        level=logging.INFO if status == "success" else logging.WARNING,
        run_id=run_id,
        stage=args.command,
        event="COMMAND_END",
        status=status,
    )

    if status == "error":
        return EXIT_HARD_FAIL
    if status == "partial":
        return EXIT_HARD_FAIL if args.strict else EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError as exc:
        log_event(
            logging.getLogger("tenement_sync.cli"),
            f"command failed: {exc}",
            level=logging.ERROR,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    except Exception as exc:
        log_event(
            logging.getLogger("tenement_sync.cli"),
            f"unexpected failure: {exc}",
            level=logging.ERROR,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code="UNEXPECTED_ERROR",
        )
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
