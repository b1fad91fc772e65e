"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tenement_sync.common.constants import DEFAULT_BATCH_SIZE
from tenement_sync.common.errors import ConfigurationError
from tenement_sync.common.fs import read_yaml
from tenement_sync.common.models import Jurisdiction
from tenement_sync.common.retry import RetryPolicy
from tenement_sync.common.schema import validate_data_sources_config

DATA_SOURCES_FILE = "data_sources.yml"


@dataclass(frozen=True)
class ConfigBundle:
    ingest: dict
    sources: dict[Jurisdiction, dict]

    @property
    def batch_size(self) -> int:
        return int(self.ingest.get("batch_size", DEFAULT_BATCH_SIZE))

    @property
    def page_delay(self) -> float:
        return float(self.ingest.get("page_delay_seconds", 0.1))

    @property
    def max_workers(self) -> int:
        return int(self.ingest.get("max_workers", 3))

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_config(self.ingest.get("retry"))


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigurationError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / DATA_SOURCES_FILE
    cfg = validate_data_sources_config(
        _load_yaml_with_overlay(config_dir / DATA_SOURCES_FILE, overlay_path),
        allow_unknown=allow_unknown,
    )
    sources = {Jurisdiction.parse(code): source_cfg for code, source_cfg in cfg["sources"].items()}
    return ConfigBundle(ingest=cfg.get("ingest") or {}, sources=sources)


def resolve_jurisdictions(target: str, configured: dict[Jurisdiction, dict]) -> list[Jurisdiction]:
    if target == "all":
        return [code for code, cfg in configured.items() if cfg.get("enabled", True)]
    return [Jurisdiction.parse(target)]
