"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from tenement_sync.common.constants import SOURCE_FORMATS
from tenement_sync.common.errors import ConfigurationError
from tenement_sync.common.models import Jurisdiction

INGEST_KEYS = {"batch_size", "retry", "page_delay_seconds", "max_workers"}
RETRY_KEYS = {"max_attempts", "backoff_delay_seconds"}
SOURCE_REQUIRED = {"name", "format", "endpoint"}
SOURCE_COMMON = SOURCE_REQUIRED | {"enabled", "fields", "probe_url"}
FORMAT_KEYS = {
    "ArcGIS-REST": {"layers", "page_size", "order_by", "where", "out_fields", "fallback_when_empty", "dedupe_numbers"},
    "WFS": {"type_name", "max_features"},
    "CSV": {"delimiter", "default_status"},
    "TAB-in-ZIP": {"probe_marker", "encoding", "default_status"},
}
LAYER_KEYS = {"id", "type_label", "status_label"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigurationError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigurationError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigurationError(f"{ctx} must be a mapping")
    return obj


def _assert_positive_int(value, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"{ctx} must be a positive integer")


def validate_ingest_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "ingest")
    _assert_no_unknown_keys(cfg, INGEST_KEYS, "ingest", allow_unknown)
    for key in ("batch_size", "max_workers"):
        if key in cfg:
            _assert_positive_int(cfg[key], f"ingest.{key}")
    if "retry" in cfg:
        retry = _assert_mapping(cfg["retry"], "ingest.retry")
        _assert_no_unknown_keys(retry, RETRY_KEYS, "ingest.retry", allow_unknown)
        if "max_attempts" in retry:
            _assert_positive_int(retry["max_attempts"], "ingest.retry.max_attempts")
    return cfg


def validate_source_config(code: str, cfg: dict, *, allow_unknown: bool = False) -> dict:
    ctx = f"sources.{code}"
    _assert_mapping(cfg, ctx)
    _assert_required_keys(cfg, SOURCE_REQUIRED, ctx)
    fmt = cfg["format"]
    if fmt not in SOURCE_FORMATS:
        raise ConfigurationError(f"{ctx}.format must be one of {', '.join(SOURCE_FORMATS)}, got {fmt}")
    _assert_no_unknown_keys(cfg, SOURCE_COMMON | FORMAT_KEYS[fmt], ctx, allow_unknown)

    if fmt == "ArcGIS-REST":
        layers = cfg.get("layers")
        if not isinstance(layers, list) or not layers:
            raise ConfigurationError(f"{ctx}.layers must be a non-empty list")
        for idx, layer in enumerate(layers):
            if isinstance(layer, int):
                continue
            _assert_mapping(layer, f"{ctx}.layers[{idx}]")
            _assert_required_keys(layer, {"id"}, f"{ctx}.layers[{idx}]")
            _assert_no_unknown_keys(layer, LAYER_KEYS, f"{ctx}.layers[{idx}]", allow_unknown)
        if "page_size" in cfg:
            _assert_positive_int(cfg["page_size"], f"{ctx}.page_size")
    if fmt == "WFS":
        _assert_required_keys(cfg, {"type_name"}, ctx)
    if "fields" in cfg:
        _assert_mapping(cfg["fields"], f"{ctx}.fields")
    return cfg


def validate_data_sources_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "data_sources config")
    _assert_required_keys(cfg, {"sources"}, "data_sources config")
    _assert_no_unknown_keys(cfg, {"ingest", "sources"}, "data_sources config", allow_unknown)
    validate_ingest_config(cfg.get("ingest") or {}, allow_unknown=allow_unknown)

    sources = _assert_mapping(cfg["sources"], "sources")
    if not sources:
        raise ConfigurationError("sources must configure at least one jurisdiction")
    for code, source_cfg in sources.items():
        Jurisdiction.parse(code)
        validate_source_config(str(code), source_cfg, allow_unknown=allow_unknown)
    return cfg
