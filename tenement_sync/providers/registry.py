"""Jurisdiction -> adapter registry, built once from configuration and injected into the orchestrator."""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from tenement_sync.common.errors import ConfigurationError
from tenement_sync.common.http import HttpClient
from tenement_sync.common.models import Jurisdiction
from tenement_sync.common.retry import RetryPolicy
from tenement_sync.providers.arcgis import ArcGisPagedAdapter
from tenement_sync.providers.base import ProviderAdapter
from tenement_sync.providers.delimited import DelimitedTextAdapter
from tenement_sync.providers.wfs import WfsGeoJsonAdapter
from tenement_sync.providers.zip_archive import ZipArchiveAdapter

ADAPTER_TYPES: dict[str, type[ProviderAdapter]] = {
    "ArcGIS-REST": ArcGisPagedAdapter,
    "WFS": WfsGeoJsonAdapter,
    "CSV": DelimitedTextAdapter,
    "TAB-in-ZIP": ZipArchiveAdapter,
}


class ProviderRegistry(Mapping[Jurisdiction, ProviderAdapter]):
    def __init__(self, adapters: Mapping[Jurisdiction, ProviderAdapter] | None = None) -> None:
        self._adapters: dict[Jurisdiction, ProviderAdapter] = dict(adapters or {})

    def __getitem__(self, jurisdiction: Jurisdiction) -> ProviderAdapter:
        return self._adapters[jurisdiction]

    def __iter__(self) -> Iterator[Jurisdiction]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.get_jurisdiction()] = adapter

    def resolve(self, jurisdiction: Jurisdiction | str) -> ProviderAdapter:
        code = Jurisdiction.parse(jurisdiction)
        adapter = self._adapters.get(code)
        if adapter is None:
            raise ConfigurationError(f"No adapter registered for jurisdiction: {code.value}")
        return adapter


def build_adapter(
    jurisdiction: Jurisdiction,
    source_cfg: dict[str, Any],
    http_client: HttpClient,
    *,
    retry_policy: RetryPolicy,
    page_delay: float = 0.1,
) -> ProviderAdapter:
    adapter_type = ADAPTER_TYPES.get(source_cfg.get("format"))
    if adapter_type is None:
        raise ConfigurationError(f"Unsupported source format for {jurisdiction.value}: {source_cfg.get('format')}")
    if adapter_type is ArcGisPagedAdapter:
        return ArcGisPagedAdapter(
            jurisdiction, source_cfg, http_client, retry_policy=retry_policy, page_delay=page_delay
        )
    return adapter_type(jurisdiction, source_cfg, http_client, retry_policy=retry_policy)


def build_registry(
    sources: Mapping[Jurisdiction, dict[str, Any]],
    http_client: HttpClient,
    *,
    retry_policy: RetryPolicy | None = None,
    page_delay: float = 0.1,
) -> ProviderRegistry:
    """One adapter per configured source, enabled or not; the store decides which ones run."""
    policy = retry_policy or RetryPolicy()
    registry = ProviderRegistry()
    for jurisdiction, source_cfg in sources.items():
        registry.register(
            build_adapter(jurisdiction, source_cfg, http_client, retry_policy=policy, page_delay=page_delay)
        )
    return registry
