"""Paged ArcGIS REST feature-service adapter (WA, QLD, TAS)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import partial
from typing import Any

from tenement_sync.common.constants import DEFAULT_PAGE_SIZE
from tenement_sync.common.errors import TransientNetworkError, UpstreamSchemaError
from tenement_sync.common.http import DATA_TIMEOUT, PROBE_TIMEOUT, RETRYABLE_STATUS_CODES, HttpClient
from tenement_sync.common.models import Jurisdiction, StatusCheck, TenementRecord
from tenement_sync.common.retry import RetryPolicy
from tenement_sync.pipeline.normalise import dedupe_by_number
from tenement_sync.providers.base import ProviderAdapter
from tenement_sync.providers.fields import FieldMap, map_attributes
from tenement_sync.providers.samples import sample_tenements


@dataclass(frozen=True)
class ArcGisLayer:
    id: int
    type_label: str | None = None
    status_label: str | None = None

    @classmethod
    def from_config(cls, cfg: dict | int) -> "ArcGisLayer":
        if isinstance(cfg, int):
            return cls(id=cfg)
        return cls(id=int(cfg["id"]), type_label=cfg.get("type_label"), status_label=cfg.get("status_label"))


@dataclass(frozen=True)
class ArcGisFeature:
    """One ``features[]`` entry of an ArcGIS ``/query`` response."""

    layer: ArcGisLayer
    attributes: dict[str, Any]

    @classmethod
    def from_payload(cls, layer: ArcGisLayer, feature: Any) -> "ArcGisFeature | None":
        if not isinstance(feature, dict):
            return None
        attributes = feature.get("attributes")
        if not isinstance(attributes, dict):
            return None
        return cls(layer=layer, attributes=attributes)

    def to_tenement(self, jurisdiction: Jurisdiction, field_map: FieldMap) -> TenementRecord | None:
        return map_attributes(
            self.attributes,
            jurisdiction,
            field_map,
            default_type=self.layer.type_label,
            default_status=self.layer.status_label,
        )


def _error_message(payload: dict) -> str:
    error = payload.get("error")
    if isinstance(error, dict):
        return f"{error.get('code')}: {error.get('message')}"
    return str(error)


def check_arcgis_payload(payload: dict, url: str) -> dict:
    """Raise for ArcGIS error envelopes, which arrive with HTTP 200."""
    if "error" not in payload:
        return payload
    error = payload.get("error")
    code = error.get("code") if isinstance(error, dict) else None
    if code in RETRYABLE_STATUS_CODES:
        raise TransientNetworkError(f"ArcGIS query failed for {url}: {_error_message(payload)}")
    raise UpstreamSchemaError(f"ArcGIS query failed for {url}: {_error_message(payload)}")


class ArcGisPagedAdapter(ProviderAdapter):
    source_type = "arcgis"
    default_fields = FieldMap(object_id=("OBJECTID", "objectid", "oid"))

    def __init__(
        self,
        jurisdiction: Jurisdiction,
        source_config: dict[str, Any],
        http_client: HttpClient,
        *,
        retry_policy: RetryPolicy | None = None,
        page_delay: float = 0.1,
    ) -> None:
        super().__init__(jurisdiction, source_config, http_client, retry_policy=retry_policy)
        self.layers = [ArcGisLayer.from_config(layer) for layer in source_config.get("layers") or [0]]
        self.page_size = int(source_config.get("page_size", DEFAULT_PAGE_SIZE))
        self.order_by = source_config.get("order_by", "OBJECTID")
        self.where = source_config.get("where", "1=1")
        self.out_fields = source_config.get("out_fields", "*")
        self.fallback_when_empty = bool(source_config.get("fallback_when_empty", False))
        self.dedupe_numbers = bool(source_config.get("dedupe_numbers", False))
        self.page_delay = page_delay

    def _layer_url(self, layer: ArcGisLayer) -> str:
        return f"{self.endpoint}/{layer.id}"

    def _probe(self) -> StatusCheck:
        payload = self.client.get_json(
            self.endpoint,
            source_type=self.source_type,
            params={"f": "json"},
            timeout=PROBE_TIMEOUT,
        )
        if "error" in payload:
            return StatusCheck.failed(f"{self.name} returned an error: {_error_message(payload)}")
        published = {layer.get("id") for layer in payload.get("layers") or [] if isinstance(layer, dict)}
        if not published:
            return StatusCheck.failed(f"Invalid response from {self.name}: no layers listed")
        missing = [layer.id for layer in self.layers if layer.id not in published]
        if missing:
            return StatusCheck(status="Inactive", error=f"Layers not published: {', '.join(map(str, missing))}")
        return StatusCheck.active()

    def _count(self, layer_url: str) -> int:
        payload = self.client.get_json(
            f"{layer_url}/query",
            source_type=self.source_type,
            params={"where": self.where, "returnCountOnly": "true", "f": "json"},
            timeout=DATA_TIMEOUT,
        )
        check_arcgis_payload(payload, layer_url)
        count = payload.get("count")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise UpstreamSchemaError(f"ArcGIS count query for {layer_url} returned no usable count")
        return count

    def _query_page(self, layer_url: str, offset: int, size: int) -> list:
        payload = self.client.get_json(
            f"{layer_url}/query",
            source_type=self.source_type,
            params={
                "where": self.where,
                "outFields": self.out_fields,
                "f": "json",
                "resultOffset": offset,
                "resultRecordCount": size,
                "orderByFields": f"{self.order_by} ASC",
                "returnGeometry": "false",
            },
            timeout=DATA_TIMEOUT,
        )
        check_arcgis_payload(payload, layer_url)
        features = payload.get("features")
        if not isinstance(features, list):
            raise UpstreamSchemaError(f"ArcGIS page at offset {offset} from {layer_url} has no features list")
        return features

    def _fetch_layer(self, layer: ArcGisLayer) -> list[ArcGisFeature]:
        layer_url = self._layer_url(layer)
        total = self._with_retry(partial(self._count, layer_url), f"count query for layer {layer.id}")
        self._log(f"layer {layer.id} reports {total} records", event="COUNT", rows_in=total)

        features: list[ArcGisFeature] = []
        malformed = 0
        offset = 0
        while offset < total:
            requested = min(self.page_size, total - offset)
            page = self._with_retry(
                partial(self._query_page, layer_url, offset, requested),
                f"page at offset {offset} of layer {layer.id}",
            )
            for raw in page:
                feature = ArcGisFeature.from_payload(layer, raw)
                if feature is None:
                    malformed += 1
                    continue
                features.append(feature)
            self._log(
                f"fetched records {offset + 1}-{offset + len(page)} of {total} from layer {layer.id}",
                event="PAGE",
                status="ok",
                rows_out=len(page),
            )
            if len(page) < requested:
                break
            offset += requested
            if offset < total and self.page_delay > 0:
                time.sleep(self.page_delay)

        if malformed:
            self._log(
                f"skipped {malformed} malformed features from layer {layer.id}",
                level=logging.WARNING,
                event="MALFORMED_FEATURES",
                error_code=UpstreamSchemaError.error_code,
            )
        return features

    def fetch_tenements(self) -> list[TenementRecord]:
        records: list[TenementRecord] = []
        for layer in self.layers:
            features = self._fetch_layer(layer)
            mapped = [feature.to_tenement(self.jurisdiction, self.field_map) for feature in features]
            kept = [record for record in mapped if record is not None]
            if len(kept) < len(mapped):
                self._log(
                    f"skipped {len(mapped) - len(kept)} rows without a tenement number in layer {layer.id}",
                    level=logging.WARNING,
                    event="ROWS_SKIPPED",
                )
            records.extend(kept)

        if self.dedupe_numbers:
            records = dedupe_by_number(records)

        if not records and self.fallback_when_empty:
            self._log(
                "no records returned by any layer, serving built-in sample set",
                level=logging.WARNING,
                event="DEGRADED",
                status="degraded",
            )
            return sample_tenements(self.jurisdiction)

        self._log(f"fetched {len(records)} tenements", event="FETCH_END", status="ok", rows_out=len(records))
        return records
