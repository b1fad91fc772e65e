"""WFS 2.0 GeoJSON adapter (VIC)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from tenement_sync.common.errors import UpstreamSchemaError
from tenement_sync.common.http import DATA_TIMEOUT, PROBE_TIMEOUT, HttpClient
from tenement_sync.common.models import Jurisdiction, StatusCheck, TenementRecord
from tenement_sync.common.retry import RetryPolicy
from tenement_sync.pipeline.normalise import dedupe_by_number
from tenement_sync.providers.base import ProviderAdapter
from tenement_sync.providers.fields import FieldMap, map_attributes
from tenement_sync.providers.samples import sample_tenements

DEFAULT_MAX_FEATURES = 5000


@dataclass(frozen=True)
class WfsFeature:
    properties: dict[str, Any]
    geometry: dict[str, Any] | None = None

    @classmethod
    def from_payload(cls, feature: Any) -> "WfsFeature | None":
        if not isinstance(feature, dict):
            return None
        properties = feature.get("properties")
        if not isinstance(properties, dict):
            return None
        geometry = feature.get("geometry")
        return cls(properties=properties, geometry=geometry if isinstance(geometry, dict) else None)

    def to_tenement(self, jurisdiction: Jurisdiction, field_map: FieldMap) -> TenementRecord | None:
        return map_attributes(self.properties, jurisdiction, field_map, geometry=self.geometry)


class WfsGeoJsonAdapter(ProviderAdapter):
    source_type = "wfs"

    def __init__(
        self,
        jurisdiction: Jurisdiction,
        source_config: dict[str, Any],
        http_client: HttpClient,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(jurisdiction, source_config, http_client, retry_policy=retry_policy)
        self.type_name = source_config["type_name"]
        self.max_features = int(source_config.get("max_features", DEFAULT_MAX_FEATURES))

    def _probe(self) -> StatusCheck:
        text = self.client.get_text(
            self.endpoint,
            source_type=self.source_type,
            params={"service": "WFS", "request": "GetCapabilities"},
            timeout=PROBE_TIMEOUT,
        )
        if "WFS_Capabilities" in text:
            return StatusCheck.active()
        return StatusCheck(status="Inactive", error="GetCapabilities response is not a WFS capabilities document")

    def _get_features(self) -> list:
        payload = self.client.get_json(
            self.endpoint,
            source_type=self.source_type,
            params={
                "service": "WFS",
                "version": "2.0.0",
                "request": "GetFeature",
                "typeNames": self.type_name,
                "outputFormat": "application/json",
                "count": self.max_features,
            },
            timeout=DATA_TIMEOUT,
        )
        features = payload.get("features")
        if not isinstance(features, list):
            raise UpstreamSchemaError(f"WFS response from {self.endpoint} has no features list")
        return features

    def _fetch_live(self) -> list[TenementRecord]:
        raw_features = self._with_retry(self._get_features, f"GetFeature {self.type_name}")
        records = []
        skipped = 0
        for raw in raw_features:
            feature = WfsFeature.from_payload(raw)
            record = feature.to_tenement(self.jurisdiction, self.field_map) if feature else None
            if record is None:
                skipped += 1
                continue
            records.append(record)
        if skipped:
            self._log(f"skipped {skipped} unusable features", level=logging.WARNING, event="ROWS_SKIPPED")
        if len(raw_features) >= self.max_features:
            self._log(
                f"feature count reached the {self.max_features} cap, register may be truncated",
                level=logging.WARNING,
                event="CAP_REACHED",
            )
        return dedupe_by_number(records)

    def fetch_tenements(self) -> list[TenementRecord]:
        try:
            records = self._fetch_live()
        except Exception as exc:  # noqa: BLE001 - degraded mode serves the sample set
            self._log(
                f"WFS fetch failed, serving built-in sample set: {exc}",
                level=logging.WARNING,
                event="DEGRADED",
                status="degraded",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return sample_tenements(self.jurisdiction)
        self._log(f"fetched {len(records)} tenements", event="FETCH_END", status="ok", rows_out=len(records))
        return records
