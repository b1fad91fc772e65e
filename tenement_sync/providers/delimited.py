"""Raw CSV-over-HTTP adapter (NSW) and the line-at-a-time reader shared with the ZIP adapter."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from tenement_sync.common.http import DATA_TIMEOUT, PROBE_TIMEOUT, HttpClient
from tenement_sync.common.models import Jurisdiction, StatusCheck, TenementRecord
from tenement_sync.common.retry import RetryPolicy
from tenement_sync.pipeline.normalise import dedupe_by_number
from tenement_sync.providers.base import ProviderAdapter
from tenement_sync.providers.fields import FieldMap, map_attributes
from tenement_sync.providers.samples import sample_tenements


def split_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line, keeping delimiters and doubled quotes inside quoted fields.

    Raises ``csv.Error`` for an unterminated quoted field or stray text after a closing quote.
    """
    for row in csv.reader([line], delimiter=delimiter, strict=True):
        return row
    return []


@dataclass(frozen=True)
class DelimitedRow:
    """One data line keyed by its header names."""

    line_number: int
    values: dict[str, str]

    def to_tenement(
        self,
        jurisdiction: Jurisdiction,
        field_map: FieldMap,
        *,
        default_type: str | None = None,
        default_status: str | None = None,
    ) -> TenementRecord | None:
        return map_attributes(
            self.values, jurisdiction, field_map, default_type=default_type, default_status=default_status
        )


class DelimitedReader:
    """Parses each physical line on its own so one broken row cannot swallow the lines after it.

    Header comes from the first non-blank line; short rows are padded, long rows truncated.
    Lines that fail to split are counted in ``malformed`` and skipped.
    """

    def __init__(self, lines: Iterable[str], delimiter: str = ",") -> None:
        self.lines = lines
        self.delimiter = delimiter
        self.malformed = 0

    def __iter__(self) -> Iterator[DelimitedRow]:
        header: list[str] | None = None
        for line_number, line in enumerate(self.lines, start=1):
            text = line.rstrip("\r\n")
            if not text.strip():
                continue
            try:
                values = split_csv_line(text, self.delimiter)
            except csv.Error:
                self.malformed += 1
                continue
            if header is None:
                header = [name.strip().lstrip("\ufeff") for name in values]
                continue
            padded = values + [""] * (len(header) - len(values))
            yield DelimitedRow(line_number=line_number, values=dict(zip(header, padded)))


class DelimitedTextAdapter(ProviderAdapter):
    source_type = "csv"
    default_fields = FieldMap(number_parts=("title_code", "title_no"))

    def __init__(
        self,
        jurisdiction: Jurisdiction,
        source_config: dict[str, Any],
        http_client: HttpClient,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(jurisdiction, source_config, http_client, retry_policy=retry_policy)
        self.probe_url = source_config.get("probe_url", self.endpoint)
        self.delimiter = source_config.get("delimiter", ",")
        self.default_status = source_config.get("default_status")

    def _probe(self) -> StatusCheck:
        self.client.get_text(self.probe_url, source_type=self.source_type, timeout=PROBE_TIMEOUT)
        return StatusCheck.active()

    def _download(self) -> str:
        return self.client.get_text(self.endpoint, source_type=self.source_type, timeout=DATA_TIMEOUT)

    def parse(self, text: str) -> list[TenementRecord]:
        records = []
        unnumbered = 0
        reader = DelimitedReader(io.StringIO(text, newline=""), self.delimiter)
        for row in reader:
            record = row.to_tenement(self.jurisdiction, self.field_map, default_status=self.default_status)
            if record is None:
                unnumbered += 1
                continue
            records.append(record)
        if unnumbered or reader.malformed:
            self._log(
                f"skipped {reader.malformed} malformed rows and {unnumbered} rows without a title number",
                level=logging.WARNING,
                event="ROWS_SKIPPED",
                rows_in=len(records) + unnumbered + reader.malformed,
                rows_out=len(records),
            )
        return dedupe_by_number(records)

    def fetch_tenements(self) -> list[TenementRecord]:
        try:
            text = self._with_retry(self._download, f"download {self.name}")
        except Exception as exc:  # noqa: BLE001 - degraded mode serves the sample set
            self._log(
                f"CSV download failed, serving built-in sample set: {exc}",
                level=logging.WARNING,
                event="DEGRADED",
                status="degraded",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return sample_tenements(self.jurisdiction)
        records = self.parse(text)
        self._log(f"fetched {len(records)} tenements", event="FETCH_END", status="ok", rows_out=len(records))
        return records
