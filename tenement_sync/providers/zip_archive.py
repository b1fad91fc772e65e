"""ZIP-of-delimited-files adapter (NT mineral titles download)."""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import PurePosixPath
from typing import Any, Iterator

from tenement_sync.common.errors import UpstreamSchemaError
from tenement_sync.common.http import DATA_TIMEOUT, PROBE_TIMEOUT, HttpClient
from tenement_sync.common.models import Jurisdiction, StatusCheck, TenementRecord
from tenement_sync.common.retry import RetryPolicy
from tenement_sync.providers.base import ProviderAdapter
from tenement_sync.providers.delimited import DelimitedReader
from tenement_sync.providers.fields import FieldMap

ENTRY_KEYWORDS = ("title", "tenement", "min_", "emel", "appl", "grant")
DATA_EXTENSIONS = (".csv", ".tab", ".txt", ".dat")

# Historical header spellings seen across NT exports.
NT_FIELDS = FieldMap(
    number=("TITLE_NO", "TENEMENT_NO", "NUMBER", "ID"),
    type=("TITLE_TYPE", "TENEMENT_TYPE", "TYPE"),
    status=("STATUS", "TITLE_STATUS"),
    holder_name=("HOLDER", "TITLE_HOLDER", "HOLDER_NAME"),
    application_date=("APP_DATE", "APPLICATION_DATE", "APPL_DATE"),
    grant_date=("GRANT_DATE", "GRANTED_DATE"),
    expiry_date=("EXPIRY_DATE", "EXP_DATE"),
    anniversary_date=("ANNIVERSARY_DATE", "ANNIV_DATE"),
    area=("AREA_HA", "AREA", "HECTARES"),
)


def is_tenement_entry(name: str) -> bool:
    path = PurePosixPath(name)
    if name.endswith("/") or path.name.startswith("."):
        return False
    lowered = path.name.lower()
    return lowered.endswith(DATA_EXTENSIONS) or any(keyword in lowered for keyword in ENTRY_KEYWORDS)


def detect_delimiter(entry_name: str, header_line: str) -> str:
    if entry_name.lower().endswith(".tab") or "\t" in header_line:
        return "\t"
    return ","


class ZipArchiveAdapter(ProviderAdapter):
    source_type = "zip"
    default_fields = NT_FIELDS

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
        self.probe_marker = source_config.get("probe_marker")
        self.encoding = source_config.get("encoding", "utf-8")
        self.default_status = source_config.get("default_status")

    def _probe(self) -> StatusCheck:
        text = self.client.get_text(self.probe_url, source_type=self.source_type, timeout=PROBE_TIMEOUT)
        if self.probe_marker and self.probe_marker not in text:
            return StatusCheck(status="Inactive", error=f"Probe page does not mention {self.probe_marker}")
        return StatusCheck.active()

    def _download(self) -> bytes:
        return self.client.get_bytes(self.endpoint, source_type=self.source_type, timeout=DATA_TIMEOUT)

    def _entry_records(self, archive: zipfile.ZipFile, name: str) -> list[TenementRecord]:
        records: list[TenementRecord] = []
        unnumbered = 0
        with archive.open(name) as raw:
            stream = io.TextIOWrapper(raw, encoding=self.encoding, errors="replace", newline="")
            header_line = stream.readline()
            reader = DelimitedReader(_prepend(header_line, stream), detect_delimiter(name, header_line))
            for row in reader:
                record = row.to_tenement(self.jurisdiction, self.field_map, default_status=self.default_status)
                if record is None:
                    unnumbered += 1
                    continue
                records.append(record)
        if unnumbered or reader.malformed:
            self._log(
                f"skipped {reader.malformed} malformed rows and {unnumbered} rows without a title number in {name}",
                level=logging.WARNING,
                event="ROWS_SKIPPED",
                rows_in=len(records) + unnumbered + reader.malformed,
                rows_out=len(records),
            )
        return records

    def parse_archive(self, payload: bytes) -> list[TenementRecord]:
        try:
            archive = zipfile.ZipFile(io.BytesIO(payload))
        except zipfile.BadZipFile as exc:
            raise UpstreamSchemaError(f"{self.name} download is not a valid ZIP archive") from exc

        records: list[TenementRecord] = []
        with archive:
            entries = [name for name in archive.namelist() if is_tenement_entry(name)]
            self._log(f"archive has {len(entries)} candidate entries", event="ARCHIVE", rows_in=len(entries))
            for name in entries:
                try:
                    entry_records = self._entry_records(archive, name)
                except (UnicodeDecodeError, zipfile.BadZipFile, OSError) as exc:
                    self._log(
                        f"skipped entry {name}: {exc}",
                        level=logging.WARNING,
                        event="ENTRY_SKIPPED",
                        error_code=UpstreamSchemaError.error_code,
                    )
                    continue
                self._log(f"parsed {len(entry_records)} tenements from {name}", event="ENTRY", rows_out=len(entry_records))
                records.extend(entry_records)

        if not records:
            raise UpstreamSchemaError(f"No tenements found in {self.name} archive")
        return records

    def fetch_tenements(self) -> list[TenementRecord]:
        payload = self._with_retry(self._download, f"download {self.name}")
        records = self.parse_archive(payload)
        self._log(f"fetched {len(records)} tenements", event="FETCH_END", status="ok", rows_out=len(records))
        return records


def _prepend(first: str, rest: io.TextIOBase) -> Iterator[str]:
    yield first
    yield from rest
