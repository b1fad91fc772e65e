"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from tenement_sync.common.errors import ConfigurationError
from tenement_sync.common.time_utils import utc_now


class Jurisdiction(str, Enum):
    WA = "WA"
    NSW = "NSW"
    VIC = "VIC"
    NT = "NT"
    QLD = "QLD"
    TAS = "TAS"

    @classmethod
    def parse(cls, code: "str | Jurisdiction") -> "Jurisdiction":
        if isinstance(code, Jurisdiction):
            return code
        try:
            return cls(str(code).strip().upper())
        except ValueError as exc:
            raise ConfigurationError(f"Unknown jurisdiction: {code}") from exc


class SyncStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class TenementRecord:
    number: str
    jurisdiction: Jurisdiction
    type: str
    status: str
    holder_name: str | None = None
    application_date: str | None = None
    grant_date: str | None = None
    expiry_date: str | None = None
    anniversary_date: str | None = None
    markout_date: str | None = None
    area_ha: float | None = None
    section29_flag: bool = False
    geometry: dict[str, Any] | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.jurisdiction.value, self.number

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["jurisdiction"] = self.jurisdiction.value
        return payload


@dataclass(frozen=True)
class DataSourceConfig:
    id: int
    name: str
    jurisdiction: Jurisdiction
    endpoint: str
    format: str
    sync_status: str = SyncStatus.PENDING.value
    is_enabled: bool = True
    last_sync_attempt: datetime | None = None
    last_sync_success: datetime | None = None
    last_error: str | None = None
    record_count: int | None = None
    health_status: str | None = None
    last_health_check: datetime | None = None


@dataclass(frozen=True)
class StatusCheck:
    """Outcome of one liveness probe: Active, Inactive or Error."""

    status: str
    error: str | None = None

    @classmethod
    def active(cls) -> "StatusCheck":
        return cls(status="Active")

    @classmethod
    def failed(cls, message: str) -> "StatusCheck":
        return cls(status="Error", error=message)


@dataclass(frozen=True)
class StatusResult:
    id: int
    name: str
    jurisdiction: str
    status: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SyncResult:
    jurisdiction: Jurisdiction
    imported: int
    errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jurisdiction": self.jurisdiction.value,
            "imported": self.imported,
            "errors": list(self.errors),
            "timestamp": self.timestamp.isoformat(timespec="milliseconds"),
        }
