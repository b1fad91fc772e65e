"""In-process sync progress per jurisdiction."""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass, replace
from typing import Any

from tenement_sync.common.models import Jurisdiction


@dataclass(frozen=True)
class SyncProgress:
    status: str = "idle"
    current_record: int = 0
    total_records: int = 0
    message: str = "Ready to sync"
    started_at: float | None = None
    estimated_seconds_remaining: float | None = None

    @property
    def percent(self) -> float:
        if self.total_records <= 0:
            return 0.0
        return round(100.0 * self.current_record / self.total_records, 1)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["percent"] = self.percent
        return payload


class ProgressTracker:
    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._progress: dict[Jurisdiction, SyncProgress] = {}

    def get(self, jurisdiction: Jurisdiction) -> SyncProgress:
        with self._lock:
            return self._progress.get(jurisdiction, SyncProgress())

    def start(self, jurisdiction: Jurisdiction, message: str = "Fetching records") -> None:
        with self._lock:
            self._progress[jurisdiction] = SyncProgress(
                status="syncing",
                message=message,
                started_at=self._clock(),
            )

    def advance(self, jurisdiction: Jurisdiction, current: int, total: int, message: str) -> None:
        with self._lock:
            prior = self._progress.get(jurisdiction, SyncProgress(status="syncing", started_at=self._clock()))
            eta = None
            if prior.started_at is not None and current > 0 and total >= current:
                elapsed = self._clock() - prior.started_at
                eta = round(elapsed / current * (total - current), 1)
            self._progress[jurisdiction] = replace(
                prior,
                current_record=current,
                total_records=total,
                message=message,
                estimated_seconds_remaining=eta,
            )

    def finish(self, jurisdiction: Jurisdiction, message: str, *, failed: bool = False) -> None:
        with self._lock:
            prior = self._progress.get(jurisdiction, SyncProgress())
            self._progress[jurisdiction] = replace(
                prior,
                status="error" if failed else "completed",
                message=message,
                estimated_seconds_remaining=None,
            )

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {code.value: progress.to_dict() for code, progress in self._progress.items()}
