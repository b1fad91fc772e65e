"""Common capability set shared by every jurisdiction adapter."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

from tenement_sync.common.http import HttpClient
from tenement_sync.common.logging import log_event
from tenement_sync.common.models import Jurisdiction, StatusCheck, TenementRecord
from tenement_sync.common.retry import RetryPolicy, call_with_retry
from tenement_sync.providers.fields import FieldMap

T = TypeVar("T")


class ProviderAdapter(ABC):
    """Fetches one jurisdiction's tenements from its upstream register."""

    source_type = "generic"
    default_fields = FieldMap()

    def __init__(
        self,
        jurisdiction: Jurisdiction,
        source_config: dict[str, Any],
        http_client: HttpClient,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.jurisdiction = jurisdiction
        self.config = source_config
        self.name = source_config.get("name", jurisdiction.value)
        self.endpoint = source_config["endpoint"].rstrip("/")
        self.client = http_client
        self.retry_policy = retry_policy or RetryPolicy()
        self.field_map = FieldMap.from_config(source_config.get("fields"), self.default_fields)
        self.logger = logging.getLogger(f"{type(self).__module__}.{jurisdiction.value.lower()}")

    def get_jurisdiction(self) -> Jurisdiction:
        return self.jurisdiction

    def check_status(self) -> StatusCheck:
        """Probe the upstream once. Never raises: failures come back as an Error status."""
        try:
            result = self._probe()
        except Exception as exc:  # noqa: BLE001 - health checks report, they do not propagate
            message = str(exc) or type(exc).__name__
            log_event(
                self.logger,
                f"{self.jurisdiction.value} status check failed: {message}",
                level=logging.WARNING,
                stage="status",
                jurisdiction=self.jurisdiction.value,
                source=self.name,
                event="PROBE_FAIL",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return StatusCheck.failed(message)
        log_event(
            self.logger,
            f"{self.jurisdiction.value} status check: {result.status}",
            stage="status",
            jurisdiction=self.jurisdiction.value,
            source=self.name,
            event="PROBE",
            status=result.status,
        )
        return result

    @abstractmethod
    def _probe(self) -> StatusCheck:
        raise NotImplementedError

    @abstractmethod
    def fetch_tenements(self) -> list[TenementRecord]:
        raise NotImplementedError

    def _with_retry(self, fn: Callable[[], T], description: str) -> T:
        return call_with_retry(fn, self.retry_policy, description=description, logger=self.logger)

    def _log(self, message: str, *, level: int = logging.INFO, **fields: Any) -> None:
        fields.setdefault("stage", "fetch")
        log_event(
            self.logger,
            message,
            level=level,
            jurisdiction=self.jurisdiction.value,
            source=self.name,
            **fields,
        )
