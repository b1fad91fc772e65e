"""HTTP client with timeouts, transient-failure typing and host-aware rate limiting."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import urlparse

import requests

from tenement_sync.common.constants import USER_AGENT
from tenement_sync.common.errors import PipelineError, TransientNetworkError, UpstreamSchemaError

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 20.0
    read: float = 60.0


PROBE_TIMEOUT = TimeoutConfig(connect=10.0, read=10.0)
DATA_TIMEOUT = TimeoutConfig(connect=20.0, read=60.0)


class HttpRequestError(PipelineError):
    error_code = "HTTP_ERROR"


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: float | None = None) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = capacity if capacity is not None else rate_per_sec
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self.lock = threading.Lock()

    def acquire(self, tokens: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.updated_at
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.updated_at = now
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                deficit = tokens - self.tokens
                wait_for = max(deficit / self.rate_per_sec, 0.01)
            time.sleep(wait_for)


class HostRateLimiter:
    def __init__(self, default_rate_per_sec: float) -> None:
        self.default_rate_per_sec = default_rate_per_sec
        self.buckets: dict[str, TokenBucket] = {}
        self.lock = threading.Lock()

    def acquire(self, host: str, tokens: float = 1.0) -> None:
        with self.lock:
            bucket = self.buckets.get(host)
            if bucket is None:
                bucket = TokenBucket(rate_per_sec=self.default_rate_per_sec)
                self.buckets[host] = bucket
        bucket.acquire(tokens=tokens)


class HttpClient:
    """Single-attempt HTTP calls; callers wrap them in a RetryPolicy."""

    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        rate_limits: dict[str, float] | None = None,
    ) -> None:
        self.timeout = timeout or DATA_TIMEOUT
        self.session = requests.Session()
        limits = rate_limits if rate_limits is not None else {"arcgis": 5.0, "wfs": 2.0}
        self.limiters = {name: HostRateLimiter(default_rate_per_sec=rate) for name, rate in limits.items()}

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _host(self, url: str) -> str:
        return urlparse(url).netloc

    def _apply_rate_limit(self, url: str, source_type: str) -> None:
        limiter = self.limiters.get(source_type)
        if limiter is not None:
            limiter.acquire(self._host(url))

    def _headers(self, headers: dict[str, str] | None, accept: str) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": accept}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise TransientNetworkError(f"Retryable HTTP status {status} from {url}")
        if status >= 400:
            raise HttpRequestError(f"HTTP status {status} from {url}")

    def _request(
        self,
        url: str,
        *,
        source_type: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        timeout: TimeoutConfig | None,
        accept: str,
    ) -> requests.Response:
        req_timeout = timeout or self.timeout
        self._apply_rate_limit(url, source_type)
        try:
            response = self.session.request(
                method="GET",
                url=url,
                params=params,
                headers=self._headers(headers, accept),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientNetworkError(f"{type(exc).__name__} calling {url}: {exc}") from exc
        except requests.RequestException as exc:
            raise HttpRequestError(f"Request to {url} failed: {exc}") from exc
        self._raise_for_status_or_retry(response, url)
        return response

    def get_json(
        self,
        url: str,
        *,
        source_type: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        response = self._request(
            url,
            source_type=source_type,
            params=params,
            headers=headers,
            timeout=timeout,
            accept="application/json",
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamSchemaError(f"Invalid JSON payload from {url}") from exc
        if not isinstance(payload, dict):
            raise UpstreamSchemaError(f"Expected a JSON object from {url}, got {type(payload).__name__}")
        return payload

    def get_text(
        self,
        url: str,
        *,
        source_type: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> str:
        response = self._request(
            url,
            source_type=source_type,
            params=params,
            headers=headers,
            timeout=timeout,
            accept="text/csv, text/plain, text/xml, */*",
        )
        return response.text

    def get_bytes(
        self,
        url: str,
        *,
        source_type: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> bytes:
        response = self._request(
            url,
            source_type=source_type,
            params=params,
            headers=headers,
            timeout=timeout,
            accept="*/*",
        )
        return response.content
