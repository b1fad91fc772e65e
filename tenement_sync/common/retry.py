"""Fixed-delay retry policy shared by every upstream call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from tenement_sync.common.errors import TransientNetworkError
from tenement_sync.common.logging import log_event

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_delay: float = 2.0

    @classmethod
    def from_config(cls, cfg: dict | None) -> "RetryPolicy":
        cfg = cfg or {}
        return cls(
            max_attempts=int(cfg.get("max_attempts", cls.max_attempts)),
            backoff_delay=float(cfg.get("backoff_delay_seconds", cls.backoff_delay)),
        )


def _warn_before_sleep(logger: logging.Logger, description: str) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome is not None else None
        log_event(
            logger,
            f"{description} failed, retrying: {exc}",
            level=logging.WARNING,
            event="RETRY",
            status="retry",
            attempt=state.attempt_number,
            error_code=getattr(exc, "error_code", None),
        )

    return _log


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    description: str = "request",
    logger: logging.Logger | None = None,
    retry_on: tuple[type[BaseException], ...] = (TransientNetworkError,),
) -> T:
    """Run ``fn`` until it succeeds or the policy's attempts are spent.

    Only exceptions in ``retry_on`` are retried; the last one is re-raised once
    the budget is exhausted.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max(policy.max_attempts, 1)),
        wait=wait_fixed(policy.backoff_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_warn_before_sleep(logger, description) if logger is not None else None,
        reraise=True,
    )
    return retrying(fn)
