import pytest

from tenement_sync.common.errors import TransientNetworkError, UpstreamSchemaError
from tenement_sync.common.retry import RetryPolicy, call_with_retry


def _flaky(failures: int, exc_type=TransientNetworkError):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc_type(f"attempt {calls['n']} failed")
        return "ok"

    return fn, calls


def test_retry_then_succeed():
    fn, calls = _flaky(2)
    assert call_with_retry(fn, RetryPolicy(max_attempts=3, backoff_delay=0)) == "ok"
    assert calls["n"] == 3


def test_retry_exhaustion_reraises_last_error():
    fn, calls = _flaky(5)
    with pytest.raises(TransientNetworkError, match="attempt 3"):
        call_with_retry(fn, RetryPolicy(max_attempts=3, backoff_delay=0))
    assert calls["n"] == 3


def test_non_transient_errors_are_not_retried():
    fn, calls = _flaky(1, exc_type=UpstreamSchemaError)
    with pytest.raises(UpstreamSchemaError):
        call_with_retry(fn, RetryPolicy(max_attempts=3, backoff_delay=0))
    assert calls["n"] == 1


def test_retry_policy_from_config_uses_defaults():
    assert RetryPolicy.from_config(None) == RetryPolicy(max_attempts=3, backoff_delay=2.0)
    assert RetryPolicy.from_config({"max_attempts": 5, "backoff_delay_seconds": 0.5}) == RetryPolicy(5, 0.5)
