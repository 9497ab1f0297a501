"""Tests for backoff computation and error classification."""

import pytest

from sagaflow.contracts import RetryPolicy
from sagaflow.errors import HandlerNotFoundError, StepError
from sagaflow.utils.retry import compute_backoff, is_retryable, schedule_retry


def policy(strategy, **kwargs) -> RetryPolicy:
    values = dict(
        backoff_strategy=strategy, base_delay=100, max_delay=10_000, jitter_factor=0
    )
    values.update(kwargs)
    return RetryPolicy(**values)


def test_fixed_backoff_is_constant():
    fixed = policy("fixed")
    assert [compute_backoff(n, fixed) for n in range(1, 6)] == [100] * 5


def test_linear_backoff_grows_with_attempt():
    linear = policy("linear")
    assert [compute_backoff(n, linear) for n in (1, 2, 3)] == [100, 200, 300]


def test_exponential_backoff_doubles():
    exponential = policy("exponential")
    assert [compute_backoff(n, exponential) for n in (1, 2, 3, 4)] == [100, 200, 400, 800]


@pytest.mark.parametrize("strategy", ["linear", "exponential"])
def test_backoff_is_capped_at_max_delay(strategy):
    capped = policy(strategy, max_delay=350)
    assert compute_backoff(50, capped) == 350


def test_jitter_adds_at_most_jitter_factor(monkeypatch):
    jittered = policy("fixed", jitter_factor=0.5)

    monkeypatch.setattr("sagaflow.utils.retry.random.random", lambda: 1.0)
    assert compute_backoff(1, jittered) == 150

    monkeypatch.setattr("sagaflow.utils.retry.random.random", lambda: 0.0)
    assert compute_backoff(1, jittered) == 100


def test_jitter_is_clamped_to_max_delay(monkeypatch):
    monkeypatch.setattr("sagaflow.utils.retry.random.random", lambda: 1.0)
    assert compute_backoff(1, policy("fixed", max_delay=120, jitter_factor=1.0)) == 120


def test_substring_matching_is_case_insensitive():
    retry = RetryPolicy(retryable_errors=["Timeout", "rate_limit"])
    assert is_retryable(RuntimeError("Gateway TIMEOUT"), retry)
    assert is_retryable(RuntimeError("hit rate_limit for tenant"), retry)
    assert not is_retryable(RuntimeError("invalid payload"), retry)


def test_exception_class_name_is_matched():
    retry = RetryPolicy(retryable_errors=["timeout"])
    assert is_retryable(TimeoutError(), retry)


def test_explicit_flag_wins_over_patterns():
    retry = RetryPolicy(retryable_errors=["timeout"])
    assert not is_retryable(StepError("timeout", retryable=False), retry)
    assert is_retryable(StepError("declined", retryable=True), retry)
    assert not is_retryable(HandlerNotFoundError("service_timeout"), retry)


def test_error_code_matches_pattern():
    retry = RetryPolicy(retryable_errors=["throttled"])
    assert is_retryable(StepError("slow down", code="THROTTLED"), retry)
    assert not is_retryable(StepError("slow down", code="forbidden"), retry)


def test_empty_patterns_never_retry():
    assert not is_retryable(RuntimeError("timeout"), RetryPolicy(retryable_errors=[]))


@pytest.mark.asyncio
async def test_schedule_retry_honours_limit():
    slow = policy("fixed", base_delay=5_000)
    assert await schedule_retry(1, slow, limit_ms=0) == 0.0


@pytest.mark.asyncio
async def test_schedule_retry_returns_delay():
    assert await schedule_retry(2, policy("linear", base_delay=5)) == 10


@pytest.mark.parametrize("attempt", [1025, 2000, 100_000])
def test_exponential_backoff_caps_for_huge_attempts(attempt):
    assert compute_backoff(attempt, policy("exponential")) == 10_000
    assert compute_backoff(attempt, policy("exponential", base_delay=0, max_delay=0)) == 0


def test_exponential_backoff_with_jitter_stays_finite(monkeypatch):
    monkeypatch.setattr("sagaflow.utils.retry.random.random", lambda: 0.0)
    jittered = policy("exponential", base_delay=5_000, max_delay=60_000, jitter_factor=0.5)
    assert compute_backoff(5_000, jittered) == 60_000
