"""Tests for the retry policy."""

import pytest

from ontologic.network.retry import NO_RETRY, BackoffStrategy, RetryConfig, RetryExhaustedError, RetryPolicy


class _Flaky:
    def __init__(self, failures: int, exc: Exception) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


class TestRetryPolicy:
    def test_succeeds_after_transient_errors(self) -> None:
        sleeps = []
        policy = RetryPolicy(max_attempts=3, base_delay_seconds=0.5, sleep=sleeps.append)
        func = _Flaky(2, ConnectionError("reset"))

        assert policy.execute(func) == "ok"
        assert func.calls == 3
        assert sleeps == [0.5, 1.0]

    def test_exhausted(self) -> None:
        policy = RetryPolicy(max_attempts=2, sleep=lambda _: None)
        func = _Flaky(5, TimeoutError("slow"))

        with pytest.raises(RetryExhaustedError) as exc_info:
            policy.execute(func)
        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, TimeoutError)
        assert exc_info.value.__cause__ is exc_info.value.last_exception

    def test_zero_attempts_is_an_explicit_error(self) -> None:
        policy = RetryPolicy(max_attempts=1)
        policy.config = RetryConfig(max_attempts=0)
        func = _Flaky(0, ConnectionError("unused"))

        with pytest.raises(RuntimeError, match="no attempts"):
            policy.execute(func)
        assert func.calls == 0

    def test_non_retryable_propagates_immediately(self) -> None:
        policy = RetryPolicy(max_attempts=5, sleep=lambda _: None)
        func = _Flaky(1, KeyError("bad"))

        with pytest.raises(KeyError):
            policy.execute(func)
        assert func.calls == 1

    def test_no_retry_reraises_original(self) -> None:
        func = _Flaky(1, ConnectionError("reset"))
        with pytest.raises(ConnectionError):
            NO_RETRY.execute(func)
        assert func.calls == 1

    def test_decorator(self) -> None:
        policy = RetryPolicy(max_attempts=2, sleep=lambda _: None)
        calls = []

        @policy
        def fetch(value):
            calls.append(value)
            if len(calls) == 1:
                raise OSError("first")
            return value * 2

        assert fetch(21) == 42
        assert calls == [21, 21]

    def test_invalid_attempts(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestBackoff:
    @pytest.mark.parametrize("strategy,expected", [
        (BackoffStrategy.FIXED, [1.0, 1.0, 1.0]),
        (BackoffStrategy.LINEAR, [1.0, 2.0, 3.0]),
        (BackoffStrategy.EXPONENTIAL, [1.0, 2.0, 4.0]),
    ])
    def test_delays(self, strategy, expected) -> None:
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=60.0, backoff_strategy=strategy)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == expected

    def test_delay_capped(self) -> None:
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=3.0)
        assert policy.delay_for(10) == 3.0
