"""Retry policy for read-only calls to external services.

The core never retries on its own. Callers inject a RetryPolicy into
components that perform idempotent reads (receipt lookups, message
fetches). Appends are never routed through a policy.

Example:
    retry = RetryPolicy(max_attempts=3, base_delay_seconds=0.5)

    @retry
    def fetch():
        return mirror.read_at(topic, ts)

    # Or programmatic
    message = retry.execute(lambda: mirror.read_at(topic, ts))
"""

from __future__ import annotations

import enum
import functools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffStrategy(enum.Enum):
    """Delay growth between attempts."""
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryExhaustedError(Exception):
    """All attempts failed with retryable errors."""

    def __init__(self, attempts: int, last_exception: Exception) -> None:
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Retry exhausted after {attempts} attempts: {last_exception}")


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    retryable_exceptions: tuple[type[BaseException], ...] = (OSError, TimeoutError)


class RetryPolicy:
    """Retry a callable on transient errors with configurable backoff.

    Non-retryable exceptions propagate immediately. When attempts run
    out, RetryExhaustedError wraps the last error.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_seconds: float = 0.5,
        max_delay_seconds: float = 10.0,
        backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL,
        retryable_exceptions: tuple[type[BaseException], ...] = (OSError, TimeoutError),
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.config = RetryConfig(
            max_attempts=max_attempts,
            base_delay_seconds=base_delay_seconds,
            max_delay_seconds=max_delay_seconds,
            backoff_strategy=backoff_strategy,
            retryable_exceptions=retryable_exceptions,
        )
        self._sleep = sleep or time.sleep

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows a failed attempt (1-based)."""
        base = self.config.base_delay_seconds
        if self.config.backoff_strategy == BackoffStrategy.FIXED:
            delay = base
        elif self.config.backoff_strategy == BackoffStrategy.LINEAR:
            delay = base * attempt
        else:
            delay = base * (2 ** (attempt - 1))
        return min(delay, self.config.max_delay_seconds)

    def execute(self, func: Callable[[], T]) -> T:
        """Run func under the policy."""
        last_exception: Optional[Exception] = None

        for attempt in range(1, self.config.max_attempts + 1):
            try:
                return func()
            except Exception as exc:
                if not isinstance(exc, self.config.retryable_exceptions):
                    raise
                last_exception = exc
                if attempt < self.config.max_attempts:
                    delay = self.delay_for(attempt)
                    logger.debug(
                        "Attempt %d/%d failed (%s); retrying in %.2fs",
                        attempt, self.config.max_attempts, exc, delay,
                    )
                    self._sleep(delay)

        if last_exception is None:
            raise RuntimeError("RetryPolicy made no attempts (max_attempts < 1)")
        if self.config.max_attempts == 1:
            raise last_exception
        raise RetryExhaustedError(self.config.max_attempts, last_exception) from last_exception

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorator form."""
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return self.execute(lambda: func(*args, **kwargs))
        return wrapper


# Single attempt; errors propagate unchanged.
NO_RETRY = RetryPolicy(max_attempts=1)
