"""
Retry policy configuration for file transfers.

Backoff is either linear (constant increment per attempt) or exponential
(doubling per attempt); both are capped at ``max_delay``.
"""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class DelayStrategy(StrEnum):
    """How the wait between attempts grows."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass
class RetryPolicy:
    """
    Configuration for retry behavior when a transfer fails.

    Examples:
        >>> # Three retries, 1s, 2s, 4s apart
        >>> policy = RetryPolicy(max_attempts=3)

        >>> # Linear backoff: 2s, 4s, 6s ... never more than 10s
        >>> policy = RetryPolicy(
        ...     max_attempts=5,
        ...     initial_delay=2.0,
        ...     max_delay=10.0,
        ...     strategy=DelayStrategy.LINEAR,
        ... )
    """

    # Maximum number of retries (total executions = max_attempts + 1)
    max_attempts: int = 3

    # Delay before the first retry (seconds)
    initial_delay: float = 1.0

    # Hard upper bound on any single wait (seconds)
    max_delay: float = 30.0

    strategy: DelayStrategy = DelayStrategy.EXPONENTIAL

    # Only retry these exception types (None = retry all exceptions)
    retryable_exceptions: tuple[type[Exception], ...] | None = None

    # Never retry these, even when they match retryable_exceptions
    fatal_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self):
        """Validate configuration."""
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        self.strategy = DelayStrategy(self.strategy)

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """
        Determine if we should retry after this exception.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-indexed)
        """
        if attempt >= self.max_attempts:
            return False
        if self.fatal_exceptions and isinstance(exception, self.fatal_exceptions):
            return False
        if self.retryable_exceptions is not None:
            return isinstance(exception, self.retryable_exceptions)
        return True

    def get_delay(self, attempt: int) -> float:
        """
        Delay before the retry that follows ``attempt`` (0-indexed).

        linear:      initial_delay * (attempt + 1)
        exponential: initial_delay * 2 ** attempt
        """
        if self.strategy == DelayStrategy.LINEAR:
            delay = self.initial_delay * (attempt + 1)
        else:
            delay = self.initial_delay * (2**attempt)

        return min(delay, self.max_delay)


@dataclass
class RetryState:
    """
    Attempt history for one retried call.

    Kept so that a terminal failure can report every attempt in a single
    log record instead of one record per attempt.
    """

    label: str

    # Current attempt number (0-indexed)
    attempt: int = 0

    total_attempts: int = 0
    exceptions: list[dict[str, Any]] = field(default_factory=list)
    delays: list[float] = field(default_factory=list)
    result: Any = None
    final_exception: Exception | None = None
    succeeded: bool = False

    def record_attempt(self, exception: Exception | None = None):
        self.total_attempts += 1
        if exception is not None:
            self.exceptions.append(
                {
                    "attempt": self.attempt,
                    "exception_type": type(exception).__name__,
                    "exception_message": str(exception),
                    "timestamp": time.time(),
                }
            )

    def record_delay(self, delay: float):
        self.delays.append(delay)

    def mark_success(self, result: Any):
        self.succeeded = True
        self.result = result

    def mark_failure(self, exception: Exception):
        self.succeeded = False
        self.final_exception = exception

    def describe_failures(self) -> str:
        """One-line summary of every failed attempt, oldest first."""
        return "; ".join(
            f"attempt {e['attempt'] + 1}: {e['exception_type']}: {e['exception_message']}" for e in self.exceptions
        )

