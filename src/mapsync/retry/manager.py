"""
Retry manager for executing blocking calls with backoff.
"""

import time
from collections.abc import Callable
from typing import Any, TypeVar

from mapsync.retry.policy import RetryPolicy, RetryState
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.retry.manager")

T = TypeVar("T")


class RetryManager:
    """
    Runs a callable under a RetryPolicy.

    Waits happen on the calling thread only, so a transfer worker sleeping
    between attempts never holds up other workers.

    Examples:
        >>> manager = RetryManager()
        >>> result = manager.execute_sync(upload, "a.csv", policy=RetryPolicy(max_attempts=2))
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize RetryManager.

        Args:
            sleep: Wait function; tests pass a recorder instead of time.sleep
        """
        self._sleep = sleep

    def execute_sync(
        self,
        func: Callable[..., T],
        *args: Any,
        policy: RetryPolicy | None = None,
        label: str | None = None,
        state: RetryState | None = None,
        **kwargs: Any,
    ) -> T:
        """
        Execute ``func`` with retry logic.

        Args:
            func: Callable to execute
            *args: Positional arguments for func
            policy: Retry policy (defaults to ``RetryPolicy()``)
            label: Name used in log lines (defaults to func.__name__)
            state: Optional RetryState populated with the attempt history
            **kwargs: Keyword arguments for func

        Returns:
            Result of the first successful call

        Raises:
            Exception: The last exception once retries are exhausted or the
                exception is not retryable
        """
        policy = policy or RetryPolicy()
        if state is None:
            state = RetryState(label=label or getattr(func, "__name__", "call"))
        elif label:
            state.label = label

        for attempt in range(policy.max_attempts + 1):
            state.attempt = attempt
            try:
                logger.debug(f"Executing {state.label} (attempt {attempt + 1}/{policy.max_attempts + 1})")
                result = func(*args, **kwargs)
            except Exception as e:
                state.record_attempt(exception=e)

                if not policy.should_retry(e, attempt):
                    state.mark_failure(e)
                    if attempt > 0:
                        logger.error(f"{state.label} failed after {attempt + 1} attempts: {e}")
                    raise

                delay = policy.get_delay(attempt)
                state.record_delay(delay)
                logger.warning(f"{state.label} attempt {attempt + 1} failed: {e}. Retrying in {delay:.2f}s...")
                self._sleep(delay)
                continue

            state.record_attempt()
            state.mark_success(result)
            if attempt > 0:
                logger.info(f"{state.label} succeeded after {attempt + 1} attempts")
            return result

        # Loop always returns or raises
        raise RuntimeError(f"Retry logic error for {state.label}")
