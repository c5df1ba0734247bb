"""
Single-file transfer with bounded retry.

Only the terminal outcome leaves this module: either a TransferResult or a
TransferError whose message folds in every failed attempt. Intermediate
failures are logged but never recorded on their own.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import replace

from mapsync.backends.base import TransferBackend, TransferResult
from mapsync.exceptions import FatalBackendError, TransferError
from mapsync.observability.metrics import get_metrics_registry
from mapsync.retry import RetryManager, RetryPolicy, RetryState
from mapsync.rules.types import RetrySettings
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.sync.executor")

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0


class TransferExecutor:
    """Runs backend transfers under a per-rule retry policy."""

    def __init__(
        self,
        backend: TransferBackend,
        *,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            backend: Destination backend
            base_delay: First wait between attempts, in seconds
            max_delay: Cap on any single wait, in seconds
            sleep: Wait function (tests replace it)
        """
        self.backend = backend
        self.base_delay = base_delay
        self.max_delay = max(max_delay, base_delay)
        self.retry_manager = RetryManager(sleep=sleep)

    def policy_for(self, settings: RetrySettings) -> RetryPolicy:
        """``attempts`` counts total tries; the policy counts retries."""
        return RetryPolicy(
            max_attempts=max(settings.attempts - 1, 0),
            initial_delay=self.base_delay,
            max_delay=self.max_delay,
            strategy=settings.strategy,
            retryable_exceptions=(TransferError, OSError),
            fatal_exceptions=(FatalBackendError,),
        )

    def transfer(
        self,
        local_path: str,
        remote_path: str,
        settings: RetrySettings,
        *,
        label: str | None = None,
    ) -> TransferResult:
        """
        Transfer one file.

        Returns:
            TransferResult with the number of attempts used

        Raises:
            TransferError: After the last attempt failed
            FatalBackendError: Backend unreachable, never retried here
        """
        state = RetryState(label=label or remote_path)
        started = time.monotonic()
        try:
            result = self.retry_manager.execute_sync(
                self.backend.transfer,
                local_path,
                remote_path,
                policy=self.policy_for(settings),
                state=state,
            )
        except FatalBackendError:
            raise
        except Exception as e:
            self._record_retries(state)
            message = str(e)
            if state.total_attempts > 1:
                message = f"Failed after {state.total_attempts} attempts ({state.describe_failures()})"
            raise TransferError(message, remote_path=remote_path, attempts=state.total_attempts) from e
        finally:
            elapsed = time.monotonic() - started

        self._record_retries(state)
        return replace(result, attempts=state.total_attempts, duration=elapsed)

    def _record_retries(self, state: RetryState) -> None:
        retries = state.total_attempts - 1
        if retries > 0:
            get_metrics_registry().record_retries(retries, succeeded=state.succeeded)
