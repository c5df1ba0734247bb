"""
Scheduler: fires runs from cron state and serializes runs per task type.

``tick`` is called periodically by the service loop; ``run_now`` serves
manual triggers. Both go through the same run lock, so two runs of one
task type never overlap: the second trigger is rejected, never queued.

Misfire policy: run-once. If the service was down across one or more fire
times, the next tick runs the task a single time and schedules the
following fire time from now.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from typing import Any

from mapsync.exceptions import AlreadyRunningError, ConfigurationError, LogStoreError
from mapsync.logstore import TaskLog, Trigger
from mapsync.scheduler.cron import next_run_time
from mapsync.scheduler.state import ScheduleConfig, ScheduleStateStore
from mapsync.sync.orchestrator import CancellationToken, RunRequest
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.scheduler")

Runner = Callable[[RunRequest, CancellationToken], TaskLog]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunLocks:
    """Non-blocking lock per task type."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, task_type: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(task_type, threading.Lock())
        if not lock.acquire(blocking=False):
            raise AlreadyRunningError(task_type)
        try:
            yield
        finally:
            lock.release()

    def is_running(self, task_type: str) -> bool:
        with self._guard:
            lock = self._locks.get(task_type)
        return lock is not None and lock.locked()


class Scheduler:
    def __init__(
        self,
        configs: Iterable[ScheduleConfig],
        runner: Runner,
        *,
        state_store: ScheduleStateStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            configs: One schedule per task type
            runner: Executes a run (normally SyncOrchestrator.run)
            state_store: Persists last/next run times; None keeps them in memory
            clock: Returns the current aware datetime
        """
        self._configs = {c.task_type: c for c in configs}
        self.runner = runner
        self.state_store = state_store
        self.clock = clock
        self.locks = RunLocks()
        self._tokens: dict[str, CancellationToken] = {}
        self._tokens_lock = threading.Lock()
        self._restored = False

    @property
    def configs(self) -> list[ScheduleConfig]:
        return list(self._configs.values())

    def get(self, task_type: str) -> ScheduleConfig | None:
        return self._configs.get(task_type)

    def restore(self, now: datetime | None = None) -> None:
        """Load persisted state and compute the first fire time of each schedule."""
        now = now or self.clock()
        for config in self._configs.values():
            if self.state_store is not None:
                self.state_store.restore(config)
            if not config.enabled:
                continue
            if config.next_run_at is None:
                config.next_run_at = next_run_time(config.cron, config.last_run_at or now, config.timezone)
            if config.next_run_at <= now:
                logger.info(
                    f"Scheduler: missed run for {config.task_type} "
                    f"(was due at {config.next_run_at.isoformat()}), running once now"
                )
            else:
                logger.debug(f"Scheduler: {config.task_type} next run at {config.next_run_at.isoformat()}")
        self._restored = True

    def tick(self, now: datetime | None = None) -> list[TaskLog]:
        """Run every enabled schedule that is due. Returns the finished task logs."""
        now = now or self.clock()
        if not self._restored:
            self.restore(now)

        finished = []
        for config in self._configs.values():
            if not config.enabled or config.next_run_at is None or now < config.next_run_at:
                continue
            config.next_run_at = next_run_time(config.cron, now, config.timezone)
            request = RunRequest(
                task_type=config.task_type,
                trigger=Trigger.SCHEDULED,
                offset_days=config.offset_days,
                timezone=config.timezone,
            )
            try:
                finished.append(self._execute(config, request, now))
            except AlreadyRunningError:
                logger.warning(f"Scheduler: {config.task_type} still running, skipping this fire time")
                self._persist(config)
            except Exception as e:
                logger.error(f"Scheduler: run for {config.task_type} failed: {e}")
                self._persist(config)
        return finished

    def run_now(
        self,
        task_type: str,
        *,
        reference_date: date | None = None,
        offset_days: int | None = None,
        rule_ids: Iterable[str] | None = None,
        resend: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> TaskLog:
        """
        Run a task type immediately, outside its cron timing.

        Manual runs ignore weekly and monthly windows; adhoc rules still run
        only when named in ``rule_ids``.

        Raises:
            ConfigurationError: Unknown task type or bad parameters
            AlreadyRunningError: A run of this task type is in progress
            LogStoreError: The run could not be recorded
        """
        config = self._configs.get(task_type)
        if config is None:
            raise ConfigurationError(f"Unknown task type '{task_type}'")
        request = RunRequest(
            task_type=task_type,
            trigger=Trigger.MANUAL,
            reference_date=reference_date,
            offset_days=config.offset_days if offset_days is None else offset_days,
            rule_ids=tuple(rule_ids) if rule_ids is not None else None,
            resend=resend,
            timezone=config.timezone,
        )
        return self._execute(config, request, self.clock(), cancel_token)

    def cancel(self, task_type: str, reason: str = "cancel requested") -> bool:
        """Ask an active run to stop at the next rule boundary."""
        with self._tokens_lock:
            token = self._tokens.get(task_type)
        if token is None:
            return False
        token.cancel(reason)
        logger.info(f"Cancellation requested for {task_type}: {reason}")
        return True

    def is_running(self, task_type: str) -> bool:
        return self.locks.is_running(task_type)

    def status(self) -> list[dict[str, Any]]:
        return [{**c.to_dict(), "running": self.is_running(c.task_type)} for c in self._configs.values()]

    def _execute(
        self,
        config: ScheduleConfig,
        request: RunRequest,
        started: datetime,
        cancel_token: CancellationToken | None = None,
    ) -> TaskLog:
        with self.locks.hold(config.task_type):
            token = cancel_token or CancellationToken()
            with self._tokens_lock:
                self._tokens[config.task_type] = token
            try:
                task = self.runner(request, token)
            finally:
                with self._tokens_lock:
                    self._tokens.pop(config.task_type, None)

        config.last_run_at = started
        config.last_task_id = task.id
        config.last_status = task.status.value
        self._persist(config)
        return task

    def _persist(self, config: ScheduleConfig) -> None:
        if self.state_store is None:
            return
        try:
            self.state_store.save(config)
        except LogStoreError as e:
            logger.warning(f"Could not persist schedule state for {config.task_type}: {e}")
