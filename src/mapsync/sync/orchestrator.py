"""
Sync orchestrator: one end-to-end run.

A run opens a task log, resolves which rules apply for the reference date,
scans only the source directories those rules watch, and processes rules
one at a time in priority order. Files of a rule are transferred
concurrently; every file ends in exactly one file log, every evaluated rule
in one rule log, and the task totals are rolled up from the rule logs.
"""

from __future__ import annotations

import posixpath
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path

from mapsync.backends.base import TransferBackend
from mapsync.exceptions import ConfigurationError, FatalBackendError, LogStoreError, MapsyncError, TransferError
from mapsync.logstore import FileLog, FileStatus, LogStore, RuleLog, TaskLog, Trigger
from mapsync.logstore.records import new_id
from mapsync.observability.metrics import get_metrics_registry
from mapsync.retry import DelayStrategy, RetryManager, RetryPolicy
from mapsync.rules.matcher import PlanEntry, RuleMatcher
from mapsync.rules.store import RuleLoadFailure, RuleStore
from mapsync.rules.templates import resolve_template
from mapsync.rules.types import MappingRule, Period, SourceFile
from mapsync.sync.conflict import DEFAULT_RENAME_LIMIT, ConflictResolver, PathLocks
from mapsync.sync.discovery import discover_files
from mapsync.sync.executor import DEFAULT_BASE_DELAY, DEFAULT_MAX_DELAY, TransferExecutor
from mapsync.utils.logging import get_logger
from mapsync.utils.timeutils import resolve_timezone

logger = get_logger("mapsync.sync.orchestrator")

DEFAULT_TASK_TYPE = "transfer"
DEFAULT_MAX_WORKERS = 4

# Saving the finished task log: 3 tries, 0.5s then 1s apart
FINISH_RETRY_POLICY = RetryPolicy(
    max_attempts=2,
    initial_delay=0.5,
    max_delay=2.0,
    strategy=DelayStrategy.LINEAR,
    retryable_exceptions=(LogStoreError,),
)


class CancellationToken:
    """Cooperative cancellation flag, checked between rules."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, kw_only=True)
class RunRequest:
    """Parameters of one run.

    ``reference_date`` wins over ``offset_days``; otherwise the run covers
    today (in ``timezone``) minus ``offset_days``. ``resend`` delivers files
    that adhoc rules already sent in earlier runs.
    """

    task_type: str = DEFAULT_TASK_TYPE
    trigger: Trigger = Trigger.MANUAL
    reference_date: date | None = None
    offset_days: int = 1
    rule_ids: tuple[str, ...] | None = None
    resend: bool = False
    timezone: str = "UTC"

    def __post_init__(self):
        if self.offset_days < 0:
            raise ConfigurationError(f"offset_days must be >= 0, got {self.offset_days}")

    @property
    def bypass_windows(self) -> bool:
        """Manual runs ignore weekly/monthly windows; scheduled runs honor them."""
        return self.trigger == Trigger.MANUAL

    def resolve_date(self, now: datetime | None = None) -> date:
        if self.reference_date is not None:
            return self.reference_date
        tz = resolve_timezone(self.timezone)
        if now is None:
            now = datetime.now(tz)
        elif now.tzinfo is not None:
            now = now.astimezone(tz)
        return now.date() - timedelta(days=self.offset_days)


class SyncOrchestrator:
    """Drives runs against one backend and one log store."""

    def __init__(
        self,
        rule_store: RuleStore,
        backend: TransferBackend,
        log_store: LogStore,
        source_root: str | Path,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        rename_limit: int = DEFAULT_RENAME_LIMIT,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_workers < 1:
            raise ConfigurationError(f"sync.max_workers must be >= 1, got {max_workers}")
        self.rule_store = rule_store
        self.backend = backend
        self.log_store = log_store
        self.source_root = Path(source_root)
        self.max_workers = max_workers
        self.matcher = RuleMatcher(rule_store.classifier)
        self.resolver = ConflictResolver(rename_limit)
        self.executor = TransferExecutor(backend, base_delay=base_delay, max_delay=max_delay, sleep=sleep)
        self.path_locks = PathLocks()
        self._store_retry = RetryManager(sleep=sleep)

    def run(self, request: RunRequest, cancel_token: CancellationToken | None = None) -> TaskLog:
        """
        Execute one run and return its finished task log.

        Rule-level problems never abort the run. A FatalBackendError does:
        the task is marked failed and the remaining rules are not logged.

        Raises:
            LogStoreError: The task log could not be created, or the finished
                task log could not be saved
        """
        reference_date = request.resolve_date()
        task = self.log_store.create_task(
            TaskLog(task_type=request.task_type, trigger=request.trigger, task_date=reference_date)
        )
        logger.info(
            f"Run {task.id} started: type={task.task_type} trigger={task.trigger} date={reference_date.isoformat()}"
        )

        rule_logs: list[RuleLog] = []
        fatal_error = None
        cancel_message = None
        try:
            self.backend.open()
            try:
                rule_logs.extend(self._record_load_failures(task, request))
                cancel_message = self._process_rules(task, request, reference_date, rule_logs, cancel_token)
            finally:
                self.backend.close()
        except FatalBackendError as e:
            fatal_error = f"Backend unavailable: {e.message}"
            logger.error(f"Run {task.id} aborted: {e.message}")
        except LogStoreError as e:
            fatal_error = f"Log store error: {e.message}"
            logger.error(f"Run {task.id} aborted: {e.message}")
        except Exception as e:
            fatal_error = f"Unexpected error: {e}"
            logger.exception(f"Run {task.id} failed unexpectedly")

        task.finish(
            rule_logs, fatal_error=fatal_error, cancelled=cancel_message is not None, cancel_message=cancel_message
        )
        self._save_finished(task)
        get_metrics_registry().record_run(task.task_type, task.status.value, task.duration_seconds or 0.0)
        logger.info(
            f"Run {task.id} finished: status={task.status} rules={task.total_rules} files={task.total_files} "
            f"success={task.success_count} failed={task.failed_count} skipped={task.skipped_count} "
            f"unmatched={task.unmatched_count} duration={task.duration_seconds:.2f}s"
        )
        return task

    def _save_finished(self, task: TaskLog) -> None:
        try:
            self._store_retry.execute_sync(
                self.log_store.finish_task, task, policy=FINISH_RETRY_POLICY, label=f"save run {task.id}"
            )
        except LogStoreError as e:
            logger.error(f"Run {task.id} finished as {task.status} but could not be saved: {e.message}")
            raise

    def _process_rules(
        self,
        task: TaskLog,
        request: RunRequest,
        reference_date: date,
        rule_logs: list[RuleLog],
        cancel_token: CancellationToken | None,
    ) -> str | None:
        """Process eligible rules in order; returns a message if cancelled."""
        plan = self.matcher.prepare(
            self.rule_store.enabled_rules(),
            reference_date,
            force=request.bypass_windows,
            selected=request.rule_ids,
        )
        files = discover_files(self.source_root, plan.directories)
        result = self.matcher.match_files(plan, files)

        task.unmatched_count = len(result.unmatched)
        if result.unmatched:
            logger.info(
                f"{len(result.unmatched)} file(s) matched no rule: "
                + ", ".join(f.relative_path for f in result.unmatched[:20])
            )
            get_metrics_registry().record_unmatched(len(result.unmatched))

        entries = result.entries
        for index, entry in enumerate(entries):
            if cancel_token is not None and cancel_token.cancelled:
                remaining = len(entries) - index
                message = f"Run cancelled ({cancel_token.reason}); {remaining} rule(s) not processed"
                logger.warning(f"Run {task.id}: {message}")
                return message
            files = result.files_for(entry.rule.rule_id)
            if entry.rule.schedule.period == Period.ADHOC and not request.resend:
                files = self._unsent_adhoc_files(entry.rule, files)
            self._process_rule(task, entry, files, reference_date, rule_logs)
        return None

    def _unsent_adhoc_files(self, rule: MappingRule, files: list[SourceFile]) -> list[SourceFile]:
        sent = self.log_store.adhoc_synced(rule.rule_id)
        if not sent:
            return files
        pending = [f for f in files if f.name not in sent]
        if len(pending) < len(files):
            logger.info(f"Rule {rule.rule_id}: {len(files) - len(pending)} file(s) already delivered, not resent")
        return pending

    def _record_load_failures(self, task: TaskLog, request: RunRequest) -> list[RuleLog]:
        failures: list[RuleLoadFailure] = self.rule_store.load_failures()
        if request.rule_ids is not None:
            failures = [f for f in failures if f.rule_id in request.rule_ids]
        logs = []
        for failure in failures:
            log = RuleLog.from_files(
                [],
                failure=failure.error.message,
                task_id=task.id,
                rule_id=failure.rule_id,
                rule_name=failure.description or failure.rule_id,
                module=failure.module,
                period="",
            )
            logs.append(self.log_store.record_rule(log))
        return logs

    def _process_rule(
        self,
        task: TaskLog,
        entry: PlanEntry,
        files: list[SourceFile],
        reference_date: date,
        rule_logs: list[RuleLog],
    ) -> None:
        """
        Transfer a rule's files and append its rule log to ``rule_logs``.

        The rule log is recorded even when a worker raised; the error is
        re-raised afterwards so the run can abort.
        """
        rule = entry.rule
        fields = dict(
            id=new_id(),
            task_id=task.id,
            rule_id=rule.rule_id,
            rule_name=rule.name,
            module=rule.module,
            period=rule.schedule.period.value,
        )
        if entry.failed:
            rule_logs.append(self.log_store.record_rule(RuleLog.from_files([], failure=entry.error.message, **fields)))
            return

        file_logs: list[FileLog] = []
        error: Exception | None = None
        if files:
            abort = threading.Event()
            workers = min(self.max_workers, len(files))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mapsync-transfer") as pool:
                futures = [
                    pool.submit(self._process_file, task, fields["id"], rule, file, reference_date, abort)
                    for file in files
                ]
                for future in futures:
                    try:
                        file_log = future.result()
                    except Exception as e:
                        abort.set()
                        error = error or e
                        continue
                    if file_log is not None:
                        file_logs.append(file_log)

        failure = None
        if error is not None:
            failure = f"Aborted: {error.message if isinstance(error, MapsyncError) else error}"
        rule_log = RuleLog.from_files(file_logs, failure=failure, **fields)
        rule_logs.append(rule_log)
        self.log_store.record_rule(rule_log)
        logger.info(
            f"Rule {rule.rule_id}: status={rule_log.status} files={rule_log.total_files} "
            f"success={rule_log.success_count} failed={rule_log.failed_count} skipped={rule_log.skipped_count}"
        )
        if error is not None:
            raise error

    def _destination(self, rule: MappingRule, file: SourceFile, reference_date: date) -> str:
        directory = resolve_template(rule.destination.path, reference_date, file.name)
        filename = resolve_template(rule.destination.filename, reference_date, file.name)
        return posixpath.join(directory, filename)

    def _process_file(
        self,
        task: TaskLog,
        rule_log_id: str,
        rule: MappingRule,
        file: SourceFile,
        reference_date: date,
        abort: threading.Event,
    ) -> FileLog | None:
        """Resolve, transfer and log one file. Returns None if the rule was aborted first."""
        if abort.is_set():
            return None

        started = time.monotonic()
        remote_path = self._destination(rule, file, reference_date)
        common = dict(
            task_id=task.id,
            rule_log_id=rule_log_id,
            rule_id=rule.rule_id,
            filename=file.name,
            local_path=file.local_path,
            size_bytes=file.size or 0,
        )
        try:
            with self.path_locks.hold(remote_path):
                resolution = self.resolver.resolve(remote_path, rule.destination.conflict, self.backend.exists)
                if resolution.skipped:
                    file_log = FileLog(
                        status=FileStatus.SKIPPED, remote_path=remote_path, error_message=resolution.message, **common
                    )
                else:
                    result = self.executor.transfer(
                        file.local_path, resolution.path, rule.retry, label=f"{rule.rule_id}:{file.name}"
                    )
                    common["size_bytes"] = result.bytes_transferred
                    file_log = FileLog(
                        status=FileStatus.SUCCESS,
                        remote_path=result.remote_path,
                        attempts=result.attempts,
                        transfer_seconds=result.duration,
                        **common,
                    )
        except FatalBackendError:
            raise
        except TransferError as e:
            logger.warning(
                f"Transfer failed rule={rule.rule_id} file={file.name} attempts={e.attempts}: {e.message}"
            )
            file_log = FileLog(
                status=FileStatus.FAIL,
                remote_path=e.remote_path or remote_path,
                attempts=e.attempts,
                error_message=e.message,
                transfer_seconds=time.monotonic() - started,
                **common,
            )
        except Exception as e:
            logger.error(f"Transfer failed rule={rule.rule_id} file={file.name}: {e}", exc_info=True)
            file_log = FileLog(
                status=FileStatus.FAIL,
                remote_path=remote_path,
                attempts=1,
                error_message=f"{type(e).__name__}: {e}",
                transfer_seconds=time.monotonic() - started,
                **common,
            )

        self.log_store.record_file(file_log)
        if file_log.status == FileStatus.SUCCESS and rule.schedule.period == Period.ADHOC:
            try:
                self.log_store.record_adhoc_sync(file_log)
            except LogStoreError as e:
                # Delivered and logged; the next adhoc run may send it again
                logger.warning(f"Rule {rule.rule_id}: could not record delivery of {file.name}: {e.message}")
        get_metrics_registry().record_file(
            file_log.status.value, file_log.size_bytes if file_log.status == FileStatus.SUCCESS else 0
        )
        return file_log
