"""
Run, rule and file log records.

A run produces one TaskLog, one RuleLog per evaluated rule and one FileLog
per file that reached a terminal outcome. Counts roll up file -> rule -> task,
so a TaskLog's totals always equal the sum of its RuleLogs.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any


class RunStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    FAIL = "fail"
    PARTIAL = "partial"


class FileStatus(StrEnum):
    SUCCESS = "success"
    FAIL = "fail"
    SKIPPED = "skipped"


class Trigger(StrEnum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the log tables."""
    return datetime.now(UTC).replace(tzinfo=None)


def rule_status(total: int, failed: int, *, rule_error: bool = False) -> RunStatus:
    """
    Roll a rule's file outcomes up into its status.

    A rule with a configuration error, or whose every file failed, is a
    failure. A rule with no failed files (including no files, or only
    skipped ones) succeeded. Anything else is partial.
    """
    if rule_error or (total > 0 and failed == total):
        return RunStatus.FAIL
    if failed == 0:
        return RunStatus.SUCCESS
    return RunStatus.PARTIAL


def task_status(statuses: Iterable[RunStatus], *, fatal: bool = False) -> RunStatus:
    """Roll rule statuses up into the run status. Zero rules is a success."""
    if fatal:
        return RunStatus.FAIL
    statuses = list(statuses)
    if all(s == RunStatus.SUCCESS for s in statuses):
        return RunStatus.SUCCESS
    if all(s == RunStatus.FAIL for s in statuses):
        return RunStatus.FAIL
    return RunStatus.PARTIAL


@dataclass(kw_only=True)
class FileLog:
    """Terminal outcome of one file in one run."""

    task_id: str
    rule_log_id: str
    rule_id: str
    filename: str
    local_path: str
    remote_path: str | None
    status: FileStatus
    size_bytes: int = 0
    attempts: int = 0
    error_message: str | None = None
    transfer_seconds: float = 0.0
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["status"] = self.status.value
        return row


@dataclass(kw_only=True)
class RuleLog:
    """Per-rule totals within a run."""

    task_id: str
    rule_id: str
    rule_name: str
    module: str
    period: str
    total_files: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    status: RunStatus = RunStatus.SUCCESS
    error_message: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_files(
        cls,
        files: Iterable[FileLog],
        *,
        failure: str | None = None,
        error_message: str | None = None,
        **fields: Any,
    ) -> RuleLog:
        """
        Build a rule log whose counts are derived from its file logs.

        ``failure`` marks the whole rule failed (bad configuration, or the
        run aborted while the rule was in flight) regardless of its files.
        """
        files = list(files)
        success = sum(1 for f in files if f.status == FileStatus.SUCCESS)
        failed = sum(1 for f in files if f.status == FileStatus.FAIL)
        skipped = sum(1 for f in files if f.status == FileStatus.SKIPPED)
        return cls(
            total_files=len(files),
            success_count=success,
            failed_count=failed,
            skipped_count=skipped,
            status=rule_status(len(files), failed, rule_error=failure is not None),
            error_message=failure or error_message,
            **fields,
        )

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["status"] = self.status.value
        return row


@dataclass(kw_only=True)
class TaskLog:
    """One orchestration run; root of the log hierarchy."""

    task_type: str
    trigger: Trigger
    task_date: date
    id: str = field(default_factory=new_id)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    duration_seconds: float | None = None
    total_rules: int = 0
    total_files: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    unmatched_count: int = 0
    status: RunStatus = RunStatus.PENDING
    error_message: str | None = None

    def finish(
        self,
        rule_logs: Iterable[RuleLog],
        *,
        fatal_error: str | None = None,
        cancelled: bool = False,
        cancel_message: str | None = None,
        finished_at: datetime | None = None,
    ) -> None:
        """Derive totals and status from the recorded rule logs."""
        rule_logs = list(rule_logs)
        self.total_rules = len(rule_logs)
        self.total_files = sum(r.total_files for r in rule_logs)
        self.success_count = sum(r.success_count for r in rule_logs)
        self.failed_count = sum(r.failed_count for r in rule_logs)
        self.skipped_count = sum(r.skipped_count for r in rule_logs)

        status = task_status((r.status for r in rule_logs), fatal=fatal_error is not None)
        if cancelled and status == RunStatus.SUCCESS:
            status = RunStatus.PARTIAL
        self.status = status

        messages = [m for m in (fatal_error, cancel_message) if m]
        if not messages and status != RunStatus.SUCCESS:
            failed = [r.rule_id for r in rule_logs if r.status != RunStatus.SUCCESS]
            if failed:
                messages.append(f"Rules with failures: {', '.join(failed)}")
        self.error_message = "; ".join(messages) or None

        self.finished_at = finished_at or utcnow()
        self.duration_seconds = max((self.finished_at - self.started_at).total_seconds(), 0.0)

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["trigger"] = self.trigger.value
        row["status"] = self.status.value
        row["task_date"] = self.task_date.isoformat()
        return row
