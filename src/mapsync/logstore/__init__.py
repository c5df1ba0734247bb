"""
Sync log hierarchy: run (task), rule and file records and their store.
"""

from mapsync.logstore.records import (
    FileLog,
    FileStatus,
    RuleLog,
    RunStatus,
    TaskLog,
    Trigger,
    rule_status,
    task_status,
)
from mapsync.logstore.store import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, LogStore

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "FileLog",
    "FileStatus",
    "LogStore",
    "MAX_PAGE_SIZE",
    "RuleLog",
    "RunStatus",
    "TaskLog",
    "Trigger",
    "rule_status",
    "task_status",
]
