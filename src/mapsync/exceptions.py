"""
mapsync exception hierarchy.

All domain-specific exceptions inherit from MapsyncError, making it easy
to catch any sync error with a single base class while still allowing
fine-grained handling where the run semantics differ.

Hierarchy::

    MapsyncError
    ├── ConfigurationError            - malformed config, rule or pattern
    ├── TransferError                 - one file's transfer failed (retryable)
    │   └── ConflictResolutionExhausted - rename suffix cap reached
    ├── FatalBackendError             - backend unreachable, aborts the run
    ├── AlreadyRunningError           - run lock held for the task type
    ├── RunCancelledError             - run stopped at a rule boundary
    ├── LogStoreError                 - log database read/write
    ├── CronParseError                - malformed schedule expression
    └── InitializationError           - startup wiring failures
"""

from __future__ import annotations


class MapsyncError(Exception):
    """Base exception for all mapsync errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(MapsyncError):
    """Raised when a configuration section, rule or match pattern is invalid.

    Rule-level configuration errors are isolated to the offending rule: the
    orchestrator records a failed rule log and moves on to the next rule.
    """

    def __init__(self, message: str, *, rule_id: str | None = None, details: dict | None = None) -> None:
        merged = dict(details or {})
        if rule_id is not None:
            merged.setdefault("rule_id", rule_id)
        super().__init__(message, details=merged)
        self.rule_id = rule_id


# --- Transfers ---------------------------------------------------------------


class TransferError(MapsyncError):
    """Raised when a single file transfer fails (network, auth, permission)."""

    def __init__(
        self,
        message: str,
        *,
        remote_path: str | None = None,
        attempts: int = 1,
        details: dict | None = None,
    ) -> None:
        merged = dict(details or {})
        merged.setdefault("remote_path", remote_path)
        merged.setdefault("attempts", attempts)
        super().__init__(message, details=merged)
        self.remote_path = remote_path
        self.attempts = attempts


class ConflictResolutionExhausted(TransferError):
    """Raised when no free rename target exists within the configured limit."""

    def __init__(self, remote_path: str, limit: int) -> None:
        super().__init__(
            f"No free name for '{remote_path}' after {limit} rename attempts",
            remote_path=remote_path,
            attempts=0,
            details={"limit": limit},
        )
        self.limit = limit


class FatalBackendError(MapsyncError):
    """Raised when the transfer backend cannot be reached at all.

    Unlike TransferError this is never retried per file; it aborts the run.
    """


# --- Runs --------------------------------------------------------------------


class AlreadyRunningError(MapsyncError):
    """Raised when a trigger arrives while a run for the task type is active."""

    def __init__(self, task_type: str) -> None:
        super().__init__(f"A '{task_type}' run is already in progress", details={"task_type": task_type})
        self.task_type = task_type


class RunCancelledError(MapsyncError):
    """Raised internally when a cancellation request is observed."""


# --- Storage -----------------------------------------------------------------


class LogStoreError(MapsyncError):
    """Raised when the log database cannot be read or written."""


# --- Initialization ----------------------------------------------------------


class InitializationError(MapsyncError):
    """Raised during startup when a required component fails to initialize.

    Exception chaining is suppressed (``from None``) by callers to keep CLI
    output readable.
    """


# --- Scheduling --------------------------------------------------------------


class CronParseError(MapsyncError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid cron expression '{expression}': {reason}", details={"expression": expression})
        self.expression = expression
