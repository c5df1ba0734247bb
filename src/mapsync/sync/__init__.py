"""
Sync engine: discovery, conflict resolution, transfers and run orchestration.
"""

from mapsync.sync.conflict import ConflictResolver, PathLocks, Resolution, ResolutionAction
from mapsync.sync.discovery import discover_files
from mapsync.sync.executor import TransferExecutor
from mapsync.sync.orchestrator import (
    DEFAULT_TASK_TYPE,
    CancellationToken,
    RunRequest,
    SyncOrchestrator,
)

__all__ = [
    "DEFAULT_TASK_TYPE",
    "CancellationToken",
    "ConflictResolver",
    "PathLocks",
    "Resolution",
    "ResolutionAction",
    "RunRequest",
    "SyncOrchestrator",
    "TransferExecutor",
    "discover_files",
]
