"""
Conflict handling for destinations that already exist.

``ConflictResolver`` turns (path, policy) into a decision; ``PathLocks``
serializes work on destinations that can collide, so two workers can never
pick the same rename target.
"""

from __future__ import annotations

import posixpath
import re
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum

from mapsync.exceptions import ConflictResolutionExhausted
from mapsync.rules.types import ConflictPolicy

DEFAULT_RENAME_LIMIT = 100


class ResolutionAction(StrEnum):
    PROCEED = "proceed"
    SKIP = "skip"


@dataclass(frozen=True)
class Resolution:
    action: ResolutionAction
    path: str
    message: str = ""

    @property
    def skipped(self) -> bool:
        return self.action == ResolutionAction.SKIP


def rename_candidate(path: str, counter: int) -> str:
    """``/out/report.csv`` -> ``/out/report_<counter>.csv``."""
    directory, filename = posixpath.split(path)
    stem, ext = posixpath.splitext(filename)
    return posixpath.join(directory, f"{stem}_{counter}{ext}")


class ConflictResolver:
    """Decides what to do when a destination path may already exist."""

    def __init__(self, rename_limit: int = DEFAULT_RENAME_LIMIT):
        if rename_limit < 1:
            raise ValueError("rename_limit must be >= 1")
        self.rename_limit = rename_limit

    def resolve(self, path: str, policy: ConflictPolicy, exists: Callable[[str], bool]) -> Resolution:
        """
        Args:
            path: Resolved destination path
            policy: Conflict policy of the rule
            exists: Existence check against the destination

        Returns:
            Resolution to proceed (possibly with a new path) or skip

        Raises:
            ConflictResolutionExhausted: rename found no free name within the limit
        """
        if policy == ConflictPolicy.OVERWRITE:
            return Resolution(ResolutionAction.PROCEED, path, "overwrite")

        if not exists(path):
            return Resolution(ResolutionAction.PROCEED, path)

        if policy == ConflictPolicy.SKIP:
            return Resolution(ResolutionAction.SKIP, path, "destination exists, skipped")

        for counter in range(1, self.rename_limit + 1):
            candidate = rename_candidate(path, counter)
            if not exists(candidate):
                return Resolution(ResolutionAction.PROCEED, candidate, f"renamed to {posixpath.basename(candidate)}")
        raise ConflictResolutionExhausted(path, self.rename_limit)


_RENAME_SUFFIX = re.compile(r"(?:_\d+)+$")


def conflict_group(path: str) -> str:
    """
    Key shared by a destination and every path it could be renamed to.

    ``/out/a.csv``, ``/out/a_1.csv`` and ``/out/a_1_2.csv`` all map to
    ``/out/a*.csv``: renaming only ever appends ``_<n>`` to the stem, so two
    destinations can only collide when their stems agree once those
    suffixes are stripped.
    """
    directory, filename = posixpath.split(path)
    stem, ext = posixpath.splitext(filename)
    root = _RENAME_SUFFIX.sub("", stem)
    return posixpath.join(directory, f"{root}*{ext}")


class PathLocks:
    """
    Locks over destination conflict groups, created on demand.

    Entries are reference counted and dropped once no worker holds or
    waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, path: str) -> Iterator[None]:
        key = conflict_group(path)
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
