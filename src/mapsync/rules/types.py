"""
Mapping rule types.

Rules arrive from configuration as loose mappings and are turned into one
of two frozen variants at load time, keyed by match type:

- FilenamePatternRule: the file name must match a glob pattern
- FileTypeRule: the file's classified type must equal a type reference

Everything downstream works on these variants, never on the raw mapping.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import ClassVar

from mapsync.retry.policy import DelayStrategy

MODULES = ("SAL", "UPL", "OWB", "IWB", "MAS", "OTHER")

DEFAULT_FILENAME_TEMPLATE = "{baseName}{ext}"
DEFAULT_PRIORITY = 100
MIN_PRIORITY = 1
MAX_PRIORITY = 1000
MAX_RETRY_ATTEMPTS = 10


class MatchType(StrEnum):
    FILENAME_PATTERN = "filename-pattern"
    FILE_TYPE = "file-type"


class Period(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ADHOC = "adhoc"


class ConflictPolicy(StrEnum):
    OVERWRITE = "overwrite"
    RENAME = "rename"
    SKIP = "skip"


def cron_weekday(day: date) -> int:
    """Weekday number with Sunday = 0 ... Saturday = 6."""
    return (day.weekday() + 1) % 7


@dataclass(frozen=True)
class ScheduleWindow:
    """Calendar dates on which a rule is automatically eligible."""

    period: Period = Period.DAILY
    weekdays: frozenset[int] = frozenset()  # 0=Sunday .. 6=Saturday
    monthdays: frozenset[int] = frozenset()  # 1..31

    def includes(self, day: date) -> bool:
        """Whether automatic evaluation on ``day`` should consider the rule.

        Ad-hoc rules never match automatically.
        """
        if self.period == Period.DAILY:
            return True
        if self.period == Period.WEEKLY:
            return cron_weekday(day) in self.weekdays
        if self.period == Period.MONTHLY:
            return day.day in self.monthdays
        return False


@dataclass(frozen=True)
class Destination:
    path: str
    filename: str = DEFAULT_FILENAME_TEMPLATE
    conflict: ConflictPolicy = ConflictPolicy.RENAME


@dataclass(frozen=True)
class RetrySettings:
    # Total tries for one file; 0 and 1 both mean a single try
    attempts: int = 3
    strategy: DelayStrategy = DelayStrategy.EXPONENTIAL


@dataclass(frozen=True, kw_only=True)
class MappingRule:
    """Fields shared by both rule variants."""

    match_type: ClassVar[MatchType]

    rule_id: str
    directory: str
    destination: Destination
    description: str = ""
    module: str = "OTHER"
    schedule: ScheduleWindow = field(default_factory=ScheduleWindow)
    priority: int = DEFAULT_PRIORITY
    retry: RetrySettings = field(default_factory=RetrySettings)
    enabled: bool = True
    # Position in configuration, used to break priority ties
    order: int = 0

    @property
    def name(self) -> str:
        return self.description or self.rule_id

    @property
    def sort_key(self) -> tuple[int, int]:
        """Lower priority number first, then configuration order."""
        return (self.priority, self.order)


@dataclass(frozen=True, kw_only=True)
class FilenamePatternRule(MappingRule):
    match_type: ClassVar[MatchType] = MatchType.FILENAME_PATTERN

    # Glob, may contain date placeholders
    pattern: str


@dataclass(frozen=True, kw_only=True)
class FileTypeRule(MappingRule):
    match_type: ClassVar[MatchType] = MatchType.FILE_TYPE

    file_type: str


@dataclass(frozen=True)
class SourceFile:
    """A candidate file found under the source root.

    ``directory`` is the POSIX path of the containing directory relative to
    the source root, without leading or trailing slashes ("" for the root).
    """

    name: str
    directory: str
    local_path: str
    size: int | None = None
    file_type: str | None = None

    @property
    def base_name(self) -> str:
        return posixpath.splitext(self.name)[0]

    @property
    def ext(self) -> str:
        return posixpath.splitext(self.name)[1]

    @property
    def relative_path(self) -> str:
        return posixpath.join(self.directory, self.name) if self.directory else self.name
