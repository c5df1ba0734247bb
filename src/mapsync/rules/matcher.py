"""
Rule matching: which rule, if any, claims each candidate file.

Matching runs in two steps so the caller knows which directories to scan
before any file is listed:

1. ``prepare`` filters rules by schedule window, sorts them by priority and
   compiles each one (directory template and pattern resolved against the
   reference date). A rule that fails to compile is kept as a failed entry.
2. ``match_files`` walks every file through the compiled rules in order;
   the first rule that accepts a file claims it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from mapsync.exceptions import ConfigurationError
from mapsync.rules.classify import FileClassifier
from mapsync.rules.patterns import compile_glob
from mapsync.rules.templates import resolve_template
from mapsync.rules.types import FilenamePatternRule, FileTypeRule, MappingRule, Period, SourceFile
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.rules.matcher")


def normalize_directory(path: str) -> str:
    """Normalize a source directory to a root-relative POSIX path.

    Leading slashes are dropped (directories are always relative to the
    source root). ``..`` segments are rejected.
    """
    parts = []
    for part in path.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            raise ConfigurationError(f"Source directory {path!r} escapes the source root")
        parts.append(part)
    return "/".join(parts)


@dataclass(frozen=True)
class CompiledRule:
    rule: MappingRule
    directory: str
    regex: re.Pattern[str] | None = None

    def accepts(self, file: SourceFile, file_type: str | None) -> bool:
        if file.directory != self.directory:
            return False
        if isinstance(self.rule, FileTypeRule):
            return file_type is not None and file_type == self.rule.file_type
        return self.regex is not None and self.regex.match(file.name) is not None


@dataclass
class PlanEntry:
    rule: MappingRule
    compiled: CompiledRule | None = None
    error: ConfigurationError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class MatchPlan:
    reference_date: date
    entries: list[PlanEntry] = field(default_factory=list)

    @property
    def compiled(self) -> list[CompiledRule]:
        return [e.compiled for e in self.entries if e.compiled is not None]

    @property
    def failures(self) -> list[PlanEntry]:
        return [e for e in self.entries if e.failed]

    @property
    def directories(self) -> list[str]:
        """Distinct source directories to scan, in rule order."""
        return list(dict.fromkeys(c.directory for c in self.compiled))


@dataclass
class MatchResult:
    plan: MatchPlan
    assignments: dict[str, list[SourceFile]] = field(default_factory=dict)
    unmatched: list[SourceFile] = field(default_factory=list)

    @property
    def entries(self) -> list[PlanEntry]:
        return self.plan.entries

    def files_for(self, rule_id: str) -> list[SourceFile]:
        return self.assignments.get(rule_id, [])

    @property
    def matched_count(self) -> int:
        return sum(len(files) for files in self.assignments.values())


class RuleMatcher:
    """Selects (file, rule) pairs for a reference date."""

    def __init__(self, classifier: FileClassifier | None = None):
        self.classifier = classifier

    def eligible_rules(
        self,
        rules: Iterable[MappingRule],
        reference_date: date,
        *,
        force: bool = False,
        selected: Iterable[str] | None = None,
    ) -> list[MappingRule]:
        """
        Filter and order rules for one evaluation.

        Args:
            rules: Candidate rules (disabled ones are dropped)
            reference_date: Date used for schedule windows
            force: Ignore weekly/monthly windows (manual runs)
            selected: If given, only these rule ids are considered; this is
                also the only way an ad-hoc rule becomes eligible

        Returns:
            Eligible rules sorted by priority, then configuration order
        """
        wanted = set(selected) if selected is not None else None
        eligible = []
        for rule in rules:
            if not rule.enabled:
                continue
            if wanted is not None and rule.rule_id not in wanted:
                continue
            if rule.schedule.period == Period.ADHOC:
                if wanted is None:
                    continue
            elif not force and not rule.schedule.includes(reference_date):
                continue
            eligible.append(rule)
        return sorted(eligible, key=lambda r: r.sort_key)

    def compile_rule(self, rule: MappingRule, reference_date: date) -> CompiledRule:
        """Resolve a rule's templates for ``reference_date``.

        Raises:
            ConfigurationError: If the directory or pattern is malformed
        """
        try:
            directory = normalize_directory(resolve_template(rule.directory, reference_date))
            regex = None
            if isinstance(rule, FilenamePatternRule):
                regex = compile_glob(resolve_template(rule.pattern, reference_date))
        except ConfigurationError as e:
            raise ConfigurationError(f"Rule '{rule.rule_id}': {e.message}", rule_id=rule.rule_id) from e
        return CompiledRule(rule=rule, directory=directory, regex=regex)

    def prepare(
        self,
        rules: Iterable[MappingRule],
        reference_date: date,
        *,
        force: bool = False,
        selected: Iterable[str] | None = None,
    ) -> MatchPlan:
        plan = MatchPlan(reference_date=reference_date)
        for rule in self.eligible_rules(rules, reference_date, force=force, selected=selected):
            try:
                plan.entries.append(PlanEntry(rule=rule, compiled=self.compile_rule(rule, reference_date)))
            except ConfigurationError as e:
                logger.warning(f"Skipping rule '{rule.rule_id}' for {reference_date.isoformat()}: {e.message}")
                plan.entries.append(PlanEntry(rule=rule, error=e))
        return plan

    def match_files(self, plan: MatchPlan, files: Iterable[SourceFile]) -> MatchResult:
        compiled = plan.compiled
        result = MatchResult(plan=plan, assignments={c.rule.rule_id: [] for c in compiled})
        needs_type = any(isinstance(c.rule, FileTypeRule) for c in compiled)

        for file in files:
            file_type = file.file_type
            if file_type is None and needs_type and self.classifier is not None:
                file_type = self.classifier.classify(file.name)

            owner = next((c for c in compiled if c.accepts(file, file_type)), None)
            if owner is None:
                result.unmatched.append(file)
            else:
                result.assignments[owner.rule.rule_id].append(file)
        return result

    def match(
        self,
        rules: Iterable[MappingRule],
        files: Iterable[SourceFile],
        reference_date: date,
        *,
        force: bool = False,
        selected: Iterable[str] | None = None,
    ) -> MatchResult:
        """Prepare and match in one call."""
        plan = self.prepare(rules, reference_date, force=force, selected=selected)
        return self.match_files(plan, files)
