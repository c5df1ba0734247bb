"""
Mapping rules: typed variants, template expansion, classification and matching.
"""

from mapsync.rules.classify import FileClassifier, PatternClassifier
from mapsync.rules.loader import rule_from_dict
from mapsync.rules.matcher import MatchPlan, MatchResult, RuleMatcher
from mapsync.rules.store import RuleLoadFailure, RuleStore
from mapsync.rules.templates import compile_template, resolve_template
from mapsync.rules.types import (
    ConflictPolicy,
    Destination,
    FilenamePatternRule,
    FileTypeRule,
    MappingRule,
    MatchType,
    Period,
    RetrySettings,
    ScheduleWindow,
    SourceFile,
)

__all__ = [
    "ConflictPolicy",
    "Destination",
    "FileClassifier",
    "FilenamePatternRule",
    "FileTypeRule",
    "MappingRule",
    "MatchPlan",
    "MatchResult",
    "MatchType",
    "PatternClassifier",
    "Period",
    "RetrySettings",
    "RuleLoadFailure",
    "RuleMatcher",
    "RuleStore",
    "ScheduleWindow",
    "SourceFile",
    "compile_template",
    "resolve_template",
    "rule_from_dict",
]
