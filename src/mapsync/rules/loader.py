"""
Turn raw rule mappings from configuration into typed rule variants.

Validation happens here, once, so the matcher never has to inspect a rule's
shape. A mapping that cannot be turned into a rule raises
ConfigurationError naming the rule and the offending field.
"""

from __future__ import annotations

from typing import Any

from mapsync.exceptions import ConfigurationError
from mapsync.retry.policy import DelayStrategy
from mapsync.rules.types import (
    DEFAULT_FILENAME_TEMPLATE,
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MAX_RETRY_ATTEMPTS,
    MIN_PRIORITY,
    MODULES,
    ConflictPolicy,
    Destination,
    FilenamePatternRule,
    FileTypeRule,
    MappingRule,
    MatchType,
    Period,
    RetrySettings,
    ScheduleWindow,
)

# Spellings accepted for match_type
_MATCH_TYPE_ALIASES = {
    "filename-pattern": MatchType.FILENAME_PATTERN,
    "filename": MatchType.FILENAME_PATTERN,
    "pattern": MatchType.FILENAME_PATTERN,
    "file-type": MatchType.FILE_TYPE,
    "filetype": MatchType.FILE_TYPE,
    "type": MatchType.FILE_TYPE,
}


def _first(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _enum(enum_cls: type, value: Any, field_name: str, rule_id: str) -> Any:
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(
            f"Rule '{rule_id}': {field_name} must be one of {allowed}, got {value!r}", rule_id=rule_id
        ) from None


def _int_set(values: Any, low: int, high: int, field_name: str, rule_id: str) -> frozenset[int]:
    if values is None:
        return frozenset()
    if isinstance(values, int) and not isinstance(values, bool):
        values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ConfigurationError(f"Rule '{rule_id}': {field_name} must be a list of integers", rule_id=rule_id)
    result = set()
    for v in values:
        if isinstance(v, bool) or not isinstance(v, int) or not low <= v <= high:
            raise ConfigurationError(
                f"Rule '{rule_id}': {field_name} values must be integers in {low}..{high}, got {v!r}",
                rule_id=rule_id,
            )
        result.add(v)
    return frozenset(result)


def _parse_schedule(raw: dict[str, Any] | None, rule_id: str) -> ScheduleWindow:
    raw = raw or {}
    period = _enum(Period, raw.get("period", Period.DAILY.value), "schedule.period", rule_id)
    weekdays = _int_set(_first(raw, "weekdays", "weekday"), 0, 6, "schedule.weekdays", rule_id)
    monthdays = _int_set(_first(raw, "monthdays", "monthday"), 1, 31, "schedule.monthdays", rule_id)

    if period == Period.WEEKLY and not weekdays:
        raise ConfigurationError(f"Rule '{rule_id}': weekly schedule needs at least one weekday", rule_id=rule_id)
    if period == Period.MONTHLY and not monthdays:
        raise ConfigurationError(f"Rule '{rule_id}': monthly schedule needs at least one monthday", rule_id=rule_id)
    return ScheduleWindow(period=period, weekdays=weekdays, monthdays=monthdays)


def _parse_retry(raw: dict[str, Any] | None, rule_id: str) -> RetrySettings:
    raw = raw or {}
    attempts = raw.get("attempts", 3)
    if isinstance(attempts, bool) or not isinstance(attempts, int) or not 0 <= attempts <= MAX_RETRY_ATTEMPTS:
        raise ConfigurationError(
            f"Rule '{rule_id}': retry.attempts must be an integer in 0..{MAX_RETRY_ATTEMPTS}, got {attempts!r}",
            rule_id=rule_id,
        )
    strategy = _enum(DelayStrategy, _first(raw, "delay", "strategy", default="exponential"), "retry.delay", rule_id)
    return RetrySettings(attempts=attempts, strategy=strategy)


def _parse_destination(raw: dict[str, Any] | None, rule_id: str) -> Destination:
    if not isinstance(raw, dict) or not raw.get("path"):
        raise ConfigurationError(f"Rule '{rule_id}': destination.path is required", rule_id=rule_id)
    return Destination(
        path=str(raw["path"]),
        filename=str(raw.get("filename") or DEFAULT_FILENAME_TEMPLATE),
        conflict=_enum(ConflictPolicy, raw.get("conflict", ConflictPolicy.RENAME.value), "destination.conflict", rule_id),
    )


def rule_from_dict(raw: dict[str, Any], order: int = 0) -> MappingRule:
    """
    Build a typed rule from one configuration mapping.

    Args:
        raw: Rule mapping as found under ``rules:`` in config.yaml
        order: Position of the rule in configuration (tie-breaker for priority)

    Returns:
        FilenamePatternRule or FileTypeRule

    Raises:
        ConfigurationError: If a required field is missing or out of range
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Rule #{order + 1} must be a mapping, got {type(raw).__name__}")

    rule_id = str(_first(raw, "id", "rule_id", default=f"rule-{order + 1}"))

    raw_match = str(_first(raw, "match_type", "matchType", default="")).lower()
    match_type = _MATCH_TYPE_ALIASES.get(raw_match)
    if match_type is None:
        raise ConfigurationError(
            f"Rule '{rule_id}': match_type must be 'filename-pattern' or 'file-type', got {raw_match or None!r}",
            rule_id=rule_id,
        )

    module = str(raw.get("module", "OTHER")).upper()
    if module not in MODULES:
        raise ConfigurationError(
            f"Rule '{rule_id}': module must be one of {', '.join(MODULES)}, got {module!r}", rule_id=rule_id
        )

    priority = raw.get("priority", DEFAULT_PRIORITY)
    if isinstance(priority, bool) or not isinstance(priority, int) or not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ConfigurationError(
            f"Rule '{rule_id}': priority must be an integer in {MIN_PRIORITY}..{MAX_PRIORITY}, got {priority!r}",
            rule_id=rule_id,
        )

    source = raw.get("source") or {}
    if not isinstance(source, dict):
        raise ConfigurationError(f"Rule '{rule_id}': source must be a mapping", rule_id=rule_id)

    common = dict(
        rule_id=rule_id,
        description=str(raw.get("description") or ""),
        module=module,
        directory=str(source.get("directory") or ""),
        destination=_parse_destination(raw.get("destination"), rule_id),
        schedule=_parse_schedule(raw.get("schedule"), rule_id),
        priority=priority,
        retry=_parse_retry(raw.get("retry"), rule_id),
        enabled=bool(raw.get("enabled", True)),
        order=order,
    )

    if match_type == MatchType.FILENAME_PATTERN:
        pattern = source.get("pattern")
        if not pattern:
            raise ConfigurationError(f"Rule '{rule_id}': source.pattern is required", rule_id=rule_id)
        return FilenamePatternRule(pattern=str(pattern), **common)

    file_type = _first(source, "file_type", "fileType")
    if not file_type:
        raise ConfigurationError(f"Rule '{rule_id}': source.file_type is required", rule_id=rule_id)
    return FileTypeRule(file_type=str(file_type), **common)
