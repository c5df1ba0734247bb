"""
Read-only rule store backed by configuration.

Rules are validated once on load. A rule that fails validation does not
stop the others from loading; it is kept as a RuleLoadFailure so every run
can report it until the configuration is fixed.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

from mapsync.exceptions import ConfigurationError
from mapsync.rules.classify import FileClassifier, PatternClassifier
from mapsync.rules.loader import rule_from_dict
from mapsync.rules.types import MappingRule
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.rules.store")


@dataclass(frozen=True)
class RuleLoadFailure:
    rule_id: str
    description: str
    module: str
    order: int
    error: ConfigurationError


class RuleStore:
    """Holds the typed rules and the file classifier for one configuration."""

    def __init__(
        self,
        raw_rules: list[dict[str, Any]] | None = None,
        file_types: list[dict[str, Any]] | None = None,
        classifier: FileClassifier | None = None,
    ):
        self._lock = threading.Lock()
        self._rules: list[MappingRule] = []
        self._failures: list[RuleLoadFailure] = []
        self._classifier: FileClassifier = classifier or PatternClassifier.from_config(file_types or [])
        self.load(raw_rules or [])

    @classmethod
    def from_config(cls, config: Any) -> RuleStore:
        """Build from a Config (or plain dict) with ``rules`` and ``file_types`` sections."""
        data = config.data if hasattr(config, "data") else config
        return cls(data.get("rules") or [], data.get("file_types") or [])

    def load(self, raw_rules: list[dict[str, Any]]) -> None:
        """Replace the current rule set."""
        rules: list[MappingRule] = []
        failures: list[RuleLoadFailure] = []
        seen: set[str] = set()

        for order, raw in enumerate(raw_rules):
            try:
                rule = rule_from_dict(raw, order=order)
                if rule.rule_id in seen:
                    raise ConfigurationError(f"Duplicate rule id '{rule.rule_id}'", rule_id=rule.rule_id)
            except ConfigurationError as e:
                raw = raw if isinstance(raw, dict) else {}
                if raw.get("enabled", True) is False:
                    logger.debug(f"Ignoring invalid disabled rule #{order + 1}: {e}")
                    continue
                logger.warning(f"Invalid rule #{order + 1}: {e}")
                failures.append(
                    RuleLoadFailure(
                        rule_id=e.rule_id or str(raw.get("id") or f"rule-{order + 1}"),
                        description=str(raw.get("description") or ""),
                        module=str(raw.get("module") or "OTHER"),
                        order=order,
                        error=e,
                    )
                )
                continue
            seen.add(rule.rule_id)
            rules.append(rule)

        with self._lock:
            self._rules = rules
            self._failures = failures
        logger.debug(f"Loaded {len(rules)} rules ({len(failures)} invalid)")

    @property
    def classifier(self) -> FileClassifier:
        return self._classifier

    def all_rules(self) -> list[MappingRule]:
        with self._lock:
            return list(self._rules)

    def enabled_rules(self) -> list[MappingRule]:
        with self._lock:
            return [r for r in self._rules if r.enabled]

    def load_failures(self) -> list[RuleLoadFailure]:
        with self._lock:
            return list(self._failures)

    def get(self, rule_id: str) -> MappingRule | None:
        with self._lock:
            return next((r for r in self._rules if r.rule_id == rule_id), None)
