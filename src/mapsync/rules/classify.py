"""
File classification for file-type rules.

A classifier maps a file name to a type reference (or None). The built-in
implementation reads ``file_types`` from configuration::

    file_types:
      - id: SAL_DAILY
        module: SAL
        patterns: ["SAL_*.csv", "SAL_*.txt"]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from mapsync.exceptions import ConfigurationError
from mapsync.rules.patterns import compile_glob
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.rules.classify")


class FileClassifier(Protocol):
    def classify(self, filename: str) -> str | None:
        """Return the type reference for ``filename``, or None if unknown."""
        ...


@dataclass(frozen=True)
class FileTypeDefinition:
    type_id: str
    patterns: tuple[str, ...]
    module: str = "OTHER"
    enabled: bool = True


class PatternClassifier:
    """Classifies by the first enabled file type whose pattern matches."""

    def __init__(self, definitions: list[FileTypeDefinition]):
        self.definitions = [d for d in definitions if d.enabled]
        # Validate every pattern up front; a broken type must not classify silently
        for definition in self.definitions:
            for pattern in definition.patterns:
                compile_glob(pattern)

    @classmethod
    def from_config(cls, file_types: list[dict[str, Any]]) -> PatternClassifier:
        definitions = []
        for i, raw in enumerate(file_types or []):
            if not isinstance(raw, dict) or not raw.get("id"):
                raise ConfigurationError(f"file_types[{i}] must be a mapping with an 'id'")
            patterns = raw.get("patterns") or ([raw["pattern"]] if raw.get("pattern") else [])
            if not patterns:
                raise ConfigurationError(f"File type '{raw['id']}' needs at least one pattern")
            definitions.append(
                FileTypeDefinition(
                    type_id=str(raw["id"]),
                    patterns=tuple(str(p) for p in patterns),
                    module=str(raw.get("module", "OTHER")),
                    enabled=bool(raw.get("enabled", True)),
                )
            )
        return cls(definitions)

    def classify(self, filename: str) -> str | None:
        for definition in self.definitions:
            for pattern in definition.patterns:
                if compile_glob(pattern).match(filename):
                    return definition.type_id
        return None
