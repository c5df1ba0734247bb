"""
Glob pattern compilation for file name matching.

Supports ``*``, ``?`` and bracket classes (``[abc]``, ``[a-z]``, ``[!x]``).
Matching is case-insensitive and anchored at both ends. Unlike fnmatch,
an unterminated bracket is an error rather than a literal, so a typo in a
rule surfaces as a configuration problem instead of silently matching
nothing.
"""

from __future__ import annotations

import re
from functools import lru_cache

from mapsync.exceptions import ConfigurationError


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a glob into a compiled, case-insensitive regex.

    Raises:
        ConfigurationError: If the pattern is empty or malformed
    """
    if not pattern or not pattern.strip():
        raise ConfigurationError("File name pattern is empty")

    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        ch = pattern[i]
        i += 1
        if ch == "*":
            # Collapse runs of stars
            while i < n and pattern[i] == "*":
                i += 1
            out.append(".*")
        elif ch == "?":
            out.append(".")
        elif ch == "[":
            end = pattern.find("]", i + 1 if i < n and pattern[i] in "!^" else i)
            if end == -1:
                raise ConfigurationError(f"Unterminated '[' in pattern {pattern!r}")
            body = pattern[i:end]
            negate = body[:1] in ("!", "^")
            if negate:
                body = body[1:]
            if not body:
                raise ConfigurationError(f"Empty character class in pattern {pattern!r}")
            escaped = body.replace("\\", "\\\\")
            out.append(f"[{'^' if negate else ''}{escaped}]")
            i = end + 1
        elif ch == "]":
            raise ConfigurationError(f"Unmatched ']' in pattern {pattern!r}")
        else:
            out.append(re.escape(ch))

    try:
        return re.compile("^" + "".join(out) + "$", re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"Invalid pattern {pattern!r}: {e}") from e


def glob_matches(pattern: str, name: str) -> bool:
    """Whether ``name`` matches ``pattern`` (case-insensitive)."""
    return compile_glob(pattern).match(name) is not None
