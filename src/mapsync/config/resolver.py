"""
Environment variable substitution for configuration values.
"""

import os
import re
from typing import Any

# ${NAME} or ${NAME:-fallback}
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def resolve_config(config_data: dict[str, Any]) -> dict[str, Any]:
    """
    Resolve ``${VAR}`` and ``${VAR:-default}`` references in every string value.

    Unset variables without a default are left as written so the problem is
    visible in the loaded config. Single-brace path placeholders such as
    ``{date}`` are not touched; they are expanded per run.
    """
    return _resolve_value(config_data)


def _resolve_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _resolve_value(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_value(item) for item in value]
    elif isinstance(value, str):
        return _ENV_PATTERN.sub(_substitute, value)
    else:
        return value


def _substitute(match: re.Match) -> str:
    name, fallback = match.group(1), match.group(2)
    resolved = os.getenv(name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    return match.group(0)
