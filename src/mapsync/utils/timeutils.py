"""
Timezone helpers.
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from mapsync.exceptions import ConfigurationError


def resolve_timezone(name: str | None) -> ZoneInfo:
    """ZoneInfo for ``name``, UTC when empty."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"Unknown timezone '{name}'") from None
