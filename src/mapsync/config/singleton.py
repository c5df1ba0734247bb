"""
Global configuration singleton.

Holds the Config loaded by the CLI or service so that logging auto-setup
and other late consumers can reach it without threading it through calls.
"""

import threading

from mapsync.config.loader import Config


class GlobalConfig:
    """Global configuration singleton manager."""

    _instance: Config | None = None
    _lock = threading.Lock()

    @classmethod
    def set_config(cls, config: Config):
        with cls._lock:
            cls._instance = config

    @classmethod
    def get_config(cls) -> Config | None:
        return cls._instance

    @classmethod
    def reset_config(cls):
        """Reset the global config instance (for testing)."""
        with cls._lock:
            cls._instance = None


def get_config() -> Config | None:
    """Return the global Config instance, or None before startup."""
    return GlobalConfig.get_config()
