"""
Configuration management: YAML loading, environment resolution, global access.
"""

from mapsync.config.loader import Config, load_config
from mapsync.config.resolver import resolve_config
from mapsync.config.singleton import GlobalConfig, get_config

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
    "GlobalConfig",
    "get_config",
]
