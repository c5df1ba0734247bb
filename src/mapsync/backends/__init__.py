"""
Transfer backends and the factory that builds one from configuration.
"""

from typing import Any

from mapsync.backends.base import TransferBackend, TransferResult
from mapsync.backends.filesystem import FilesystemBackend
from mapsync.backends.sftp import SFTPBackend
from mapsync.exceptions import ConfigurationError

BACKENDS: dict[str, type[TransferBackend]] = {
    "sftp": SFTPBackend,
    "filesystem": FilesystemBackend,
}


def create_backend(config: dict[str, Any], name: str = "destination") -> TransferBackend:
    """Build the backend described by the ``backend`` config section."""
    backend_type = (config or {}).get("type", "sftp")
    backend_cls = BACKENDS.get(backend_type)
    if backend_cls is None:
        raise ConfigurationError(f"Unknown backend type '{backend_type}'")
    return backend_cls(name, config or {})


__all__ = [
    "BACKENDS",
    "FilesystemBackend",
    "SFTPBackend",
    "TransferBackend",
    "TransferResult",
    "create_backend",
]
