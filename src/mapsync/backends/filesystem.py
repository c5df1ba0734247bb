"""
Local filesystem transfer backend.

Treats a local directory (often a mounted share) as the destination. Remote
paths are interpreted relative to ``root``.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any

from mapsync.backends.base import TransferBackend, TransferResult
from mapsync.exceptions import FatalBackendError, TransferError


class FilesystemBackend(TransferBackend):
    """Copies files into a directory tree under ``root``."""

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name, config)
        self.root_path = Path(config.get("root", "outbox"))

    def open(self) -> None:
        if self.config.get("create_root", True):
            self.root_path.mkdir(parents=True, exist_ok=True)
        if not self.root_path.is_dir():
            raise FatalBackendError(f"Destination root is not a directory: {self.root_path}")

    def full_path(self, remote_path: str) -> Path:
        """
        Map a remote path onto the local tree.

        Raises:
            TransferError: If the path escapes the root directory
        """
        root_resolved = self.root_path.resolve()
        full = (self.root_path / remote_path.lstrip("/")).resolve()
        try:
            full.relative_to(root_resolved)
        except ValueError as e:
            raise TransferError(
                f"Path traversal detected: '{remote_path}' escapes root '{self.root_path}'",
                remote_path=remote_path,
            ) from e
        return full

    def exists(self, remote_path: str) -> bool:
        return self.full_path(remote_path).exists()

    def transfer(self, local_path: str, remote_path: str) -> TransferResult:
        full = self.full_path(remote_path)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            tmp = full.with_name(full.name + ".part")
            shutil.copy2(local_path, tmp)
            os.replace(tmp, full)
            size = full.stat().st_size
        except OSError as e:
            raise TransferError(f"Copy to {full} failed: {e}", remote_path=remote_path) from e
        return TransferResult(remote_path=remote_path, bytes_transferred=size)
