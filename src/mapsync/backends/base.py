"""
Abstract transfer backend.

A backend moves one local file to one remote path and can tell whether a
remote path already exists. Connection lifecycle lives behind ``open`` and
``close``; per-file failures raise TransferError and an unreachable
endpoint raises FatalBackendError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.backends.base")


@dataclass(frozen=True)
class TransferResult:
    remote_path: str
    bytes_transferred: int
    attempts: int = 1
    duration: float = 0.0


class TransferBackend(ABC):
    """Base class for transfer backends."""

    def __init__(self, name: str, config: dict[str, Any]):
        """
        Args:
            name: Backend name used in logs
            config: Backend section of the configuration
        """
        self.name = name
        self.config = config

    def open(self) -> None:
        """Establish the session. Raises FatalBackendError when unreachable."""

    def close(self) -> None:
        """Release the session. Safe to call more than once."""

    @abstractmethod
    def exists(self, remote_path: str) -> bool:
        """Whether ``remote_path`` already exists on the destination."""

    @abstractmethod
    def transfer(self, local_path: str, remote_path: str) -> TransferResult:
        """Copy ``local_path`` to ``remote_path``, creating parent directories."""

    def __enter__(self) -> TransferBackend:
        self.open()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
