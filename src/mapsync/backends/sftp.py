"""
SFTP transfer backend.

One paramiko Transport is shared by all workers; each worker thread opens
its own SFTP channel on it, since a single SFTPClient must not be driven
from several threads at once.
"""

from __future__ import annotations

import errno
import os
import posixpath
import stat
import threading
from dataclasses import dataclass
from typing import Any

import paramiko

from mapsync.backends.base import TransferBackend, TransferResult
from mapsync.exceptions import FatalBackendError, TransferError
from mapsync.retry import DelayStrategy, RetryManager, RetryPolicy
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.backends.sftp")

# Connect tries 3 times, waiting 1s then 2s
CONNECT_RETRY_POLICY = RetryPolicy(
    max_attempts=2,
    initial_delay=1.0,
    max_delay=5.0,
    strategy=DelayStrategy.LINEAR,
    retryable_exceptions=(paramiko.SSHException, OSError, EOFError),
)


@dataclass(frozen=True)
class SFTPConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    private_key_path: str | None = None
    private_key_passphrase: str | None = None
    connect_timeout_s: float = 15.0


def _is_missing(error: OSError) -> bool:
    return isinstance(error, FileNotFoundError) or getattr(error, "errno", None) == errno.ENOENT


class SFTPBackend(TransferBackend):
    """Uploads files over SFTP using paramiko."""

    def __init__(self, name: str, config: dict[str, Any], retry_manager: RetryManager | None = None):
        super().__init__(name, config)
        self._transport: paramiko.Transport | None = None
        self._local = threading.local()
        self._lock = threading.Lock()
        self._known_dirs: set[str] = set()
        self._retry = retry_manager or RetryManager()

    def _parse_config(self) -> SFTPConfig:
        cfg = self.config
        return SFTPConfig(
            host=cfg.get("host", ""),
            port=int(cfg.get("port", 22)),
            username=cfg.get("username"),
            password=cfg.get("password"),
            private_key_path=cfg.get("private_key_path") or cfg.get("key_path"),
            private_key_passphrase=cfg.get("private_key_passphrase"),
            connect_timeout_s=float(cfg.get("connect_timeout_s", 15.0)),
        )

    def _load_key(self, cfg: SFTPConfig) -> paramiko.PKey | None:
        if not cfg.private_key_path:
            return None
        try:
            return paramiko.RSAKey.from_private_key_file(cfg.private_key_path, password=cfg.private_key_passphrase)
        except paramiko.SSHException:
            return paramiko.Ed25519Key.from_private_key_file(cfg.private_key_path, password=cfg.private_key_passphrase)

    def _connect_once(self, cfg: SFTPConfig) -> paramiko.Transport:
        transport = paramiko.Transport((cfg.host, cfg.port))
        transport.banner_timeout = cfg.connect_timeout_s
        transport.auth_timeout = cfg.connect_timeout_s
        try:
            transport.connect(username=cfg.username, password=cfg.password, pkey=self._load_key(cfg))
        except Exception:
            transport.close()
            raise
        return transport

    def open(self) -> None:
        """Connect, retrying briefly. Raises FatalBackendError when unreachable."""
        with self._lock:
            if self._transport is not None and self._transport.is_active():
                return
            cfg = self._parse_config()
            if not cfg.host:
                raise FatalBackendError(f"SFTP backend '{self.name}' missing host")
            try:
                self._transport = self._retry.execute_sync(
                    self._connect_once, cfg, policy=CONNECT_RETRY_POLICY, label=f"sftp connect {cfg.host}"
                )
            except Exception as e:
                raise FatalBackendError(
                    f"Cannot reach SFTP server {cfg.host}:{cfg.port}: {e}",
                    details={"host": cfg.host, "port": cfg.port},
                ) from e
            self._known_dirs.clear()
            logger.info(f"Connected to SFTP server {cfg.host}:{cfg.port}")

    def _client(self) -> paramiko.SFTPClient:
        transport = self._transport
        if transport is None or not transport.is_active():
            # Session dropped mid-run; one reconnect, then give up on the run
            self.open()
            transport = self._transport
        client = getattr(self._local, "client", None)
        if client is None or getattr(self._local, "transport", None) is not transport:
            try:
                client = paramiko.SFTPClient.from_transport(transport)
            except (paramiko.SSHException, EOFError) as e:
                raise TransferError(f"Cannot open SFTP channel: {e}") from e
            self._local.client = client
            self._local.transport = transport
        return client

    def close(self) -> None:
        with self._lock:
            try:
                if self._transport is not None:
                    self._transport.close()
            finally:
                self._transport = None
                self._local = threading.local()

    def exists(self, remote_path: str) -> bool:
        client = self._client()
        try:
            client.stat(remote_path)
            return True
        except (OSError, paramiko.SSHException, EOFError) as e:
            if isinstance(e, OSError) and _is_missing(e):
                return False
            raise TransferError(f"Cannot stat {remote_path}: {e}", remote_path=remote_path) from e

    def _ensure_dir(self, client: paramiko.SFTPClient, directory: str) -> None:
        """mkdir -p for a remote directory."""
        if not directory or directory == "/" or directory in self._known_dirs:
            return
        current = "/" if directory.startswith("/") else ""
        for part in [p for p in directory.split("/") if p]:
            current = posixpath.join(current, part)
            if current in self._known_dirs:
                continue
            try:
                attrs = client.stat(current)
                if not stat.S_ISDIR(attrs.st_mode or 0):
                    raise TransferError(f"Remote path {current} exists and is not a directory", remote_path=current)
            except OSError as e:
                if not _is_missing(e):
                    raise
                try:
                    client.mkdir(current)
                except OSError:
                    # Another worker may have created it in between
                    client.stat(current)
            with self._lock:
                self._known_dirs.add(current)

    def transfer(self, local_path: str, remote_path: str) -> TransferResult:
        client = self._client()
        try:
            self._ensure_dir(client, posixpath.dirname(remote_path))
            client.put(local_path, remote_path)
            size = os.path.getsize(local_path)
        except (OSError, paramiko.SSHException, EOFError) as e:
            raise TransferError(f"Upload to {remote_path} failed: {e}", remote_path=remote_path) from e
        return TransferResult(remote_path=remote_path, bytes_transferred=size)
