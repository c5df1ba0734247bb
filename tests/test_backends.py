"""
Tests for transfer backends.
"""

import errno
import stat
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from mapsync.backends import FilesystemBackend, SFTPBackend, create_backend
from mapsync.exceptions import ConfigurationError, FatalBackendError, TransferError
from mapsync.retry import RetryManager


class TestCreateBackend:
    def test_filesystem(self, tmp_path):
        backend = create_backend({"type": "filesystem", "root": str(tmp_path)})
        assert isinstance(backend, FilesystemBackend)
        assert backend.name == "destination"

    def test_sftp_is_default(self):
        assert isinstance(create_backend({"host": "h"}), SFTPBackend)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError, match="Unknown backend type 'ftp'"):
            create_backend({"type": "ftp"})


class TestFilesystemBackend:
    """Tests for the local directory backend."""

    @pytest.fixture
    def backend(self, tmp_path):
        backend = FilesystemBackend("fs", {"root": str(tmp_path / "dest")})
        backend.open()
        return backend

    def test_open_creates_root(self, tmp_path, backend):
        assert (tmp_path / "dest").is_dir()

    def test_open_without_create_fails(self, tmp_path):
        backend = FilesystemBackend("fs", {"root": str(tmp_path / "missing"), "create_root": False})
        with pytest.raises(FatalBackendError):
            backend.open()

    def test_transfer_creates_parents(self, tmp_path, backend):
        local = tmp_path / "a.csv"
        local.write_text("hello")

        result = backend.transfer(str(local), "/in/2024/a.csv")

        assert (tmp_path / "dest" / "in" / "2024" / "a.csv").read_text() == "hello"
        assert result.bytes_transferred == 5
        assert result.remote_path == "/in/2024/a.csv"
        assert not (tmp_path / "dest" / "in" / "2024" / "a.csv.part").exists()

    def test_exists(self, tmp_path, backend):
        assert not backend.exists("/x.txt")
        (tmp_path / "dest" / "x.txt").write_text("x")
        assert backend.exists("/x.txt")

    def test_path_traversal_rejected(self, backend):
        with pytest.raises(TransferError, match="Path traversal"):
            backend.full_path("../../etc/passwd")

    def test_missing_source_is_transfer_error(self, tmp_path, backend):
        with pytest.raises(TransferError):
            backend.transfer(str(tmp_path / "nope.csv"), "/nope.csv")

    def test_context_manager(self, tmp_path):
        with FilesystemBackend("fs", {"root": str(tmp_path / "ctx")}) as backend:
            assert backend.root_path.is_dir()


def _missing():
    return OSError(errno.ENOENT, "No such file")


class TestSFTPBackend:
    """Tests for the SFTP backend with paramiko mocked out."""

    @pytest.fixture
    def sftp(self):
        with (
            patch("mapsync.backends.sftp.paramiko.Transport") as transport_cls,
            patch("mapsync.backends.sftp.paramiko.SFTPClient") as client_cls,
        ):
            transport = transport_cls.return_value
            transport.is_active.return_value = True
            client = MagicMock()
            client_cls.from_transport.return_value = client
            yield transport_cls, transport, client

    def make(self, **config):
        config = {"host": "sftp.example.com", "username": "u", "password": "p", **config}
        return SFTPBackend("remote", config, retry_manager=RetryManager(sleep=lambda s: None))

    def test_open_connects_once(self, sftp):
        transport_cls, transport, _ = sftp
        backend = self.make(port=2222)
        backend.open()
        backend.open()
        transport_cls.assert_called_once_with(("sftp.example.com", 2222))
        transport.connect.assert_called_once_with(username="u", password="p", pkey=None)

    def test_missing_host(self, sftp):
        with pytest.raises(FatalBackendError, match="missing host"):
            SFTPBackend("remote", {}).open()

    def test_unreachable_after_three_tries(self, sftp):
        transport_cls, transport, _ = sftp
        transport.connect.side_effect = paramiko.SSHException("refused")
        backend = self.make()
        with pytest.raises(FatalBackendError, match="Cannot reach SFTP server"):
            backend.open()
        assert transport.connect.call_count == 3
        assert transport.close.call_count == 3

    def test_key_path_alias(self, sftp):
        backend = self.make(key_path="/keys/id_rsa")
        assert backend._parse_config().private_key_path == "/keys/id_rsa"

    def test_exists(self, sftp):
        _, _, client = sftp
        backend = self.make()
        backend.open()

        client.stat.return_value = MagicMock()
        assert backend.exists("/in/a.csv")

        client.stat.side_effect = _missing()
        assert not backend.exists("/in/a.csv")

        client.stat.side_effect = PermissionError(errno.EACCES, "denied")
        with pytest.raises(TransferError, match="Cannot stat"):
            backend.exists("/in/a.csv")

    def test_exists_channel_error_is_transfer_error(self, sftp):
        _, _, client = sftp
        backend = self.make()
        backend.open()

        client.stat.side_effect = paramiko.SSHException("channel closed")
        with pytest.raises(TransferError, match="Cannot stat /in/a.csv: channel closed"):
            backend.exists("/in/a.csv")

        client.stat.side_effect = EOFError()
        with pytest.raises(TransferError, match="Cannot stat"):
            backend.exists("/in/a.csv")

    def test_channel_open_error_is_transfer_error(self, sftp):
        with patch("mapsync.backends.sftp.paramiko.SFTPClient.from_transport") as from_transport:
            from_transport.side_effect = paramiko.SSHException("administratively prohibited")
            backend = self.make()
            backend.open()
            with pytest.raises(TransferError, match="Cannot open SFTP channel"):
                backend.exists("/in/a.csv")

    def test_transfer_creates_directories(self, sftp, tmp_path):
        _, _, client = sftp
        local = tmp_path / "a.csv"
        local.write_text("abc")
        client.stat.side_effect = _missing()
        backend = self.make()
        backend.open()

        result = backend.transfer(str(local), "/in/sales/a.csv")

        assert [c.args[0] for c in client.mkdir.call_args_list] == ["/in", "/in/sales"]
        client.put.assert_called_once_with(str(local), "/in/sales/a.csv")
        assert result.bytes_transferred == 3

        # Directories are remembered for the session
        client.mkdir.reset_mock()
        backend.transfer(str(local), "/in/sales/b.csv")
        client.mkdir.assert_not_called()

    def test_transfer_into_file_path_fails(self, sftp, tmp_path):
        _, _, client = sftp
        local = tmp_path / "a.csv"
        local.write_text("abc")
        client.stat.return_value = MagicMock(st_mode=stat.S_IFREG)
        backend = self.make()
        backend.open()

        with pytest.raises(TransferError, match="not a directory"):
            backend.transfer(str(local), "/in/a.csv")

    def test_upload_error_is_transfer_error(self, sftp, tmp_path):
        _, _, client = sftp
        client.stat.return_value = MagicMock(st_mode=stat.S_IFDIR)
        client.put.side_effect = OSError("connection reset")
        backend = self.make()
        backend.open()

        with pytest.raises(TransferError, match="Upload to /in/a.csv failed"):
            backend.transfer(str(tmp_path / "a.csv"), "/in/a.csv")

    def test_close(self, sftp):
        _, transport, _ = sftp
        backend = self.make()
        backend.open()
        backend.close()
        backend.close()
        transport.close.assert_called_once()
