# ═══════════════════════════════════════════════════════════════
# HVRemote - Ephemeral SSH Transport Tests
# asyncssh is mocked; no network access
# ═══════════════════════════════════════════════════════════════

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import asyncssh
import pytest
from pydantic import SecretStr

from hvremote.core.exceptions import ConfigError, TransportError
from hvremote.remote import Dialect, EphemeralSSHTransport, SSHConfig, TransportType


def make_connection(exit_status=0, stdout=b"", stderr=b""):
    conn = MagicMock()
    conn.run = AsyncMock(return_value=SimpleNamespace(exit_status=exit_status, stdout=stdout, stderr=stderr))
    conn.close = MagicMock()
    conn.wait_closed = AsyncMock()
    return conn


@pytest.fixture
def connection():
    return make_connection(stdout=b"ok\n")


@pytest.fixture
def mock_connect(connection):
    with patch("hvremote.remote.ssh.asyncssh.connect", new=AsyncMock(return_value=connection)) as connect:
        yield connect


# ═══════════════════════════════════════════════════════════════
# Command Execution
# ═══════════════════════════════════════════════════════════════

class TestSSHExecution:

    @pytest.mark.asyncio
    async def test_run_with_result(self, ssh_config, mock_connect, connection):
        transport = EphemeralSSHTransport(ssh_config)
        result = await transport.run_with_result("hostname")

        assert result.stdout == "ok\n"
        assert result.exit_code == 0
        assert result.transport_type == TransportType.SSH
        connection.run.assert_awaited_once_with("hostname", check=False, encoding=None)
        connection.close.assert_called_once()
        connection.wait_closed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_options(self, ssh_config, mock_connect):
        await EphemeralSSHTransport(ssh_config).run_with_result("hostname")

        options = mock_connect.call_args.kwargs
        assert options["host"] == "192.168.1.100"
        assert options["port"] == 22
        assert options["username"] == "Administrator"
        assert options["password"] == "testpass"
        assert options["known_hosts"] is None
        assert options["client_keys"] is None

    @pytest.mark.asyncio
    async def test_new_connection_per_operation(self, ssh_config, mock_connect, connection):
        transport = EphemeralSSHTransport(ssh_config)
        await transport.run_with_result("one")
        await transport.run_with_result("two")

        assert mock_connect.await_count == 2
        assert connection.close.call_count == 2

    @pytest.mark.asyncio
    async def test_vars_and_elevation(self, mock_connect, connection):
        config = SSHConfig(
            host="hv01",
            username="ops",
            password=SecretStr("pw"),
            vars="export A=1",
            elevated_user="root",
            dialect=Dialect.POSIX,
        )
        result = await EphemeralSSHTransport(config).run_with_result("echo it's")

        expected = "sudo -u root bash -c 'export A=1; echo it'\\''s'"
        connection.run.assert_awaited_once_with(expected, check=False, encoding=None)
        assert result.command == expected

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_reported(self, ssh_config, mock_connect, connection):
        connection.run.return_value = SimpleNamespace(exit_status=2, stdout=b"", stderr=b"denied")
        result = await EphemeralSSHTransport(ssh_config).run_with_result("x")

        assert result.exit_code == 2
        assert result.stderr == "denied"
        assert result.transport_error is None

    @pytest.mark.asyncio
    async def test_missing_exit_status(self, ssh_config, mock_connect, connection):
        connection.run.return_value = SimpleNamespace(exit_status=None, stdout=None, stderr=None)
        result = await EphemeralSSHTransport(ssh_config).run_with_result("x")

        assert result.exit_code == -1
        assert result.stdout == ""

    @pytest.mark.asyncio
    async def test_windows_helper_is_wrapped(self, ssh_config, mock_connect, connection):
        connection.run.return_value = SimpleNamespace(exit_status=0, stdout=b"False\r\n", stderr=b"")

        assert await EphemeralSSHTransport(ssh_config).file_exists("C:\\a.iso") is False

        command = connection.run.call_args.args[0]
        assert command.startswith("powershell -NoProfile -NonInteractive -Command \"Test-Path")


class TestSSHFailures:

    @pytest.mark.asyncio
    async def test_no_auth_is_config_error(self, mock_connect):
        transport = EphemeralSSHTransport(SSHConfig(host="hv01", username="ops"))

        with pytest.raises(ConfigError) as exc_info:
            await transport.run_with_result("x")

        assert exc_info.value.field == "password"
        mock_connect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bad_private_key_is_config_error(self, mock_connect):
        config = SSHConfig(host="hv01", username="ops", private_key=SecretStr("not a key"))

        with pytest.raises(ConfigError) as exc_info:
            await EphemeralSSHTransport(config).run_with_result("x")

        assert exc_info.value.field == "private_key"

    @pytest.mark.asyncio
    async def test_missing_key_file_is_config_error(self, mock_connect, tmp_path):
        config = SSHConfig(host="hv01", username="ops", private_key_path=str(tmp_path / "missing"))

        with pytest.raises(ConfigError) as exc_info:
            await EphemeralSSHTransport(config).run_with_result("x")

        assert exc_info.value.field == "private_key_path"

    @pytest.mark.asyncio
    async def test_auth_failure_is_transport_error(self, ssh_config):
        connect = AsyncMock(side_effect=asyncssh.PermissionDenied("bad password"))
        with patch("hvremote.remote.ssh.asyncssh.connect", new=connect):
            result = await EphemeralSSHTransport(ssh_config).run_with_result("x")

        assert result.transport_error is not None
        assert "authentication failed" in result.transport_error
        with pytest.raises(TransportError):
            result.raise_for_status()

    @pytest.mark.asyncio
    async def test_dial_failure_is_transport_error(self, ssh_config):
        connect = AsyncMock(side_effect=OSError("Connection refused"))
        with patch("hvremote.remote.ssh.asyncssh.connect", new=connect):
            result = await EphemeralSSHTransport(ssh_config).run_with_result("x")

        assert "failed to dial" in result.transport_error

    @pytest.mark.asyncio
    async def test_command_timeout(self, ssh_config, mock_connect, connection):
        connection.run.side_effect = asyncio.TimeoutError()
        result = await EphemeralSSHTransport(ssh_config).run_with_result("x")

        assert "timed out" in result.transport_error
        connection.close.assert_called_once()


# ═══════════════════════════════════════════════════════════════
# Uploads
# ═══════════════════════════════════════════════════════════════

class TestSSHUpload:

    @pytest.fixture
    def source(self, tmp_path):
        path = tmp_path / "iso.zip"
        path.write_bytes(b"PK\x03\x04data")
        return path

    @pytest.mark.asyncio
    async def test_sftp_upload(self, ssh_config, mock_connect, connection, source):
        sftp = MagicMock()
        sftp.__aenter__.return_value = sftp
        sftp.makedirs = AsyncMock()
        sftp.put = AsyncMock()
        connection.start_sftp_client = AsyncMock(return_value=sftp)

        remote = await EphemeralSSHTransport(ssh_config).upload_file(str(source), "C:\\Images\\")

        assert remote == "C:\\Images\\iso.zip"
        sftp.makedirs.assert_awaited_once_with("C:/Images", exist_ok=True)
        sftp.put.assert_awaited_once_with(str(source), "C:/Images/iso.zip")
        connection.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_when_sftp_unavailable(self, ssh_config, mock_connect, connection, source):
        connection.start_sftp_client = AsyncMock(side_effect=OSError("subsystem request failed"))
        connection.run.return_value = SimpleNamespace(exit_status=0, stdout=b"", stderr=b"")
        transport = EphemeralSSHTransport(ssh_config)

        await transport.upload_file(str(source), "C:\\Images\\iso.zip")
        assert not transport.sftp_available

        await transport.upload_file(str(source), "C:\\Images\\iso2.zip")
        connection.start_sftp_client.assert_awaited_once()

        commands = [c.args[0] for c in connection.run.await_args_list]
        assert any("FromBase64String" in c and "iso2.zip" in c for c in commands)

    @pytest.mark.asyncio
    async def test_upload_without_credentials_is_config_error(self, mock_connect, source):
        transport = EphemeralSSHTransport(SSHConfig(host="hv01", username="ops"))

        with pytest.raises(ConfigError) as exc_info:
            await transport.upload_file(str(source), "C:\\Images\\")

        assert exc_info.value.field == "password"
        mock_connect.assert_not_awaited()
