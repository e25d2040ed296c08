# ═══════════════════════════════════════════════════════════════
# HVRemote - Pooled WinRM Transport Tests
# pywinrm sessions are mocked; no network access
# ═══════════════════════════════════════════════════════════════

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import SecretStr, ValidationError
from winrm.exceptions import WinRMOperationTimeoutError, WinRMTransportError

from hvremote.core.exceptions import PoolExhaustedError
from hvremote.remote import Dialect, PooledWinRMTransport, TransportType, WinRMConfig


def response(status_code=0, std_out=b"", std_err=b""):
    return SimpleNamespace(status_code=status_code, std_out=std_out, std_err=std_err)


def make_session():
    session = MagicMock()
    session.run_ps = MagicMock(return_value=response(std_out=b"hv01\r\n"))
    return session


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def mock_session_class(session):
    """The first winrm.Session() is `session`; later calls get fresh sessions."""
    created = []

    def new_session(*args, **kwargs):
        created.append(session if not created else make_session())
        return created[-1]

    with patch("hvremote.remote.winrm.winrm.Session", side_effect=new_session) as session_class:
        yield session_class


# ═══════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════

class TestWinRMConfig:

    def test_defaults(self, winrm_config):
        assert winrm_config.port == 5985
        assert winrm_config.dialect == Dialect.WINDOWS
        assert winrm_config.transport == "ntlm"
        assert winrm_config.endpoint == "http://192.168.1.100:5985/wsman"

    def test_https_endpoint(self):
        config = WinRMConfig(host="hv01", port=5986, ssl=True, username="a", password=SecretStr("b"))
        assert config.endpoint == "https://hv01:5986/wsman"

    def test_transport_normalized(self):
        config = WinRMConfig(host="hv01", username="a", password=SecretStr("b"), transport="Kerberos")
        assert config.transport == "kerberos"

    def test_rejects_unknown_transport(self):
        with pytest.raises(ValidationError):
            WinRMConfig(host="hv01", username="a", password=SecretStr("b"), transport="telnet")

    def test_rejects_posix_dialect(self):
        with pytest.raises(ValidationError):
            WinRMConfig(host="hv01", username="a", password=SecretStr("b"), dialect=Dialect.POSIX)

    def test_frozen(self, winrm_config):
        with pytest.raises(ValidationError):
            winrm_config.host = "other"


# ═══════════════════════════════════════════════════════════════
# Execution
# ═══════════════════════════════════════════════════════════════

class TestWinRMExecution:

    @pytest.mark.asyncio
    async def test_run_with_result(self, winrm_config, mock_session_class, session):
        async with PooledWinRMTransport(winrm_config) as transport:
            result = await transport.run_with_result("hostname")

        assert result.stdout == "hv01\r\n"
        assert result.exit_code == 0
        assert result.transport_type == TransportType.WINRM
        session.run_ps.assert_called_once_with("hostname")

    @pytest.mark.asyncio
    async def test_session_options(self, winrm_config, mock_session_class):
        transport = PooledWinRMTransport(winrm_config)
        await transport.run_with_result("hostname")

        kwargs = mock_session_class.call_args.kwargs
        assert kwargs["target"] == "http://192.168.1.100:5985/wsman"
        assert kwargs["auth"] == ("Administrator", "testpass")
        assert kwargs["transport"] == "ntlm"
        assert kwargs["read_timeout_sec"] > kwargs["operation_timeout_sec"]
        await transport.close()

    @pytest.mark.asyncio
    async def test_sessions_are_reused(self, winrm_config, mock_session_class):
        transport = PooledWinRMTransport(winrm_config)
        await transport.run_with_result("one")
        await transport.run_with_result("two")

        assert mock_session_class.call_count == 1
        stats = transport.pool.stats()
        assert stats.borrowed == 2
        assert stats.balanced
        await transport.close()

    @pytest.mark.asyncio
    async def test_concurrent_commands_bounded_by_pool(self, mock_session_class):
        config = WinRMConfig(host="hv01", username="a", password=SecretStr("b"), pool_max_size=2)
        transport = PooledWinRMTransport(config)

        results = await asyncio.gather(*(transport.run_with_result(f"cmd {i}") for i in range(6)))

        assert all(r.success for r in results)
        assert mock_session_class.call_count <= 2
        assert transport.pool.stats().balanced
        await transport.close()

    @pytest.mark.asyncio
    async def test_vars_prelude(self, mock_session_class, session):
        config = WinRMConfig(host="hv01", username="a", password=SecretStr("b"), vars="$env:A = '1'")
        await PooledWinRMTransport(config).run_with_result("hostname")

        session.run_ps.assert_called_once_with("$env:A = '1'; hostname")

    @pytest.mark.asyncio
    async def test_elevation_hides_credential(self, mock_session_class, session):
        config = WinRMConfig(
            host="hv01",
            username="a",
            password=SecretStr("b"),
            elevated_user="HV01\\Admin",
            elevated_password=SecretStr("s3cret"),
        )
        result = await PooledWinRMTransport(config).run_with_result("Get-VM")

        sent = session.run_ps.call_args.args[0]
        assert "Invoke-Command -ComputerName localhost -Credential $credential" in sent
        assert "'s3cret'" in sent
        assert result.command == "Get-VM"
        assert "s3cret" not in result.command

    @pytest.mark.asyncio
    async def test_long_script_is_staged(self, winrm_config, mock_session_class, session):
        session.run_ps.return_value = response()
        script = "Write-Output 'x'\n" * 200

        await PooledWinRMTransport(winrm_config).run_with_result(script)

        calls = [c.args[0] for c in session.run_ps.call_args_list]
        assert len(calls) > 2
        assert all("FromBase64String" in c for c in calls[:-1])
        assert "'Create'" in calls[0]
        assert "-File $path" in calls[-1]

    def test_decode_output_codepage(self):
        config = WinRMConfig(host="hv01", username="a", password=SecretStr("b"), codepage=1252)
        transport = PooledWinRMTransport(config)

        assert transport._decode_output(b"caf\xc3\xa9") == "café"
        assert transport._decode_output(b"\x80") == "€"
        assert transport._decode_output(b"") == ""


class TestWinRMFailures:

    @pytest.mark.asyncio
    async def test_http_error_is_transport_error(self, winrm_config, mock_session_class, session):
        session.run_ps.side_effect = WinRMTransportError("http", 401, "unauthorized")
        result = await PooledWinRMTransport(winrm_config).run_with_result("x")

        assert result.transport_error is not None
        assert "WinRM transport error" in result.transport_error

    @pytest.mark.asyncio
    async def test_operation_timeout(self, winrm_config, mock_session_class, session):
        session.run_ps.side_effect = WinRMOperationTimeoutError()
        result = await PooledWinRMTransport(winrm_config).run_with_result("x")

        assert result.transport_error == "WinRM operation timed out"

    @pytest.mark.asyncio
    async def test_connection_refused(self, winrm_config, mock_session_class, session):
        session.run_ps.side_effect = ConnectionRefusedError("refused")
        result = await PooledWinRMTransport(winrm_config).run_with_result("x")

        assert "WinRM execution failed" in result.transport_error

    @pytest.mark.asyncio
    async def test_deadline_discards_session(self, winrm_config, mock_session_class, session):
        transport = PooledWinRMTransport(winrm_config)
        transport._run_ps = AsyncMock(side_effect=asyncio.TimeoutError())

        result = await transport.run_with_result("x")

        assert "timed out" in result.transport_error
        stats = transport.pool.stats()
        assert stats.invalidated == 1
        assert stats.idle == 0
        session.protocol.transport.close_session.assert_called_once()

    @pytest.mark.asyncio
    async def test_pool_exhausted(self, mock_session_class):
        config = WinRMConfig(
            host="hv01", username="a", password=SecretStr("b"),
            pool_max_size=1, pool_borrow_timeout=0.05,
        )
        transport = PooledWinRMTransport(config)

        async with transport.pool.borrow():
            result = await transport.run_with_result("x")

        with pytest.raises(PoolExhaustedError):
            result.raise_for_status()

    @pytest.mark.asyncio
    async def test_close_destroys_sessions(self, winrm_config, mock_session_class, session):
        transport = PooledWinRMTransport(winrm_config)
        await transport.run_with_result("x")
        await transport.close()

        assert transport.closed
        session.protocol.transport.close_session.assert_called_once()
