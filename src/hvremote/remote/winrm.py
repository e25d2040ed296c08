# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Pooled WinRM Transport
# Run PowerShell on a Windows host through pooled WinRM sessions
# ═══════════════════════════════════════════════════════════════

import asyncio
import logging
from typing import List, Optional, Tuple

import winrm
from winrm.exceptions import WinRMError, WinRMOperationTimeoutError, WinRMTransportError

from ..core.config import get_settings
from ..core.exceptions import TransportError
from . import powershell
from .base import BaseTransport
from .models import TransportType, WinRMConfig
from .pool import ConnectionPool
from .transfer import Base64CommandUploadStrategy, UploadStrategy

logger = logging.getLogger("hvremote.remote.winrm")

# Grace period on top of the command deadline for network latency
_DEADLINE_GRACE_SECONDS = 5


class PooledWinRMTransport(BaseTransport):
    """
    WinRM Transport - run PowerShell via pooled WinRM sessions.

    Sessions are created lazily and held in a bounded pool owned by
    this transport. Every operation borrows a session for its
    duration; a session whose command was cancelled or timed out is
    discarded, because the worker thread may still be using it.

    pywinrm is synchronous, so each call runs in the default executor
    and is bounded by ``command_timeout`` plus a short grace period.

    Supports:
    - NTLM / Kerberos / Basic / CredSSP authentication
    - HTTP (5985) or HTTPS (5986)
    - Variables prelude and elevation through Invoke-Command
    - Scripts longer than the command line limit (staged to a temp .ps1)

    Usage:
        config = WinRMConfig(
            host="hv01.lab.local",
            username="Administrator",
            password=SecretStr("password"),
        )
        async with PooledWinRMTransport(config) as transport:
            result = await transport.run_with_result("Get-VM | ConvertTo-Json")
    """

    transport_type = TransportType.WINRM

    def __init__(self, config: WinRMConfig):
        """
        Initialize WinRM transport and its session pool.

        Args:
            config: WinRM connection configuration
        """
        self.config: WinRMConfig = config
        super().__init__(config)
        self.pool: ConnectionPool[winrm.Session] = ConnectionPool(
            name=f"winrm://{config.host}:{config.port}",
            factory=self._create_session,
            max_size=config.pool_max_size,
            borrow_timeout=config.pool_borrow_timeout,
            validator=self._validate_session if config.validate_on_borrow else None,
            destroyer=self._destroy_session,
        )

    def _build_upload_strategies(self) -> List[UploadStrategy]:
        # WinRM has no byte-stream channel
        return [Base64CommandUploadStrategy(chunk_size=get_settings().upload_chunk_size)]

    # ═══════════════════════════════════════════════════════════
    # Session Management
    # ═══════════════════════════════════════════════════════════

    async def _create_session(self) -> winrm.Session:
        """Create a WinRM session (no network traffic until first use)."""
        self.logger.debug(f"Creating WinRM session for {self.config.endpoint}")
        return winrm.Session(
            target=self.config.endpoint,
            auth=(self.config.username, self.config.password.get_secret_value()),
            transport=self.config.transport,
            server_cert_validation='validate' if self.config.ssl_verify else 'ignore',
            # pywinrm requires read timeout > operation timeout
            read_timeout_sec=self.config.timeout + 10,
            operation_timeout_sec=self.config.timeout,
        )

    async def _validate_session(self, session: winrm.Session) -> bool:
        """Probe an idle session before reuse."""
        exit_code, _, _ = await self._run_ps(session, "$true | Out-Null", timeout=self.config.timeout)
        return exit_code == 0

    @staticmethod
    def _destroy_session(session: winrm.Session) -> None:
        session.protocol.transport.close_session()

    async def close(self) -> None:
        """Close the session pool."""
        await self.pool.close()
        await super().close()
        self.logger.debug(f"WinRM transport closed for {self.config.host}")

    # ═══════════════════════════════════════════════════════════
    # Command Rewriting
    # ═══════════════════════════════════════════════════════════

    def _prepare_command(self, script: str) -> str:
        elevated_password = self.config.elevated_password
        return powershell.build_script(
            script,
            vars=self.config.vars,
            elevated_user=self.config.elevated_user,
            elevated_password=elevated_password.get_secret_value() if elevated_password else None,
        )

    def _report_command(self, script: str, prepared: str) -> str:
        # Never report the elevation wrapper; it embeds a credential
        return powershell.build_script(script, vars=self.config.vars)

    def _wrap_helper(self, script: str) -> str:
        return script

    # ═══════════════════════════════════════════════════════════
    # Command Execution
    # ═══════════════════════════════════════════════════════════

    async def _execute(self, command: str) -> Tuple[int, str, str]:
        """
        Execute PowerShell on a borrowed session.

        Returns:
            Tuple of (exit_code, stdout, stderr)
        """
        try:
            async with self.pool.borrow() as session:
                if powershell.needs_staging(command):
                    return await self._run_staged(session, command)
                return await self._run_ps(session, command)

        except asyncio.TimeoutError as e:
            raise TransportError(
                f"WinRM command timed out after {self.config.command_timeout}s",
                host=self.config.host,
                transport=self.transport_type.value,
                original_error=e
            ) from e
        except WinRMOperationTimeoutError as e:
            raise TransportError(
                "WinRM operation timed out",
                host=self.config.host,
                transport=self.transport_type.value,
                original_error=e
            ) from e
        except WinRMTransportError as e:
            raise TransportError(
                f"WinRM transport error: {e}",
                host=self.config.host,
                transport=self.transport_type.value,
                original_error=e
            ) from e
        except (WinRMError, OSError) as e:
            raise TransportError(
                f"WinRM execution failed: {e}",
                host=self.config.host,
                transport=self.transport_type.value,
                original_error=e
            ) from e

    async def _run_ps(self, session: winrm.Session, script: str, timeout: Optional[int] = None) -> Tuple[int, str, str]:
        timeout = timeout or self.config.command_timeout
        loop = asyncio.get_running_loop()
        response = await asyncio.wait_for(
            loop.run_in_executor(None, session.run_ps, script),
            timeout=timeout + _DEADLINE_GRACE_SECONDS
        )
        return (
            response.status_code,
            self._decode_output(response.std_out),
            self._decode_output(response.std_err),
        )

    async def _run_staged(self, session: winrm.Session, script: str) -> Tuple[int, str, str]:
        """Stage a long script to a temp .ps1, run it with -File and remove it."""
        staged = powershell.stage_script(script, chunk_size=get_settings().upload_chunk_size)
        self.logger.debug(
            f"Staging {len(script)} character script as {staged.file_name} "
            f"in {len(staged.write_commands)} chunks"
        )

        for write_command in staged.write_commands:
            exit_code, stdout, stderr = await self._run_ps(session, write_command)
            if exit_code != 0:
                await self._cleanup_staged(session, staged)
                return exit_code, stdout, f"failed to stage script {staged.file_name}: {stderr}"

        return await self._run_ps(session, staged.run_command)

    async def _cleanup_staged(self, session: winrm.Session, staged: powershell.StagedScript) -> None:
        exit_code, _, stderr = await self._run_ps(session, staged.cleanup_command, timeout=self.config.timeout)
        if exit_code != 0:
            self.logger.debug(f"Removing staged script {staged.file_name} failed (ignored): {stderr}")

    def _decode_output(self, output: bytes) -> str:
        """Decode WinRM output."""
        if not output:
            return ""

        for encoding in ['utf-8', f'cp{self.config.codepage}']:
            try:
                return output.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                continue

        return output.decode('latin-1')
