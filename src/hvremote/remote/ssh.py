# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Ephemeral SSH Transport
# One SSH connection per operation, optional privilege escalation
# ═══════════════════════════════════════════════════════════════

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import asyncssh

from ..core.exceptions import ConfigError, TransportError
from .base import BaseTransport
from .models import SSHConfig, TransportType
from .transfer import Base64CommandUploadStrategy, SFTPUploadStrategy, UploadStrategy

logger = logging.getLogger("hvremote.remote.ssh")


class OperationState(str, Enum):
    """Lifecycle of one SSH operation."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLOSED = "closed"


class EphemeralSSHTransport(BaseTransport):
    """
    SSH Transport - dial a fresh connection for every operation.

    Nothing but the configuration is shared between operations, so the
    transport is safe for concurrent use and needs no pool. The
    connection is closed on every exit path.

    Command rewriting, in order:
    1. variables prelude: ``"{vars}; {command}"``
    2. escalation: ``"{elevated_command} -u {elevated_user} bash -c '{command}'"``

    Helper commands for Windows hosts are run through
    ``powershell -NoProfile -NonInteractive -Command``.

    Supports:
    - Password authentication
    - Private key authentication (literal key or key file)
    - SFTP uploads with base64 command fallback

    Usage:
        config = SSHConfig(
            host="hv01.lab.local",
            username="Administrator",
            password=SecretStr("password"),
        )
        async with EphemeralSSHTransport(config) as transport:
            await transport.upload_file("./image.zip", "C:\\Images\\")
    """

    transport_type = TransportType.SSH

    def __init__(self, config: SSHConfig):
        """
        Initialize SSH transport.

        Args:
            config: SSH connection configuration
        """
        self.config: SSHConfig = config
        super().__init__(config)

    def _build_upload_strategies(self) -> List[UploadStrategy]:
        self._sftp_strategy = SFTPUploadStrategy()
        return [
            self._sftp_strategy,
            Base64CommandUploadStrategy(chunk_size=self.dialect.command_chunk_size),
        ]

    @property
    def sftp_available(self) -> bool:
        """False once the SFTP subsystem failed to start on this host."""
        return self._sftp_strategy.available

    # ═══════════════════════════════════════════════════════════
    # Connection Management
    # ═══════════════════════════════════════════════════════════

    def _client_keys(self) -> Optional[List[asyncssh.SSHKey]]:
        """Load configured private keys; None disables public key auth."""
        passphrase = None
        if self.config.private_key_passphrase:
            passphrase = self.config.private_key_passphrase.get_secret_value()

        keys = []
        if self.config.private_key:
            try:
                keys.append(asyncssh.import_private_key(
                    self.config.private_key.get_secret_value(), passphrase
                ))
            except (asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
                raise ConfigError(
                    f"failed to parse private key: {e}",
                    field="private_key",
                    original_error=e
                ) from e

        if self.config.private_key_path:
            key_path = os.path.expanduser(self.config.private_key_path)
            try:
                keys.append(asyncssh.read_private_key(key_path, passphrase))
            except (asyncssh.KeyImportError, asyncssh.KeyEncryptionError, OSError) as e:
                raise ConfigError(
                    f"failed to read private key file {key_path}: {e}",
                    field="private_key_path",
                    original_error=e
                ) from e

        return keys or None

    def _connect_options(self) -> Dict[str, Any]:
        if not self.config.has_auth:
            raise ConfigError(
                "no SSH authentication method configured: "
                "set password, private_key or private_key_path",
                field="password"
            )

        options: Dict[str, Any] = {
            'host': self.config.host,
            'port': self.config.port,
            'username': self.config.username,
            # None disables host key checking
            'known_hosts': self.config.known_hosts,
            'keepalive_interval': self.config.keepalive_interval,
            'client_keys': self._client_keys(),
            'agent_path': None,
        }
        if self.config.password:
            options['password'] = self.config.password.get_secret_value()
        return options

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncssh.SSHClientConnection]:
        """
        Dial the host for one operation.

        Raises:
            ConfigError: No usable authentication material
            TransportError: Dial or authentication failed
        """
        options = self._connect_options()
        target = f"{self.config.host}:{self.config.port}"

        self.logger.debug(f"[{OperationState.CONNECTING.value}] {target}")
        try:
            conn = await asyncio.wait_for(asyncssh.connect(**options), timeout=self.config.timeout)
        except asyncio.TimeoutError as e:
            raise self._error(f"SSH connection to {target} timed out after {self.config.timeout}s", e) from e
        except asyncssh.PermissionDenied as e:
            raise self._error(f"SSH authentication failed for {self.config.username}@{target}: {e}", e) from e
        except asyncssh.DisconnectError as e:
            raise self._error(f"SSH disconnected from {target}: {e}", e) from e
        except (asyncssh.Error, OSError) as e:
            raise self._error(f"failed to dial SSH {target}: {e}", e) from e

        self.logger.debug(f"[{OperationState.CONNECTED.value}] {target}")
        try:
            yield conn
        finally:
            conn.close()
            await conn.wait_closed()
            self.logger.debug(f"[{OperationState.CLOSED.value}] {target}")

    def _error(self, message: str, error: Exception) -> TransportError:
        return TransportError(
            message,
            host=self.config.host,
            transport=self.transport_type.value,
            original_error=error
        )

    # ═══════════════════════════════════════════════════════════
    # Command Execution
    # ═══════════════════════════════════════════════════════════

    def _prepare_command(self, script: str) -> str:
        command = super()._prepare_command(script)

        if self.config.elevated_user and self.config.elevated_command:
            escaped = command.replace("'", "'\\''")
            command = (
                f"{self.config.elevated_command} -u {self.config.elevated_user} "
                f"bash -c '{escaped}'"
            )
        return command

    async def _execute(self, command: str) -> Tuple[int, str, str]:
        """
        Execute a command on a fresh connection.

        Returns:
            Tuple of (exit_code, stdout, stderr); exit code is -1 when
            the remote side reported none (e.g. killed by a signal)
        """
        async with self.connection() as conn:
            self.logger.debug(f"[{OperationState.EXECUTING.value}] {self.config.host}")
            try:
                result = await asyncio.wait_for(
                    conn.run(command, check=False, encoding=None),
                    timeout=self.config.command_timeout
                )
            except asyncio.TimeoutError as e:
                self.logger.debug(f"[{OperationState.FAILED.value}] {self.config.host}: timeout")
                raise self._error(f"SSH command timed out after {self.config.command_timeout}s", e) from e
            except asyncssh.ChannelOpenError as e:
                self.logger.debug(f"[{OperationState.FAILED.value}] {self.config.host}: {e}")
                raise self._error(f"failed to create session: {e}", e) from e
            except (asyncssh.Error, OSError) as e:
                self.logger.debug(f"[{OperationState.FAILED.value}] {self.config.host}: {e}")
                raise self._error(f"command execution failed: {e}", e) from e

        exit_code = result.exit_status if result.exit_status is not None else -1
        state = OperationState.SUCCEEDED if exit_code == 0 else OperationState.FAILED
        self.logger.debug(f"[{state.value}] {self.config.host}: exit {exit_code}")

        return exit_code, self._decode_output(result.stdout), self._decode_output(result.stderr)

    @staticmethod
    def _decode_output(output: Optional[bytes]) -> str:
        """Decode SSH output."""
        if not output:
            return ""
        if isinstance(output, str):
            return output

        try:
            return output.decode('utf-8')
        except UnicodeDecodeError:
            return output.decode('latin-1')
