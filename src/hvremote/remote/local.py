# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Local Transport
# Run commands on the local machine (development and tests)
# ═══════════════════════════════════════════════════════════════

import asyncio
import logging
from typing import List, Optional, Tuple

from ..core.exceptions import TransportError
from .base import BaseTransport
from .models import LocalConfig, TransportType
from .transfer import Base64CommandUploadStrategy, LocalCopyUploadStrategy, UploadStrategy

logger = logging.getLogger("hvremote.remote.local")


class LocalTransport(BaseTransport):
    """
    Local Transport - run commands through a local shell.

    Exposes the same surface as the remote transports so scripts and
    uploads can be exercised without a hypervisor host. Commands run
    as ``<shell> -c <command>``.

    Usage:
        async with LocalTransport(LocalConfig(working_directory="/tmp")) as transport:
            result = await transport.run_with_result("uname -s")
    """

    transport_type = TransportType.LOCAL

    def __init__(self, config: Optional[LocalConfig] = None):
        """
        Initialize local transport.

        Args:
            config: Local execution configuration
        """
        if config is None:
            config = LocalConfig()

        self.config: LocalConfig = config
        super().__init__(config)

    def _build_upload_strategies(self) -> List[UploadStrategy]:
        return [
            LocalCopyUploadStrategy(),
            Base64CommandUploadStrategy(chunk_size=self.dialect.command_chunk_size),
        ]

    # ═══════════════════════════════════════════════════════════
    # Command Execution
    # ═══════════════════════════════════════════════════════════

    async def _execute(self, command: str) -> Tuple[int, str, str]:
        """
        Execute a command locally.

        Returns:
            Tuple of (exit_code, stdout, stderr)
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.config.shell, "-c", command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.config.working_directory,
            )
        except OSError as e:
            raise TransportError(
                f"failed to start {self.config.shell}: {e}",
                host=self.config.host,
                transport=self.transport_type.value,
                original_error=e
            ) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.command_timeout
            )
        except asyncio.TimeoutError as e:
            await self._kill(process)
            raise TransportError(
                f"Command timed out after {self.config.command_timeout} seconds",
                host=self.config.host,
                transport=self.transport_type.value,
                original_error=e
            ) from e
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        return (
            process.returncode if process.returncode is not None else -1,
            self._decode_output(stdout_bytes),
            self._decode_output(stderr_bytes),
        )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    @staticmethod
    def _decode_output(output: bytes) -> str:
        """Decode process output."""
        if not output:
            return ""
        try:
            return output.decode('utf-8')
        except UnicodeDecodeError:
            return output.decode('utf-8', errors='replace')
