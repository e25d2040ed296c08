# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Base Transport
# Abstract base class for all transports
# ═══════════════════════════════════════════════════════════════

import logging
import os
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Any, List, Optional, Sequence, Tuple, Union

from ..core.exceptions import TransferError, TransportError
from ..core.logging import current_operation_id, logging_context
from .dialect import CommandDialect, get_dialect
from .models import ConnectionConfig, ExecutionResult, RenderedScript, TransportType
from .transfer import UploadStrategy, resolve_remote_file_path, upload_directory, upload_with_fallback


class BaseTransport(ABC):
    """
    Abstract base class for all transports.

    A transport runs command text on one remote host and moves files
    to it. Everything above it (the script protocol, ISO assembly)
    talks only to this interface.

    Command outcomes are reported, not raised: a non-zero exit code is
    returned in the ExecutionResult, and a transport failure (dial,
    auth, session, timeout) is returned as ``transport_error``. The
    helper operations built on top (uploads, probes, deletes) raise.

    Subclasses must implement:
    - _execute(): Run one fully prepared command
    - _build_upload_strategies(): Ordered upload strategies

    Usage:
        async with EphemeralSSHTransport(config) as transport:
            result = await transport.run_with_result("hostname")
    """

    # Class attributes
    transport_type: TransportType = TransportType.LOCAL

    def __init__(self, config: ConnectionConfig):
        """
        Initialize the transport.

        Args:
            config: Connection configuration
        """
        self.config = config
        self.dialect: CommandDialect = get_dialect(config.dialect)
        self.logger = logging.getLogger(f"hvremote.remote.{self.transport_type.value}")
        self._closed = False
        self._upload_strategies: List[UploadStrategy] = self._build_upload_strategies()

    # ═══════════════════════════════════════════════════════════
    # Context Manager Protocol
    # ═══════════════════════════════════════════════════════════

    async def __aenter__(self) -> 'BaseTransport':
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Release transport resources."""
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def operation_context(self):
        """Logging context for one operation; nested commands keep its operation id."""
        return logging_context(
            operation_id=current_operation_id(),
            host=self.config.host,
            transport=self.transport_type.value,
        )

    # ═══════════════════════════════════════════════════════════
    # Abstract Methods (must be implemented by subclasses)
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def _execute(self, command: str) -> Tuple[int, str, str]:
        """
        Run one prepared command on the target.

        Args:
            command: Command text after prelude and escalation rewriting

        Returns:
            Tuple of (exit_code, stdout, stderr)

        Raises:
            TransportError: The command could not be run to completion
            ConfigError: The configuration cannot be used to connect
        """

    @abstractmethod
    def _build_upload_strategies(self) -> List[UploadStrategy]:
        """Upload strategies in order of preference."""

    # ═══════════════════════════════════════════════════════════
    # Command Rewriting Hooks
    # ═══════════════════════════════════════════════════════════

    def _prepare_command(self, script: str) -> str:
        """Apply the variables prelude."""
        if self.config.vars:
            return f"{self.config.vars}; {script}"
        return script

    def _report_command(self, script: str, prepared: str) -> str:
        """Command text recorded in results and errors."""
        return prepared

    def _wrap_helper(self, script: str) -> str:
        """Make a dialect helper runnable from the remote login shell."""
        return self.dialect.wrap_command(script)

    # ═══════════════════════════════════════════════════════════
    # Command Execution
    # ═══════════════════════════════════════════════════════════

    async def run_with_result(self, script: Union[str, RenderedScript]) -> ExecutionResult:
        """
        Run a script and capture its output.

        Args:
            script: Script text or rendered template

        Returns:
            ExecutionResult with stdout, stderr and exit code
        """
        return await self._run(_script_text(script), "script")

    async def run_fire_and_forget(self, script: Union[str, RenderedScript]) -> ExecutionResult:
        """
        Run a script for its side effects; stdout is discarded.

        Args:
            script: Script text or rendered template

        Returns:
            ExecutionResult with stderr and exit code
        """
        result = await self._run(_script_text(script), "fire-and-forget script")
        return result.model_copy(update={"stdout": ""})

    async def run_helper(self, script: str) -> ExecutionResult:
        """Run a dialect helper command (probe, mkdir, delete, write)."""
        return await self._run(self._wrap_helper(script), "helper")

    async def _run(self, script: str, operation: str) -> ExecutionResult:
        command = self._prepare_command(script)
        reported = self._report_command(script, command)
        started = time.perf_counter()

        with self.operation_context():
            self.logger.debug(f"Running {operation}:\n{reported}")

            try:
                exit_code, stdout, stderr = await self._execute(command)
            except TransportError as e:
                duration_ms = int((time.perf_counter() - started) * 1000)
                self.logger.warning(f"{operation.capitalize()} on {self.config.host} failed: {e}")
                return ExecutionResult.from_transport_error(
                    e,
                    command=reported,
                    host=self.config.host,
                    transport_type=self.transport_type,
                    duration_ms=duration_ms,
                )

            duration_ms = int((time.perf_counter() - started) * 1000)
            if exit_code != 0:
                self.logger.debug(f"{operation.capitalize()} exited with {exit_code}: {stderr.strip()}")

        return ExecutionResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            command=reported,
            host=self.config.host,
            transport_type=self.transport_type,
            duration_ms=duration_ms,
        )

    # ═══════════════════════════════════════════════════════════
    # File Operations
    # ═══════════════════════════════════════════════════════════

    async def ensure_directory(self, remote_path: str) -> bool:
        """
        Best-effort creation of a remote directory.

        Failures are logged and ignored; a later write into the
        directory reports the real problem.

        Returns:
            True if the mkdir command succeeded
        """
        result = await self.run_helper(self.dialect.mkdir(remote_path))
        if not result.success:
            self.logger.debug(
                f"mkdir {remote_path} failed (ignored): "
                f"{result.transport_error or result.stderr.strip()}"
            )
        return result.success

    async def upload_file(self, local_path: str, remote_path: str = "") -> str:
        """
        Upload a local file.

        Args:
            local_path: Local file path
            remote_path: Remote file path; empty or ending in a separator
                means "into this directory, keeping the base name"

        Returns:
            Final remote file path

        Raises:
            TransferError: The local file is missing or every strategy failed
        """
        if not os.path.isfile(local_path):
            raise TransferError(f"local file {local_path} does not exist", remote_path=remote_path)

        resolved = resolve_remote_file_path(local_path, remote_path, self.dialect)

        with self.operation_context():
            strategy = await upload_with_fallback(self._upload_strategies, self, local_path, resolved)
            self.logger.info(f"Uploaded {local_path} to {resolved} ({strategy})")

        return resolved

    async def upload_directory(
        self,
        local_root: str,
        exclude_patterns: Optional[Sequence[str]] = None,
    ) -> Tuple[str, List[str]]:
        """
        Upload a directory tree into a fresh remote directory.

        Args:
            local_root: Local directory
            exclude_patterns: Glob patterns on forward-slash relative paths

        Returns:
            (remote root, remote file paths)
        """
        with self.operation_context():
            return await upload_directory(self, local_root, exclude_patterns)

    async def file_exists(self, remote_path: str) -> bool:
        """
        Check whether a regular file exists.

        Raises:
            TransportError: The probe itself could not run
        """
        return await self._probe(self.dialect.file_exists(remote_path), remote_path)

    async def directory_exists(self, remote_path: str) -> bool:
        """
        Check whether a directory exists.

        Raises:
            TransportError: The probe itself could not run
        """
        return await self._probe(self.dialect.directory_exists(remote_path), remote_path)

    async def _probe(self, script: str, remote_path: str) -> bool:
        result = await self.run_helper(script)
        if result.transport_error is not None:
            result.raise_for_status()

        value = self.dialect.parse_bool(result.stdout) if result.exit_code == 0 else None
        if value is None:
            raise TransportError(
                f"existence probe for {remote_path} failed with exit code "
                f"{result.exit_code}: {result.stderr.strip() or result.stdout.strip()}",
                host=self.config.host,
                transport=self.transport_type.value,
                details={
                    "exit_code": result.exit_code,
                    "stdout": result.stdout,
                    "stderr": result.stderr,
                    "command": result.command,
                }
            )
        return value

    async def delete_file_or_directory(self, remote_path: str) -> None:
        """
        Recursively delete a remote file or directory.

        Raises:
            ScriptExecutionError: The delete command exited non-zero
            TransportError: The command could not run
        """
        result = await self.run_helper(self.dialect.delete(remote_path))
        result.raise_for_status()
        self.logger.debug(f"Deleted {remote_path} on {self.config.host}")

    # ═══════════════════════════════════════════════════════════
    # Utility Methods
    # ═══════════════════════════════════════════════════════════

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Raw connection for strategies that need one (SSH only)."""
        raise TransportError(
            f"{self.transport_type.value} transport has no raw connection",
            host=self.config.host,
            transport=self.transport_type.value,
        )
        yield  # pragma: no cover

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(host={self.config.host}, dialect={self.dialect.dialect.value})>"


def _script_text(script: Union[str, RenderedScript]) -> str:
    if isinstance(script, RenderedScript):
        return script.text
    return script
