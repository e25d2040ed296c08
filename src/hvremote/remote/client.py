# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Remote Client
# One object per target host: scripts, uploads, probes, deletes
# ═══════════════════════════════════════════════════════════════

from typing import Any, List, Optional, Sequence, Tuple, Type, TypeVar

from .base import BaseTransport
from .dialect import CommandDialect
from .models import TransportType
from .protocol import ScriptRunner, Template

T = TypeVar("T")


class RemoteClient:
    """
    Client for one remote hypervisor host.

    Callers hold a RemoteClient and never see which transport carries
    the work. Closing the client closes the transport (and its pool).

    Usage:
        async with create_client(config) as client:
            await client.run_fire_and_forget_script(STOP_VM, {"Name": "web01"})
            exists = await client.file_exists("C:\\Images\\web01.iso")
    """

    def __init__(self, transport: BaseTransport):
        self.transport = transport
        self.runner = ScriptRunner(transport)

    @property
    def dialect(self) -> CommandDialect:
        return self.transport.dialect

    @property
    def transport_type(self) -> TransportType:
        return self.transport.transport_type

    @property
    def host(self) -> str:
        return self.transport.config.host

    # ═══════════════════════════════════════════════════════════
    # Scripts
    # ═══════════════════════════════════════════════════════════

    async def run_fire_and_forget_script(self, template: Template, args: Any = None) -> None:
        """Run a script; raise ScriptExecutionError on a non-zero exit."""
        await self.runner.run_fire_and_forget(template, args)

    async def run_script_with_result(self, template: Template, args: Any, result_type: Type[T]) -> T:
        """Run a script and decode its JSON stdout into ``result_type``."""
        return await self.runner.run_script_with_result(template, args, result_type)

    # ═══════════════════════════════════════════════════════════
    # Files
    # ═══════════════════════════════════════════════════════════

    async def upload_file(self, local_path: str, remote_path: str = "") -> str:
        return await self.transport.upload_file(local_path, remote_path)

    async def upload_directory(
        self,
        local_root: str,
        exclude_patterns: Optional[Sequence[str]] = None,
    ) -> Tuple[str, List[str]]:
        return await self.transport.upload_directory(local_root, exclude_patterns)

    async def file_exists(self, remote_path: str) -> bool:
        return await self.transport.file_exists(remote_path)

    async def directory_exists(self, remote_path: str) -> bool:
        return await self.transport.directory_exists(remote_path)

    async def delete_file_or_directory(self, remote_path: str) -> None:
        await self.transport.delete_file_or_directory(remote_path)

    # ═══════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> 'RemoteClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<RemoteClient(host={self.host}, transport={self.transport_type.value})>"
