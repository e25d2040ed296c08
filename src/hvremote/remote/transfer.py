# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - File Transfer
# Upload strategies with ordered fallback, and directory walking
# ═══════════════════════════════════════════════════════════════

import asyncio
import base64
import fnmatch
import logging
import os
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Tuple

import asyncssh

from ..core.exceptions import ConfigError, HVRemoteException, TransferError, TransportError
from .dialect import CommandDialect

if TYPE_CHECKING:
    from .base import BaseTransport

logger = logging.getLogger("hvremote.remote.transfer")


# ═══════════════════════════════════════════════════════════════
# Path Helpers
# ═══════════════════════════════════════════════════════════════

def resolve_remote_file_path(local_path: str, remote_path: str, dialect: CommandDialect) -> str:
    """
    Resolve the final remote file path of an upload.

    An empty remote path, or one ending in a separator, names a
    directory: the local file's base name is appended to it.

    Examples:
        ("./iso.zip", "C:\\Images\\", windows) -> "C:\\Images\\iso.zip"
        ("./iso.zip", "", posix) -> "iso.zip"
    """
    base_name = os.path.basename(local_path)
    if not remote_path:
        return base_name
    if dialect.ends_with_separator(remote_path):
        return remote_path + base_name
    return remote_path


def _matches_any(relative_path: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatchcase(relative_path, pattern) for pattern in patterns)


def iter_upload_files(
    local_root: str,
    exclude_patterns: Optional[Sequence[str]] = None,
) -> Iterator[Tuple[str, str]]:
    """
    Walk a local directory tree in sorted order.

    Patterns are shell globs matched against the path relative to
    ``local_root`` with forward slashes (``*`` also crosses ``/``).
    Matching directories are pruned together with their contents.
    An unreadable directory raises instead of being skipped.

    Yields:
        (absolute local path, relative forward-slash path) per regular file
    """
    patterns = list(exclude_patterns or [])
    root = os.path.abspath(local_root)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        relative_dir = os.path.relpath(dirpath, root)
        prefix = "" if relative_dir == "." else Path(relative_dir).as_posix() + "/"

        dirnames[:] = sorted(d for d in dirnames if not _matches_any(prefix + d, patterns))

        for filename in sorted(filenames):
            relative_path = prefix + filename
            if _matches_any(relative_path, patterns):
                logger.debug(f"Excluding {relative_path} from upload")
                continue
            yield os.path.join(dirpath, filename), relative_path


def _raise_walk_error(error: OSError) -> None:
    raise error


def _read_chunks(local_path: str, chunk_size: Optional[int]) -> Iterator[bytes]:
    with open(local_path, "rb") as f:
        if not chunk_size:
            yield f.read()
            return
        first = True
        while True:
            chunk = f.read(chunk_size)
            if not chunk and not first:
                return
            yield chunk
            first = False
            if len(chunk) < chunk_size:
                return


# ═══════════════════════════════════════════════════════════════
# Upload Strategies
# ═══════════════════════════════════════════════════════════════

class UploadStrategy(ABC):
    """
    One way of moving a local file to a remote path.

    Strategies raise on failure; ``upload_with_fallback`` decides
    whether the next strategy is tried. A strategy that sets
    ``available`` to False is skipped for the rest of its lifetime.
    """

    name: str = "strategy"

    def __init__(self):
        self.available = True

    @abstractmethod
    async def upload(self, transport: "BaseTransport", local_path: str, remote_path: str) -> None:
        """Upload ``local_path`` to the already-resolved ``remote_path``."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(available={self.available})>"


class SFTPUploadStrategy(UploadStrategy):
    """Byte-stream upload over the SFTP subsystem of an SSH connection."""

    name = "sftp"

    async def upload(self, transport: "BaseTransport", local_path: str, remote_path: str) -> None:
        dialect = transport.dialect
        sftp_path = dialect.to_sftp_path(remote_path)
        sftp_dir = str(PurePosixPath(sftp_path).parent)

        async with transport.connection() as conn:
            try:
                sftp = await conn.start_sftp_client()
            except (asyncssh.Error, OSError) as e:
                # The server has no usable SFTP subsystem; later uploads go straight to fallback
                self.available = False
                raise TransportError(
                    f"SFTP subsystem unavailable: {e}",
                    host=transport.config.host,
                    transport=transport.transport_type.value,
                    original_error=e
                ) from e

            async with sftp:
                if sftp_dir and sftp_dir != ".":
                    try:
                        await sftp.makedirs(sftp_dir, exist_ok=True)
                    except (asyncssh.SFTPError, OSError) as e:
                        logger.debug(f"SFTP makedirs {sftp_dir} failed (ignored): {e}")
                await sftp.put(local_path, sftp_path)


class LocalCopyUploadStrategy(UploadStrategy):
    """Plain file copy for the local transport."""

    name = "local_copy"

    async def upload(self, transport: "BaseTransport", local_path: str, remote_path: str) -> None:
        working_directory = getattr(transport.config, "working_directory", None)
        if working_directory and not os.path.isabs(remote_path):
            remote_path = os.path.join(working_directory, remote_path)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._copy, local_path, remote_path)

    @staticmethod
    def _copy(local_path: str, remote_path: str) -> None:
        parent = os.path.dirname(remote_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.copyfile(local_path, remote_path)


class Base64CommandUploadStrategy(UploadStrategy):
    """
    Upload through the command channel as base64 text.

    With ``chunk_size`` set, the file is written in pieces of at most
    ``chunk_size`` raw bytes; the first piece truncates the target and
    the rest append. Without it, the whole file goes in one command.
    """

    name = "base64_command"

    def __init__(self, chunk_size: Optional[int] = None):
        super().__init__()
        self.chunk_size = chunk_size

    async def upload(self, transport: "BaseTransport", local_path: str, remote_path: str) -> None:
        dialect = transport.dialect

        remote_dir = dialect.parent(remote_path)
        if remote_dir and remote_dir != ".":
            await transport.ensure_directory(remote_dir)

        for index, chunk in enumerate(_read_chunks(local_path, self.chunk_size)):
            encoded = base64.b64encode(chunk).decode("ascii")
            script = dialect.write_base64(encoded, remote_path, append=index > 0)
            result = await transport.run_helper(script)
            result.raise_for_status()


async def upload_with_fallback(
    strategies: Sequence[UploadStrategy],
    transport: "BaseTransport",
    local_path: str,
    remote_path: str,
) -> str:
    """
    Try each strategy in order until one succeeds.

    Returns:
        Name of the strategy that succeeded

    Raises:
        TransferError: Every strategy failed; carries each strategy's error
        ConfigError: The transport cannot authenticate
    """
    errors: List[Exception] = []

    for strategy in strategies:
        if not strategy.available:
            logger.debug(f"Skipping unavailable upload strategy {strategy.name}")
            continue
        try:
            await strategy.upload(transport, local_path, remote_path)
            logger.debug(f"Uploaded {local_path} to {remote_path} via {strategy.name}")
            return strategy.name
        except (asyncio.CancelledError, asyncio.TimeoutError, ConfigError):
            raise
        except Exception as e:
            logger.debug(f"Upload strategy {strategy.name} failed for {remote_path}: {e}")
            errors.append(e)

    if not errors:
        errors.append(TransportError("no upload strategy available", host=transport.config.host))

    raise TransferError(
        f"failed to upload {local_path} to {remote_path}",
        remote_path=remote_path,
        errors=errors,
    )


# ═══════════════════════════════════════════════════════════════
# Directory Upload
# ═══════════════════════════════════════════════════════════════

async def upload_directory(
    transport: "BaseTransport",
    local_root: str,
    exclude_patterns: Optional[Sequence[str]] = None,
    timestamp: Optional[int] = None,
) -> Tuple[str, List[str]]:
    """
    Upload a local directory tree into a fresh remote directory.

    The remote root is created first and must succeed. Parent
    directories of each file are created best-effort. Any failure
    aborts the walk; files already uploaded are left in place.

    Returns:
        (remote root, remote paths in upload order)

    Raises:
        TransferError: Root creation or any file upload failed
        ConfigError: The transport cannot authenticate
    """
    if not os.path.isdir(local_root):
        raise TransferError(f"local directory {local_root} does not exist", remote_path=None)

    dialect = transport.dialect
    remote_root = dialect.upload_root(int(time.time()) if timestamp is None else timestamp)
    remote_paths: List[str] = []

    try:
        result = await transport.run_helper(dialect.mkdir(remote_root))
        result.raise_for_status()

        created_dirs = {remote_root}
        for local_path, relative_path in iter_upload_files(local_root, exclude_patterns):
            remote_path = dialect.from_relative(remote_root, relative_path)

            remote_dir = dialect.parent(remote_path)
            if remote_dir not in created_dirs:
                await transport.ensure_directory(remote_dir)
                created_dirs.add(remote_dir)

            await transport.upload_file(local_path, remote_path)
            remote_paths.append(remote_path)

    except ConfigError:
        raise
    except (HVRemoteException, OSError) as e:
        raise TransferError(
            f"failed to upload directory {local_root} to {remote_root}",
            remote_path=remote_root,
            errors=[e],
            details={"uploaded": list(remote_paths)},
        ) from e

    logger.debug(f"Uploaded directory {local_root} to {remote_root} with {len(remote_paths)} files")
    return remote_root, remote_paths
