# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Command Dialects
# Pure builders for the helper commands each remote OS family needs
# ═══════════════════════════════════════════════════════════════

import shlex
from abc import ABC, abstractmethod
from pathlib import PurePath, PurePosixPath, PureWindowsPath
from typing import Dict, Optional, Type

from .models import Dialect


class CommandDialect(ABC):
    """
    Helper command builder for one remote OS family.

    Every method is a pure function of its arguments. The text returned
    is in the dialect's native shell (PowerShell or sh); transports that
    reach PowerShell through another shell wrap it with ``wrap_command``.
    """

    dialect: Dialect
    separator: str
    path_class: Type[PurePath]

    # Raw bytes per base64 command when uploading through the command line
    command_chunk_size: int = 65536

    # ═══════════════════════════════════════════════════════════
    # Paths
    # ═══════════════════════════════════════════════════════════

    def join(self, *parts: str) -> str:
        """Join path parts with the dialect separator."""
        return str(self.path_class(*parts))

    def parent(self, path: str) -> str:
        """Parent directory of a remote path."""
        return str(self.path_class(path).parent)

    def from_relative(self, root: str, relative_posix: str) -> str:
        """Map a relative forward-slash path under a remote root."""
        return self.join(root, *PurePosixPath(relative_posix).parts)

    def ends_with_separator(self, path: str) -> bool:
        return path.endswith(self.separator)

    def to_sftp_path(self, path: str) -> str:
        """Path form accepted by the remote SFTP server."""
        return path

    @abstractmethod
    def upload_root(self, timestamp: int) -> str:
        """Remote directory that receives a directory upload."""

    # ═══════════════════════════════════════════════════════════
    # Helper commands
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    def quote(self, value: str) -> str:
        """Quote a literal for the dialect's shell."""

    @abstractmethod
    def mkdir(self, path: str) -> str:
        """Create a directory and its parents; succeed if it exists."""

    @abstractmethod
    def file_exists(self, path: str) -> str:
        """Print true/false depending on whether a regular file exists."""

    @abstractmethod
    def directory_exists(self, path: str) -> str:
        """Print true/false depending on whether a directory exists."""

    @abstractmethod
    def delete(self, path: str) -> str:
        """Recursively delete a file or directory, ignoring absence."""

    @abstractmethod
    def write_base64(self, encoded: str, path: str, append: bool = False) -> str:
        """Decode base64 text into a file, truncating or appending."""

    def wrap_command(self, script: str) -> str:
        """Command line that runs ``script`` from the remote login shell."""
        return script

    @staticmethod
    def parse_bool(output: str) -> Optional[bool]:
        """
        Parse a probe's output.

        Returns:
            True/False for "true"/"false" (any case), None otherwise
        """
        value = output.strip().lower()
        if value == "true":
            return True
        if value == "false":
            return False
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class WindowsDialect(CommandDialect):
    """PowerShell helpers and backslash paths."""

    dialect = Dialect.WINDOWS
    separator = "\\"
    path_class = PureWindowsPath

    # cmd.exe limits a command line to 8191 characters
    command_chunk_size = 4096

    def upload_root(self, timestamp: int) -> str:
        return f"C:\\Temp\\hyperv-upload-{timestamp}"

    def ends_with_separator(self, path: str) -> bool:
        return path.endswith("\\") or path.endswith("/")

    def to_sftp_path(self, path: str) -> str:
        return path.replace("\\", "/")

    def quote(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def mkdir(self, path: str) -> str:
        return f"New-Item -ItemType Directory -Force -Path {self.quote(path)} | Out-Null"

    def file_exists(self, path: str) -> str:
        return f"Test-Path -Path {self.quote(path)} -PathType Leaf"

    def directory_exists(self, path: str) -> str:
        return f"Test-Path -Path {self.quote(path)} -PathType Container"

    def delete(self, path: str) -> str:
        target = self.quote(path)
        return f"if (Test-Path -Path {target}) {{ Remove-Item -Path {target} -Recurse -Force }}"

    def write_base64(self, encoded: str, path: str, append: bool = False) -> str:
        target = self.quote(path)
        decode = f"$bytes = [System.Convert]::FromBase64String('{encoded}')"
        if not append:
            return f"{decode}; [System.IO.File]::WriteAllBytes({target}, $bytes)"
        return (
            f"{decode}; $stream = [System.IO.File]::Open({target}, 'Append'); "
            f"try {{ $stream.Write($bytes, 0, $bytes.Length) }} finally {{ $stream.Close() }}"
        )

    def wrap_command(self, script: str) -> str:
        escaped = script.replace('"', '\\"')
        return f'powershell -NoProfile -NonInteractive -Command "{escaped}"'


class PosixDialect(CommandDialect):
    """sh helpers and forward slash paths."""

    dialect = Dialect.POSIX
    separator = "/"
    path_class = PurePosixPath

    def upload_root(self, timestamp: int) -> str:
        return f"/tmp/hyperv-upload-{timestamp}"

    def quote(self, value: str) -> str:
        return shlex.quote(value)

    def mkdir(self, path: str) -> str:
        return f"mkdir -p {self.quote(path)}"

    def file_exists(self, path: str) -> str:
        return f"test -f {self.quote(path)} && echo 'true' || echo 'false'"

    def directory_exists(self, path: str) -> str:
        return f"test -d {self.quote(path)} && echo 'true' || echo 'false'"

    def delete(self, path: str) -> str:
        return f"rm -rf {self.quote(path)}"

    def write_base64(self, encoded: str, path: str, append: bool = False) -> str:
        redirect = ">>" if append else ">"
        return f"printf '%s' '{encoded}' | base64 -d {redirect} {self.quote(path)}"


_DIALECTS: Dict[Dialect, CommandDialect] = {
    Dialect.WINDOWS: WindowsDialect(),
    Dialect.POSIX: PosixDialect(),
}


def get_dialect(dialect: Dialect) -> CommandDialect:
    """Get the shared command builder for a dialect."""
    return _DIALECTS[Dialect(dialect)]
