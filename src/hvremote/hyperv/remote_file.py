# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Remote Files
# Upload, hash, probe and delete single files on the hypervisor host
# ═══════════════════════════════════════════════════════════════

import logging

from ..remote.client import RemoteClient
from ..remote.models import Dialect
from ..remote.renderer import ScriptTemplate

logger = logging.getLogger("hvremote.hyperv.remote_file")


_FILE_HASH_POWERSHELL = ScriptTemplate("RemoteFileHash", r"""
$ErrorActionPreference = 'Stop'
$path = {{Path | ps_quote}}

if (!(Test-Path -Path $path)) {
    throw "Path does not exist: $path"
}

$hash = (Get-FileHash -Path $path -Algorithm SHA256).Hash.ToLower()
ConvertTo-Json -InputObject $hash
""")

_FILE_HASH_POSIX = ScriptTemplate("RemoteFileHash", r"""
set -eu
if [ ! -f {{Path | sh_quote}} ]; then
  echo "Path does not exist: "{{Path | sh_quote}} >&2
  exit 1
fi
printf '"%s"\n' "$(sha256sum {{Path | sh_quote}} | cut -d ' ' -f 1)"
""")

_HASH_TEMPLATES = {Dialect.WINDOWS: _FILE_HASH_POWERSHELL, Dialect.POSIX: _FILE_HASH_POSIX}


class RemoteFileClient:
    """
    Single file operations on one hypervisor host.

    Usage:
        files = RemoteFileClient(client)
        remote_path = await files.upload("./disk.vhdx", "C:\\Images\\")
        digest = await files.file_hash(remote_path)
    """

    def __init__(self, client: RemoteClient):
        self.client = client

    async def upload(self, local_path: str, remote_path: str = "") -> str:
        """
        Upload a file.

        Returns:
            Remote path the file was written to
        """
        uploaded = await self.client.upload_file(local_path, remote_path)
        logger.info(f"Uploaded {local_path} to {uploaded} on {self.client.host}")
        return uploaded

    async def exists(self, remote_path: str) -> bool:
        return await self.client.file_exists(remote_path)

    async def delete(self, remote_path: str) -> None:
        await self.client.delete_file_or_directory(remote_path)

    async def file_hash(self, remote_path: str) -> str:
        """
        Lowercase hex SHA-256 of a remote file.

        Raises:
            ScriptExecutionError: The file does not exist
        """
        template = _HASH_TEMPLATES[self.client.dialect.dialect]
        return await self.client.run_script_with_result(template, {"Path": remote_path}, str)
