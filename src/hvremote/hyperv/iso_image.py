# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - ISO Image Assembly
# Build an ISO on the hypervisor host from an uploaded zip archive
# ═══════════════════════════════════════════════════════════════

import json
import logging
from enum import IntEnum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from ..core.exceptions import ConfigError, ScriptExecutionError
from ..remote.client import RemoteClient
from ..remote.models import Dialect
from ..remote.renderer import ScriptTemplate

logger = logging.getLogger("hvremote.hyperv.iso_image")


# ═══════════════════════════════════════════════════════════════
# Models
# ═══════════════════════════════════════════════════════════════

class IsoMediaType(IntEnum):
    """IMAPI2 physical media types."""
    UNKNOWN = 0x0
    CDROM = 0x1
    CDR = 0x2
    CDRW = 0x3
    DVDROM = 0x4
    DVDRAM = 0x5
    DVDPLUSR = 0x6
    DVDPLUSRW = 0x7
    DVDPLUSR_DUALLAYER = 0x8
    DVDDASHR = 0x9
    DVDDASHRW = 0xa
    DVDDASHR_DUALLAYER = 0xb
    DISK = 0xc
    DVDPLUSRW_DUALLAYER = 0xd
    HDDVDROM = 0xe
    HDDVDR = 0xf
    HDDVDRAM = 0x10
    BDROM = 0x11
    BDR = 0x12
    BDRE = 0x13


class IsoFileSystemType(IntEnum):
    """IMAPI2 file systems; UNKNOWN keeps the media type default."""
    NONE = 0x0
    ISO9660 = 0x1
    JOLIET = 0x2
    ISO9660_JOLIET = 0x3
    UDF = 0x4
    JOLIET_UDF = 0x6
    ISO9660_JOLIET_UDF = 0x7
    UNKNOWN = 0x40000000


# Boot images do not work on these
_BLU_RAY_MEDIA = (IsoMediaType.BDROM, IsoMediaType.BDR, IsoMediaType.BDRE)


class IsoImage(BaseModel):
    """
    An ISO image on the hypervisor host.

    ``Source*`` paths are local to the caller, ``Destination*`` paths are
    where the sources were uploaded, and ``ResolveDestination*`` paths are
    the destination paths as the host resolves them (environment
    variables expanded). JSON field names are PascalCase.
    """
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    source_iso_file_path: str = ""
    source_iso_file_path_hash: str = ""
    source_zip_file_path: str = ""
    source_zip_file_path_hash: str = ""
    source_boot_file_path: str = ""
    source_boot_file_path_hash: str = ""
    destination_iso_file_path: str = ""
    destination_zip_file_path: str = ""
    destination_boot_file_path: str = ""
    media: IsoMediaType = Field(default=IsoMediaType.DVDPLUSRW_DUALLAYER)
    file_system: IsoFileSystemType = Field(default=IsoFileSystemType.UNKNOWN)
    volume_name: str = "UNTITLED"
    resolve_destination_iso_file_path: str = ""
    resolve_destination_zip_file_path: str = ""
    resolve_destination_boot_file_path: str = ""

    def template_args(self) -> Dict[str, Any]:
        """PascalCase fields plus the JSON document, for the assembly templates."""
        args = self.model_dump(by_alias=True, mode="json")
        args["IsoImageJson"] = self.model_dump_json(by_alias=True)
        return args


# ═══════════════════════════════════════════════════════════════
# Script Templates
# ═══════════════════════════════════════════════════════════════

_CREATE_ISO_POWERSHELL = ScriptTemplate("CreateOrUpdateIsoImage", r"""
$ErrorActionPreference = 'Stop'
$isoImageJson = @'
{{IsoImageJson}}
'@
$isoImage = $isoImageJson | ConvertFrom-Json

function New-TemporaryDirectory {
  $parent = [System.IO.Path]::GetTempPath()
  do {
    $name = [System.IO.Path]::GetRandomFileName()
    $item = New-Item -Path $parent -Name $name -ItemType "directory" -ErrorAction SilentlyContinue
  } while (-not $item)
  return $item.FullName
}

$typeDefinition = @'
    public class ISOFile  {
        public unsafe static void Create(string Path, object Stream, int BlockSize, int TotalBlocks) {
            int bytes = 0;
            byte[] buf = new byte[BlockSize];
            var ptr = (System.IntPtr)(&bytes);
            var o = System.IO.File.OpenWrite(Path);
            var i = Stream as System.Runtime.InteropServices.ComTypes.IStream;

            if (o != null) {
                while (TotalBlocks-- > 0) {
                    i.Read(buf, BlockSize, ptr); o.Write(buf, 0, bytes);
                }
                o.Flush(); o.Close();
            }
        }
    }
'@

if (!('ISOFile' -as [type])) {
    switch ($PSVersionTable.PSVersion.Major) {
        { $_ -ge 7 } {
            Add-Type -CompilerOptions "/unsafe" -TypeDefinition $typeDefinition
        }
        5 {
            $compOpts = New-Object System.CodeDom.Compiler.CompilerParameters
            $compOpts.CompilerOptions = "/unsafe"
            Add-Type -CompilerParameters $compOpts -TypeDefinition $typeDefinition
        }
        default {
            throw ("Unsupported PowerShell version.")
        }
    }
}

$isoPath = $ExecutionContext.InvokeCommand.ExpandString($isoImage.ResolveDestinationIsoFilePath)
if (!$isoPath) {
    throw ("must specify a value for ResolveDestinationIsoFilePath")
}
$zipPath = $ExecutionContext.InvokeCommand.ExpandString($isoImage.ResolveDestinationZipFilePath)
$bootPath = $ExecutionContext.InvokeCommand.ExpandString($isoImage.ResolveDestinationBootFilePath)

if (Test-Path -Path $isoPath) {
    return
}
if (!$zipPath) {
    throw ("must specify a value for ResolveDestinationZipFilePath")
}
if (!(Test-Path -Path $zipPath)) {
    throw ("Could not find $($zipPath) for specified SourceZipFilePath=$($isoImage.SourceZipFilePath)")
}
if ($bootPath -and !(Test-Path -Path $bootPath)) {
    throw ("Could not find $($bootPath) for specified SourceBootFilePath=$($isoImage.SourceBootFilePath)")
}

$unzipPath = New-TemporaryDirectory
try {
    Expand-Archive -Path $zipPath -DestinationPath $unzipPath

    if ($bootPath) {
        try {
            $stream = New-Object -ComObject ADODB.Stream -Property @{Type = 1} -ErrorAction Stop
            $stream.Open()
            $stream.LoadFromFile((Get-Item -LiteralPath $bootPath).Fullname)
            $boot = New-Object -ComObject IMAPI2FS.BootOptions -ErrorAction Stop
            $boot.AssignBootImage($stream)
        }
        catch {
            throw ("Failed to apply boot file. " + $_.exception.message)
        }
    }

    try {
        $image = New-Object -ComObject IMAPI2FS.MsftFileSystemImage -Property @{VolumeName = $isoImage.VolumeName} -ErrorAction Stop
        $image.ChooseImageDefaultsForMediaType($isoImage.Media)
        if ($isoImage.FileSystem -ne 0x40000000) {
            $image.FileSystemsToCreate = $isoImage.FileSystem
        }
    }
    catch {
        throw ("Failed to initialise image. Media=$($isoImage.Media), FileSystem=$($isoImage.FileSystem). " + $_.exception.Message)
    }

    $isoDirectory = Split-Path -Path $isoPath -Parent
    if ($isoDirectory) {
        New-Item -ItemType Directory -Force -Path $isoDirectory | Out-Null
    }
    $targetFile = New-Item -Path $isoPath -ItemType File -Force

    foreach ($sourceItem in (Get-ChildItem -LiteralPath $unzipPath)) {
        try {
            $image.Root.AddTree($sourceItem.FullName, $true)
        }
        catch {
            throw ("Failed to add " + $sourceItem.FullName + ". " + $_.exception.message)
        }
    }

    if ($boot) {
        $image.BootImageOptions = $boot
    }

    try {
        $result = $image.CreateResultImage()
        [ISOFile]::Create($targetFile.FullName, $result.ImageStream, $result.BlockSize, $result.TotalBlocks)
    }
    catch {
        Remove-Item -Path $isoPath -Force -ErrorAction SilentlyContinue
        throw ("Failed to write ISO file. " + $_.exception.Message)
    }
}
finally {
    Remove-Item $unzipPath -Force -Recurse -ErrorAction SilentlyContinue
}
""")

_CREATE_ISO_POSIX = ScriptTemplate("CreateOrUpdateIsoImage", r"""
set -eu
DESTINATION_ISO={{ResolveDestinationIsoFilePath | sh_quote}}
ZIP_FILE={{ResolveDestinationZipFilePath | sh_quote}}
BOOT_FILE={{ResolveDestinationBootFilePath | sh_quote}}
VOLUME_NAME={{VolumeName | sh_quote}}

if [ -e "$DESTINATION_ISO" ]; then
  exit 0
fi
if [ -z "$ZIP_FILE" ]; then
  echo "must specify a value for ResolveDestinationZipFilePath" >&2
  exit 1
fi
if [ ! -f "$ZIP_FILE" ]; then
  echo "Could not find $ZIP_FILE for specified SourceZipFilePath="{{SourceZipFilePath | sh_quote}} >&2
  exit 1
fi

WORK_DIR=$(mktemp -d)
trap 'rm -rf "$WORK_DIR"' EXIT

mkdir -p "$WORK_DIR/root"
unzip -q "$ZIP_FILE" -d "$WORK_DIR/root"

set -- -as mkisofs -quiet -J -R -V "$VOLUME_NAME" -o "$DESTINATION_ISO"
if [ -n "$BOOT_FILE" ]; then
  if [ ! -f "$BOOT_FILE" ]; then
    echo "Could not find $BOOT_FILE for specified SourceBootFilePath="{{SourceBootFilePath | sh_quote}} >&2
    exit 1
  fi
  cp "$BOOT_FILE" "$WORK_DIR/root/boot.img"
  set -- "$@" -b boot.img -no-emul-boot
fi

mkdir -p "$(dirname "$DESTINATION_ISO")"
if ! xorriso "$@" "$WORK_DIR/root"; then
  rm -f "$DESTINATION_ISO"
  exit 1
fi
""")

_GET_ISO_POWERSHELL = ScriptTemplate("GetIsoImage", r"""
$ErrorActionPreference = 'Stop'
$isoPath = $ExecutionContext.InvokeCommand.ExpandString({{ResolveDestinationIsoFilePath | ps_quote}})

if (Test-Path -Path $isoPath -PathType Leaf) {
    $isoImageObject = @{}
    $isoImageObject.ResolveDestinationIsoFilePath = $isoPath
    ConvertTo-Json -InputObject $isoImageObject
} else {
    "{}"
}
""")

_GET_ISO_POSIX = ScriptTemplate("GetIsoImage", r"""
if [ -f {{ResolveDestinationIsoFilePath | sh_quote}} ]; then
  printf '%s\n' {{ResultJson | sh_quote}}
else
  echo '{}'
fi
""")

_CREATE_TEMPLATES = {Dialect.WINDOWS: _CREATE_ISO_POWERSHELL, Dialect.POSIX: _CREATE_ISO_POSIX}
_GET_TEMPLATES = {Dialect.WINDOWS: _GET_ISO_POWERSHELL, Dialect.POSIX: _GET_ISO_POSIX}


# ═══════════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════════

class IsoImageClient:
    """
    ISO image operations on one hypervisor host.

    Usage:
        isos = IsoImageClient(client)
        created = await isos.create_or_update_iso_image(IsoImage(
            source_zip_file_path="./cloud-init.zip",
            resolve_destination_zip_file_path="C:\\Images\\cloud-init.zip",
            resolve_destination_iso_file_path="C:\\Images\\cloud-init.iso",
            volume_name="CIDATA",
        ))
    """

    def __init__(self, client: RemoteClient):
        self.client = client

    async def create_or_update_iso_image(self, iso_image: IsoImage) -> bool:
        """
        Assemble the ISO from its zip unless it already exists.

        Args:
            iso_image: Image description; the zip must already be on the host

        Returns:
            True if an image was built, False if it already existed

        Raises:
            ConfigError: Destination or zip path missing, or boot image on Blu-ray media
            ScriptExecutionError: Assembly failed or produced no image
        """
        destination = iso_image.resolve_destination_iso_file_path
        if not destination:
            raise ConfigError(
                "must specify a value for resolve_destination_iso_file_path",
                field="resolve_destination_iso_file_path",
            )

        if await self.get_iso_image(destination) is not None:
            logger.info(f"ISO image {destination} already exists on {self.client.host}; nothing to do")
            return False

        if not iso_image.resolve_destination_zip_file_path:
            raise ConfigError(
                "must specify a value for resolve_destination_zip_file_path "
                "when the ISO image has to be built",
                field="resolve_destination_zip_file_path",
            )
        if iso_image.resolve_destination_boot_file_path and iso_image.media in _BLU_RAY_MEDIA:
            raise ConfigError(
                "boot images do not work with BDR/BDRE media types",
                field="media",
            )

        template = _CREATE_TEMPLATES[self.client.dialect.dialect]
        await self.client.run_fire_and_forget_script(template, iso_image.template_args())

        if await self.get_iso_image(destination) is None:
            raise ScriptExecutionError(
                exit_code=0,
                stderr=f"ISO image {destination} was not created",
                command=template.name,
            )

        logger.info(f"Created ISO image {destination} on {self.client.host}")
        return True

    async def get_iso_image(self, resolve_destination_iso_file_path: str) -> Optional[IsoImage]:
        """
        Look up an ISO image on the host.

        Returns:
            IsoImage with the resolved path, or None if the file is absent
        """
        template = _GET_TEMPLATES[self.client.dialect.dialect]
        result = await self.client.run_script_with_result(
            template,
            {
                "ResolveDestinationIsoFilePath": resolve_destination_iso_file_path,
                "ResultJson": json.dumps({"ResolveDestinationIsoFilePath": resolve_destination_iso_file_path}),
            },
            Dict[str, Any],
        )
        if not result:
            return None
        return IsoImage.model_validate(result)

    async def delete_iso_image(self, resolve_destination_iso_file_path: str) -> None:
        """Delete an ISO image; deleting a missing image succeeds."""
        await self.client.delete_file_or_directory(resolve_destination_iso_file_path)
        logger.info(f"Deleted ISO image {resolve_destination_iso_file_path} on {self.client.host}")
