# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Hyper-V Host Operations
# ═══════════════════════════════════════════════════════════════

from .iso_image import IsoFileSystemType, IsoImage, IsoImageClient, IsoMediaType
from .remote_file import RemoteFileClient

__all__ = [
    "IsoMediaType",
    "IsoFileSystemType",
    "IsoImage",
    "IsoImageClient",
    "RemoteFileClient",
]
