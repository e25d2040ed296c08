# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Hyper-V Remote Execution
# Run scripts and move files on hypervisor hosts over WinRM or SSH
# ═══════════════════════════════════════════════════════════════
#
# Components:
# - core:   settings, logging, exception hierarchy
# - remote: transports (pooled WinRM, per-operation SSH, local),
#           script rendering, execution protocol, file transfer
# - hyperv: host-side operations built on the remote client
#
# Usage Example:
# --------------
#   from hvremote import create_client, WinRMConfig
#
#   config = WinRMConfig(host="hv01", username="admin", password="...")
#   async with create_client(config) as client:
#       vm = await client.run_script_with_result(GET_VM, {"Name": "web01"}, VmInfo)
#
# ═══════════════════════════════════════════════════════════════

from .core.config import Settings, get_settings
from .core.exceptions import (
    HVRemoteException,
    ConfigError,
    TransportError,
    PoolExhaustedError,
    TemplateError,
    ScriptExecutionError,
    ResultDecodeError,
    TransferError,
)
from .core.logging import configure_logging
from .remote import (
    Dialect,
    TransportType,
    SSHConfig,
    WinRMConfig,
    LocalConfig,
    ConnectionConfig,
    ExecutionResult,
    ScriptTemplate,
    RemoteClient,
    TransportFactory,
    create_client,
    create_transport,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "configure_logging",

    # Exceptions
    "HVRemoteException",
    "ConfigError",
    "TransportError",
    "PoolExhaustedError",
    "TemplateError",
    "ScriptExecutionError",
    "ResultDecodeError",
    "TransferError",

    # Remote
    "Dialect",
    "TransportType",
    "SSHConfig",
    "WinRMConfig",
    "LocalConfig",
    "ConnectionConfig",
    "ExecutionResult",
    "ScriptTemplate",
    "RemoteClient",
    "TransportFactory",
    "create_client",
    "create_transport",
]

__version__ = "1.0.0"
