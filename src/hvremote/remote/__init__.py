# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Remote Execution Layer
# ═══════════════════════════════════════════════════════════════
#
# Architecture:
# ┌─────────────────────────────────────────────────────────────┐
# │  RemoteClient                                               │
# │  • scripts (fire and forget / JSON result)                  │
# │  • uploads, probes, deletes                                 │
# └──────────────────────────┬──────────────────────────────────┘
#                            │
#                            ▼
# ┌─────────────────────────────────────────────────────────────┐
# │  ScriptRunner + ScriptTemplate                              │
# └──────────────────────────┬──────────────────────────────────┘
#                            │
#            ┌───────────────┼───────────────┐
#            ▼               ▼               ▼
# ┌────────────────┐ ┌────────────────┐ ┌────────────────┐
# │ PooledWinRM    │ │ EphemeralSSH   │ │ Local          │
# │ (PowerShell)   │ │ (SFTP/base64)  │ │ (sh)           │
# └────────────────┘ └────────────────┘ └────────────────┘
#
# ═══════════════════════════════════════════════════════════════

from .models import (
    # Enums
    Dialect,
    TransportType,
    # Connection Configs
    BaseConnectionConfig,
    SSHConfig,
    WinRMConfig,
    LocalConfig,
    ConnectionConfig,
    # Execution Models
    RenderedScript,
    ExecutionResult,
    PoolStats,
)

from .renderer import ScriptTemplate, render
from .dialect import CommandDialect, WindowsDialect, PosixDialect, get_dialect
from .pool import ConnectionPool
from .base import BaseTransport
from .local import LocalTransport
from .ssh import EphemeralSSHTransport
from .winrm import PooledWinRMTransport
from .protocol import ScriptRunner
from .client import RemoteClient
from .factory import (
    TransportFactory,
    get_transport_factory,
    create_transport,
    create_client,
)

__all__ = [
    # ═══════════════════════════════════════════════════════════
    # Enums
    # ═══════════════════════════════════════════════════════════
    "Dialect",
    "TransportType",

    # ═══════════════════════════════════════════════════════════
    # Connection Configuration Models
    # ═══════════════════════════════════════════════════════════
    "BaseConnectionConfig",
    "SSHConfig",
    "WinRMConfig",
    "LocalConfig",
    "ConnectionConfig",

    # ═══════════════════════════════════════════════════════════
    # Execution Models
    # ═══════════════════════════════════════════════════════════
    "RenderedScript",
    "ExecutionResult",
    "PoolStats",

    # ═══════════════════════════════════════════════════════════
    # Scripts and Dialects
    # ═══════════════════════════════════════════════════════════
    "ScriptTemplate",
    "render",
    "CommandDialect",
    "WindowsDialect",
    "PosixDialect",
    "get_dialect",

    # ═══════════════════════════════════════════════════════════
    # Transports
    # ═══════════════════════════════════════════════════════════
    "ConnectionPool",
    "BaseTransport",
    "LocalTransport",
    "EphemeralSSHTransport",
    "PooledWinRMTransport",

    # ═══════════════════════════════════════════════════════════
    # Client and Factory
    # ═══════════════════════════════════════════════════════════
    "ScriptRunner",
    "RemoteClient",
    "TransportFactory",
    "get_transport_factory",
    "create_transport",
    "create_client",
]
