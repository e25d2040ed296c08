# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Transport Factory
# Registry mapping connection configs to transports
# ═══════════════════════════════════════════════════════════════

import logging
from typing import Any, Dict, Optional, Type, Union

from pydantic import ValidationError

from ..core.config import Settings, get_settings
from ..core.exceptions import ConfigError
from .base import BaseTransport
from .client import RemoteClient
from .local import LocalTransport
from .models import BaseConnectionConfig, ConnectionConfig, LocalConfig, SSHConfig, TransportType, WinRMConfig
from .ssh import EphemeralSSHTransport
from .winrm import PooledWinRMTransport

logger = logging.getLogger("hvremote.remote.factory")


class TransportFactory:
    """
    Factory for creating transports from connection configs.

    The config type selects the transport. Configs built through
    ``build_config`` take their timeouts and pool sizes from the
    process settings unless given explicitly.

    Usage:
        factory = TransportFactory()

        config = factory.build_config("winrm", host="hv01", username="admin", password="...")
        async with factory.create_client(config) as client:
            await client.run_fire_and_forget_script(SCRIPT, args)
    """

    # Transport class registry
    _transport_classes: Dict[Type[BaseConnectionConfig], Type[BaseTransport]] = {
        WinRMConfig: PooledWinRMTransport,
        SSHConfig: EphemeralSSHTransport,
        LocalConfig: LocalTransport,
    }

    _config_classes: Dict[TransportType, Type[BaseConnectionConfig]] = {
        TransportType.WINRM: WinRMConfig,
        TransportType.SSH: SSHConfig,
        TransportType.LOCAL: LocalConfig,
    }

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._transport_classes = dict(self._transport_classes)
        self.logger = logging.getLogger("hvremote.remote.factory")

    # ═══════════════════════════════════════════════════════════
    # Registry
    # ═══════════════════════════════════════════════════════════

    def register(self, config_class: Type[BaseConnectionConfig], transport_class: Type[BaseTransport]) -> None:
        """Register (or replace) the transport used for a config type."""
        self._transport_classes[config_class] = transport_class

    def transport_class_for(self, config: ConnectionConfig) -> Type[BaseTransport]:
        """
        Look up the transport class for a config.

        Raises:
            ConfigError: No transport is registered for the config type
        """
        for config_class in type(config).__mro__:
            transport_class = self._transport_classes.get(config_class)
            if transport_class is not None:
                return transport_class
        raise ConfigError(
            f"no transport registered for {type(config).__name__}",
            field="config",
        )

    # ═══════════════════════════════════════════════════════════
    # Creation
    # ═══════════════════════════════════════════════════════════

    def build_config(self, transport_type: Union[TransportType, str], **fields: Any) -> ConnectionConfig:
        """
        Build a connection config with settings-derived defaults.

        Args:
            transport_type: "winrm", "ssh" or "local"
            **fields: Config fields

        Raises:
            ConfigError: Unknown transport type or invalid fields
        """
        try:
            transport_type = TransportType(transport_type)
        except ValueError as e:
            raise ConfigError(f"unknown transport type: {transport_type}", field="transport_type") from e

        defaults: Dict[str, Any] = {
            "timeout": self.settings.dial_timeout,
            "command_timeout": self.settings.command_timeout,
        }
        if transport_type == TransportType.WINRM:
            defaults["pool_max_size"] = self.settings.pool_max_size
            defaults["pool_borrow_timeout"] = self.settings.pool_borrow_timeout

        config_class = self._config_classes[transport_type]
        try:
            return config_class(**{**defaults, **fields})
        except ValidationError as e:
            raise ConfigError(
                f"invalid {transport_type.value} configuration: {e}",
                field=", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc")),
                original_error=e
            ) from e

    def create(self, config: ConnectionConfig) -> BaseTransport:
        """
        Create a transport for a config.

        Raises:
            ConfigError: No transport is registered for the config type
        """
        transport_class = self.transport_class_for(config)
        transport = transport_class(config)
        self.logger.info(f"Created {transport.transport_type.value} transport for {config.host}")
        return transport

    def create_client(self, config: ConnectionConfig) -> RemoteClient:
        """Create a RemoteClient over a new transport."""
        return RemoteClient(self.create(config))


# ═══════════════════════════════════════════════════════════════
# Global Factory Instance (Singleton Pattern)
# ═══════════════════════════════════════════════════════════════

_global_factory: Optional[TransportFactory] = None


def get_transport_factory() -> TransportFactory:
    """
    Get the global transport factory instance.

    Returns:
        Global TransportFactory instance
    """
    global _global_factory

    if _global_factory is None:
        _global_factory = TransportFactory()

    return _global_factory


def create_transport(config: ConnectionConfig) -> BaseTransport:
    """Create a transport using the global factory."""
    return get_transport_factory().create(config)


def create_client(config: ConnectionConfig) -> RemoteClient:
    """Create a RemoteClient using the global factory."""
    return get_transport_factory().create_client(config)
