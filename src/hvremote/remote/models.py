# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Transport Models
# Data models for the remote execution layer
# ═══════════════════════════════════════════════════════════════

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, SecretStr, field_validator

from ..core.exceptions import ScriptExecutionError, TransportError


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class Dialect(str, Enum):
    """Command dialect spoken by the remote host."""
    WINDOWS = "windows"      # PowerShell helpers, backslash paths
    POSIX = "posix"          # sh helpers, forward slash paths


class TransportType(str, Enum):
    """Types of transports."""
    WINRM = "winrm"          # Pooled WinRM sessions
    SSH = "ssh"              # One SSH connection per operation
    LOCAL = "local"          # Local subprocess (development, tests)


# ═══════════════════════════════════════════════════════════════
# Connection Configuration Models
# ═══════════════════════════════════════════════════════════════

class BaseConnectionConfig(BaseModel):
    """Base configuration for all connection types. Immutable once built."""
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )

    host: str = Field(..., min_length=1, description="Target hostname or IP")
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    username: Optional[str] = Field(default=None, description="Login user")
    password: Optional[SecretStr] = Field(default=None, description="Login password")
    timeout: int = Field(default=30, ge=1, le=3600, description="Dial timeout in seconds")
    command_timeout: int = Field(default=300, ge=1, le=86400, description="Per-command deadline in seconds")
    dialect: Dialect = Field(default=Dialect.WINDOWS, description="Remote command dialect")
    vars: Optional[str] = Field(
        default=None,
        description="Environment prelude prepended verbatim to every command, followed by '; '",
    )


class SSHConfig(BaseConnectionConfig):
    """SSH connection configuration."""
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(..., min_length=1, description="SSH username")
    private_key: Optional[SecretStr] = Field(default=None, description="Literal private key material")
    private_key_path: Optional[str] = Field(default=None, description="Path to private key file ('~' expanded)")
    private_key_passphrase: Optional[SecretStr] = Field(default=None, description="Private key passphrase")

    # Privilege escalation
    elevated_user: Optional[str] = Field(default=None, description="Run commands as this user")
    elevated_command: str = Field(default="sudo", description="Escalation command (sudo, doas, ...)")

    # SSH-specific options
    keepalive_interval: int = Field(default=30, ge=0, description="SSH keepalive interval")
    known_hosts: Optional[str] = Field(
        default=None,
        description="Path to known_hosts file; host key checking is disabled when unset",
    )

    @property
    def has_auth(self) -> bool:
        """True when at least one authentication method is configured."""
        return bool(self.password or self.private_key or self.private_key_path)


class WinRMConfig(BaseConnectionConfig):
    """WinRM connection configuration."""
    port: int = Field(default=5985, ge=1, le=65535)  # 5985 for HTTP, 5986 for HTTPS
    username: str = Field(..., min_length=1, description="Windows username")
    password: SecretStr = Field(..., description="Windows password")
    dialect: Dialect = Field(default=Dialect.WINDOWS, description="Always windows")

    # WinRM-specific options
    transport: str = Field(default="ntlm", description="Authentication transport: ntlm, kerberos, basic, credssp")
    ssl: bool = Field(default=False, description="Use HTTPS (port 5986)")
    ssl_verify: bool = Field(default=False, description="Verify SSL certificate")
    codepage: int = Field(default=65001, description="Windows codepage (65001 = UTF-8)")

    # Privilege escalation
    elevated_user: Optional[str] = Field(default=None, description="Run scripts as this identity")
    elevated_password: Optional[SecretStr] = Field(default=None, description="Password of the elevated identity")

    # Connection pooling
    pool_max_size: int = Field(default=5, ge=1, le=100, description="Maximum pooled sessions")
    pool_borrow_timeout: float = Field(default=60.0, gt=0, description="Maximum wait for a pooled session")
    validate_on_borrow: bool = Field(default=False, description="Probe idle sessions before handing them out")

    @field_validator("dialect")
    @classmethod
    def _windows_only(cls, value: Dialect) -> Dialect:
        if value != Dialect.WINDOWS:
            raise ValueError("WinRM targets always use the windows dialect")
        return value

    @field_validator("transport")
    @classmethod
    def _known_transport(cls, value: str) -> str:
        value = value.lower()
        if value not in ("ntlm", "kerberos", "basic", "credssp", "plaintext", "ssl"):
            raise ValueError(f"unsupported WinRM transport: {value}")
        return value

    @property
    def endpoint(self) -> str:
        """Get WinRM endpoint URL."""
        protocol = "https" if self.ssl else "http"
        return f"{protocol}://{self.host}:{self.port}/wsman"


class LocalConfig(BaseConnectionConfig):
    """Local execution configuration."""
    host: str = Field(default="localhost", description="Always localhost")
    dialect: Dialect = Field(default=Dialect.POSIX, description="Local command dialect")
    shell: str = Field(default="/bin/sh", description="Shell used as '<shell> -c <command>'")
    working_directory: Optional[str] = Field(default=None, description="Working directory for commands")


# Type alias for any connection config
ConnectionConfig = Union[SSHConfig, WinRMConfig, LocalConfig]


# ═══════════════════════════════════════════════════════════════
# Script / Result Models
# ═══════════════════════════════════════════════════════════════

class RenderedScript(BaseModel):
    """Script text produced by the renderer, ready to send."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Template name")
    text: str = Field(..., description="Rendered script text")


class ExecutionResult(BaseModel):
    """Outcome of one remote command."""
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )

    stdout: str = Field(default="", description="Standard output")
    stderr: str = Field(default="", description="Standard error")
    exit_code: int = Field(default=-1, description="Process exit code, -1 when unknown")
    transport_error: Optional[str] = Field(default=None, description="Transport failure description")

    # Context
    command: str = Field(default="", description="Command as submitted (after rewriting)")
    host: str = Field(default="", description="Target host")
    transport_type: Optional[TransportType] = Field(default=None, description="Transport used")
    duration_ms: int = Field(default=0, description="Execution duration in milliseconds")

    _cause: Optional[BaseException] = PrivateAttr(default=None)

    @classmethod
    def from_transport_error(
        cls,
        error: BaseException,
        command: str,
        host: str,
        transport_type: TransportType,
        duration_ms: int = 0,
    ) -> "ExecutionResult":
        """Build a result for a command that never completed."""
        result = cls(
            transport_error=str(error) or type(error).__name__,
            command=command,
            host=host,
            transport_type=transport_type,
            duration_ms=duration_ms,
        )
        result._cause = error
        return result

    @property
    def success(self) -> bool:
        """Only an exit code of exactly 0 without a transport error is success."""
        return self.transport_error is None and self.exit_code == 0

    def raise_for_status(self) -> "ExecutionResult":
        """
        Raise if the command did not succeed.

        Raises:
            TransportError: The command never completed
            ScriptExecutionError: The command exited non-zero

        Returns:
            self, for chaining
        """
        if self.transport_error is not None:
            if isinstance(self._cause, TransportError):
                raise self._cause
            raise TransportError(
                self.transport_error,
                host=self.host,
                transport=self.transport_type.value if self.transport_type else None,
                details={"command": self.command},
                original_error=self._cause if isinstance(self._cause, Exception) else None,
            ) from self._cause
        if self.exit_code != 0:
            raise ScriptExecutionError(
                exit_code=self.exit_code,
                stderr=self.stderr,
                stdout=self.stdout,
                command=self.command,
            )
        return self


# ═══════════════════════════════════════════════════════════════
# Connection Pool Models
# ═══════════════════════════════════════════════════════════════

class PoolStats(BaseModel):
    """Snapshot of connection pool counters."""
    name: str
    max_size: int
    created: int = 0
    borrowed: int = 0
    returned: int = 0
    invalidated: int = 0
    destroyed: int = 0
    idle: int = 0
    in_use: int = 0

    @property
    def balanced(self) -> bool:
        """Every borrow has been matched by a return or an invalidation."""
        return self.borrowed == self.returned + self.invalidated and self.in_use == 0
