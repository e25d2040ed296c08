# ═══════════════════════════════════════════════════════════════
# HVRemote - Custom Exceptions
# Centralized exception handling for the remote execution layer
# ═══════════════════════════════════════════════════════════════

from typing import Any, Dict, List, Optional


class HVRemoteException(Exception):
    """
    Base exception for all HVRemote errors.

    All custom exceptions inherit from this class to enable
    unified error handling by callers of the remote execution layer.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details (raw remote output lives here)
        original_error: Original exception if wrapping another error
    """

    def __init__(
        self,
        message: str,
        error_code: str = "HVREMOTE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured reporting."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.error_code}, message='{self.message}')"


# ═══════════════════════════════════════════════════════════════
# Configuration Exceptions
# ═══════════════════════════════════════════════════════════════

class ConfigError(HVRemoteException):
    """Missing or invalid connection configuration or credentials."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.field = field
        super().__init__(
            message=message,
            error_code="CONFIG_ERROR",
            details={"field": field, **(details or {})},
            original_error=original_error
        )


# ═══════════════════════════════════════════════════════════════
# Transport Exceptions
# ═══════════════════════════════════════════════════════════════

class TransportError(HVRemoteException):
    """Dial, authentication or session failure talking to the remote host."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        transport: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.host = host
        self.transport = transport
        super().__init__(
            message=message,
            error_code="TRANSPORT_ERROR",
            details={"host": host, "transport": transport, **(details or {})},
            original_error=original_error
        )


class PoolExhaustedError(TransportError):
    """No pooled session became available within the borrow timeout."""

    def __init__(
        self,
        pool_name: str,
        max_size: int,
        borrow_timeout: float,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"Connection pool '{pool_name}' exhausted: "
                    f"no session available within {borrow_timeout}s "
                    f"(max_size={max_size})",
            details={
                "pool": pool_name,
                "max_size": max_size,
                "borrow_timeout": borrow_timeout,
                **(details or {})
            }
        )
        self.error_code = "POOL_EXHAUSTED"
        self.pool_name = pool_name
        self.max_size = max_size
        self.borrow_timeout = borrow_timeout


# ═══════════════════════════════════════════════════════════════
# Script Exceptions
# ═══════════════════════════════════════════════════════════════

class TemplateError(HVRemoteException):
    """A script template could not be compiled or rendered."""

    def __init__(
        self,
        message: str,
        template_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.template_name = template_name
        super().__init__(
            message=f"Failed to render script template '{template_name}': {message}",
            error_code="TEMPLATE_ERROR",
            details={"template": template_name, **(details or {})},
            original_error=original_error
        )


class ScriptExecutionError(HVRemoteException):
    """A remote script exited with a non-zero exit code."""

    def __init__(
        self,
        exit_code: int,
        stderr: str,
        command: str = "",
        stdout: str = "",
        details: Optional[Dict[str, Any]] = None
    ):
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        self.command = command
        super().__init__(
            message=f"command failed with exit code {exit_code}: {stderr}"
                    f"\nstdOut:{stdout}\ncommand:{command}",
            error_code="SCRIPT_EXECUTION_ERROR",
            details={
                "exit_code": exit_code,
                "stdout": stdout,
                "stderr": stderr,
                "command": command,
                **(details or {})
            }
        )


class ResultDecodeError(HVRemoteException):
    """Remote stdout could not be decoded into the expected result type."""

    def __init__(
        self,
        exit_code: int,
        stdout: str,
        stderr: str,
        decode_error: Exception,
        command: str,
        result_type: Optional[str] = None
    ):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.decode_error = decode_error
        self.command = command
        super().__init__(
            message=f"failed to decode JSON result - exitStatus:{exit_code}"
                    f"\nstdOut:{stdout}\nstdErr:{stderr}"
                    f"\nerr:{decode_error}\ncommand:{command}",
            error_code="RESULT_DECODE_ERROR",
            details={
                "exit_code": exit_code,
                "stdout": stdout,
                "stderr": stderr,
                "decode_error": str(decode_error),
                "command": command,
                "result_type": result_type,
            },
            original_error=decode_error
        )


# ═══════════════════════════════════════════════════════════════
# Transfer Exceptions
# ═══════════════════════════════════════════════════════════════

class TransferError(HVRemoteException):
    """Every upload strategy failed, or a directory upload was aborted."""

    def __init__(
        self,
        message: str,
        remote_path: Optional[str] = None,
        errors: Optional[List[Exception]] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.remote_path = remote_path
        self.errors = errors or []
        if self.errors:
            message = f"{message}: " + "; ".join(str(e) for e in self.errors)
        super().__init__(
            message=message,
            error_code="TRANSFER_ERROR",
            details={
                "remote_path": remote_path,
                "errors": [f"{type(e).__name__}: {e}" for e in self.errors],
                **(details or {})
            },
            original_error=original_error or (self.errors[-1] if self.errors else None)
        )
