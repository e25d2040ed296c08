# ═══════════════════════════════════════════════════════════════
# HVRemote - Structured Logging
# JSON/console output with per-operation context tracking
# ═══════════════════════════════════════════════════════════════

import json
import logging
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import get_settings


# ═══════════════════════════════════════════════════════════════
# Context Variables for Operation Tracking
# ═══════════════════════════════════════════════════════════════

operation_id_var: ContextVar[Optional[str]] = ContextVar('operation_id', default=None)
host_var: ContextVar[Optional[str]] = ContextVar('host', default=None)
transport_var: ContextVar[Optional[str]] = ContextVar('transport', default=None)


def get_context() -> Dict[str, Optional[str]]:
    """Get current logging context."""
    return {
        'operation_id': operation_id_var.get(),
        'host': host_var.get(),
        'transport': transport_var.get(),
    }


def current_operation_id() -> str:
    """Operation id of the enclosing operation, or a new one."""
    return operation_id_var.get() or uuid.uuid4().hex[:12]


@contextmanager
def logging_context(
    operation_id: Optional[str] = None,
    host: Optional[str] = None,
    transport: Optional[str] = None
):
    """
    Context manager for setting logging context.

    Usage:
        with logging_context(host="hv01", transport="ssh"):
            logger.info("Uploading image")  # Includes host and transport
    """
    tokens = []

    if operation_id is not None:
        tokens.append(operation_id_var.set(operation_id))
    if host is not None:
        tokens.append(host_var.set(host))
    if transport is not None:
        tokens.append(transport_var.set(transport))

    try:
        yield
    finally:
        for token in reversed(tokens):
            token.var.reset(token)


# ═══════════════════════════════════════════════════════════════
# JSON Formatter
# ═══════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Produces machine-readable JSON logs with consistent structure.
    Extra fields are passed as ``extra={"extra_fields": {...}}``.
    """

    def __init__(self, include_traceback: bool = True):
        super().__init__()
        self.include_traceback = include_traceback

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for key, value in get_context().items():
            if value is not None:
                log_entry[key] = value

        extra_fields = getattr(record, 'extra_fields', None)
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info:
            exc_type, exc_value = record.exc_info[0], record.exc_info[1]
            log_entry['exception'] = {
                'type': exc_type.__name__ if exc_type else None,
                'message': str(exc_value) if exc_value else None,
            }
            if self.include_traceback:
                log_entry['exception']['traceback'] = traceback.format_exception(*record.exc_info)

        if record.stack_info:
            log_entry['stack_info'] = record.stack_info

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Colored console formatter for development.

    Produces human-readable logs with color coding.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')

        message = f"{color}[{timestamp}] [{record.levelname:8}] {record.name}: {record.getMessage()}{self.RESET}"

        context_parts = [f"{k}={v}" for k, v in get_context().items() if v]
        if context_parts:
            message += f" | {' '.join(context_parts)}"

        extra_fields = getattr(record, 'extra_fields', None)
        if extra_fields:
            extras = ' '.join(f"{k}={v}" for k, v in extra_fields.items())
            message += f" | {extras}"

        if record.exc_info:
            message += f"\n{self.COLORS['ERROR']}{self.formatException(record.exc_info)}{self.RESET}"

        return message


# ═══════════════════════════════════════════════════════════════
# Logger Factory
# ═══════════════════════════════════════════════════════════════

_configured = False


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    force: bool = False
) -> None:
    """
    Configure root logging for an application embedding hvremote.

    The library itself never calls this; it only emits records under
    the ``hvremote`` logger hierarchy.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ('json' or 'console')
        log_file: Optional file path for JSON logging
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    settings = get_settings()

    level = getattr(logging, (log_level or settings.log_level).upper())
    format_type = log_format or settings.log_format

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    if format_type == 'json':
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    _configure_library_loggers(level)

    _configured = True


def _configure_library_loggers(level: int) -> None:
    """Configure third-party library loggers."""
    # asyncssh logs every channel open at INFO
    logging.getLogger('asyncssh').setLevel(max(level, logging.WARNING))
    logging.getLogger('asyncio').setLevel(max(level, logging.WARNING))
    logging.getLogger('winrm').setLevel(max(level, logging.WARNING))
    logging.getLogger('urllib3').setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually ``hvremote.<area>``)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════
# Performance Logging
# ═══════════════════════════════════════════════════════════════

class PerformanceLogger:
    """
    Logger for performance metrics.

    Records timing of remote operations.
    """

    def __init__(self):
        self.logger = get_logger('hvremote.performance')

    @contextmanager
    def measure(
        self,
        operation: str,
        threshold_seconds: Optional[float] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        """
        Context manager to measure operation timing.

        Args:
            operation: Name of the operation
            threshold_seconds: Log warning if exceeded
            extra: Additional context

        Usage:
            with performance_logger.measure("run_script_with_result"):
                result = await transport.run_with_result(script)
        """
        start = time.perf_counter()
        status = 'success'

        try:
            yield
        except BaseException:
            status = 'error'
            raise
        finally:
            elapsed = time.perf_counter() - start

            extra_fields = {
                'operation': operation,
                'status': status,
                'elapsed_seconds': round(elapsed, 6),
                **(extra or {})
            }

            if threshold_seconds and elapsed > threshold_seconds:
                self.logger.warning(
                    f"Slow operation: {operation} took {elapsed:.3f}s",
                    extra={'extra_fields': extra_fields}
                )
            else:
                self.logger.debug(
                    f"Operation: {operation} completed in {elapsed:.3f}s",
                    extra={'extra_fields': extra_fields}
                )


# Singleton performance logger
performance_logger = PerformanceLogger()
