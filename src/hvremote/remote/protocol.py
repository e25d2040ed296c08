# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Command Execution Protocol
# Render a script, run it, check the exit code, decode JSON results
# ═══════════════════════════════════════════════════════════════

import logging
from functools import lru_cache
from typing import Any, Type, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from ..core.exceptions import ResultDecodeError, ScriptExecutionError
from ..core.logging import performance_logger
from .base import BaseTransport
from .models import ExecutionResult, RenderedScript
from .renderer import ScriptTemplate

logger = logging.getLogger("hvremote.remote.protocol")

T = TypeVar("T")

Template = Union[ScriptTemplate, str]


@lru_cache(maxsize=256)
def _adapter(result_type: Any) -> TypeAdapter:
    return TypeAdapter(result_type)


class ScriptRunner:
    """
    Script Runner - the two calling conventions on top of a transport.

    Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │  caller: template + args (+ result type)                    │
    └──────────────────────────┬──────────────────────────────────┘
                               │ render
                               ▼
    ┌─────────────────────────────────────────────────────────────┐
    │  ScriptRunner                                               │
    │  1. Render template (TemplateError)                         │
    │  2. Run through the transport (TransportError)              │
    │  3. Require exit code 0 (ScriptExecutionError)              │
    │  4. Decode stdout as JSON (ResultDecodeError)               │
    └──────────────────────────┬──────────────────────────────────┘
                               │ stdout / stderr / exit code
                               ▼
    ┌─────────────────────────────────────────────────────────────┐
    │  Transport (WinRM pool, SSH, local)                         │
    └─────────────────────────────────────────────────────────────┘

    Usage:
        runner = ScriptRunner(transport)
        vm = await runner.run_script_with_result(GET_VM, {"Name": "web01"}, VmInfo)
    """

    def __init__(self, transport: BaseTransport):
        self.transport = transport

    def _render(self, template: Template, args: Any) -> RenderedScript:
        if not isinstance(template, ScriptTemplate):
            template = ScriptTemplate("inline", template)
        return template.render(args)

    async def run_fire_and_forget(self, template: Template, args: Any = None) -> None:
        """
        Run a script for its side effects.

        Args:
            template: Script template or raw template source
            args: Template arguments

        Raises:
            TemplateError: Rendering failed
            TransportError: The script could not be run
            ScriptExecutionError: The script exited non-zero
        """
        script = self._render(template, args)

        with self.transport.operation_context():
            logger.debug(f"Running fire and forget script {script.name}:\n{script.text}")

            with performance_logger.measure(
                "run_fire_and_forget",
                extra={"template": script.name, "host": self.transport.config.host}
            ):
                result = await self.transport.run_fire_and_forget(script)
                self._require_success(result)

    async def run_script_with_result(self, template: Template, args: Any, result_type: Type[T]) -> T:
        """
        Run a script and decode its stdout as JSON.

        Args:
            template: Script template or raw template source
            args: Template arguments
            result_type: Any type pydantic can validate (model, dataclass, dict, ...)

        Returns:
            Decoded result

        Raises:
            TemplateError: Rendering failed
            TransportError: The script could not be run
            ScriptExecutionError: The script exited non-zero (carries stdout too)
            ResultDecodeError: stdout is not a JSON value of ``result_type``
        """
        script = self._render(template, args)

        with self.transport.operation_context():
            logger.debug(f"Running script with result {script.name}:\n{script.text}")

            with performance_logger.measure(
                "run_script_with_result",
                extra={"template": script.name, "host": self.transport.config.host}
            ):
                result = await self.transport.run_with_result(script)
                stdout = result.stdout.strip()
                self._require_success(result, stdout=stdout)

                try:
                    return _adapter(result_type).validate_json(stdout, strict=True)
                except ValidationError as e:
                    raise ResultDecodeError(
                        exit_code=result.exit_code,
                        stdout=stdout,
                        stderr=result.stderr,
                        decode_error=e,
                        command=result.command,
                        result_type=getattr(result_type, "__name__", str(result_type)),
                    ) from e

    @staticmethod
    def _require_success(result: ExecutionResult, stdout: str = "") -> None:
        if result.transport_error is not None:
            result.raise_for_status()
        if result.exit_code != 0:
            raise ScriptExecutionError(
                exit_code=result.exit_code,
                stderr=result.stderr,
                command=result.command,
                stdout=stdout,
            )
