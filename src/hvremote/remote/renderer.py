# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Script Renderer
# Jinja2 templates for remote scripts
# ═══════════════════════════════════════════════════════════════
"""
Script templates are plain Jinja2 sources with ``{{Field}}`` placeholders.

Substitution is literal: values are inserted as ``str(value)`` with no
escaping. Callers that interpolate untrusted values into a shell or
PowerShell script must quote them, e.g. with the ``ps_quote`` / ``sh_quote``
filters::

    Remove-Item -Path {{ Path | ps_quote }} -Force
"""

import dataclasses
import logging
import shlex
from typing import Any, Dict, Mapping, Union

from jinja2 import Environment, StrictUndefined, Template
from jinja2 import TemplateError as JinjaTemplateError
from pydantic import BaseModel

from ..core.exceptions import TemplateError
from .models import RenderedScript

logger = logging.getLogger("hvremote.remote.renderer")


def ps_quote(value: Any) -> str:
    """Quote a value as a PowerShell single-quoted string."""
    return "'" + str(value).replace("'", "''") + "'"


def sh_quote(value: Any) -> str:
    """Quote a value for a POSIX shell."""
    return shlex.quote(str(value))


def _build_environment() -> Environment:
    # Only {{Field}} is template syntax; {% and {# stay literal shell text (${#VAR}).
    env = Environment(
        block_start_string="<%hvremote",
        block_end_string="%>",
        comment_start_string="<#hvremote",
        comment_end_string="#>",
        undefined=StrictUndefined,
        autoescape=False,  # scripts are not HTML
        keep_trailing_newline=True,
    )
    env.filters["ps_quote"] = ps_quote
    env.filters["sh_quote"] = sh_quote
    return env


_environment = _build_environment()


def template_args(args: Any) -> Dict[str, Any]:
    """
    Flatten caller arguments into a template context.

    Accepts a mapping, a pydantic model, a dataclass instance or any
    object with public attributes. ``None`` yields an empty context.
    """
    if args is None:
        return {}
    if isinstance(args, Mapping):
        return dict(args)
    if isinstance(args, BaseModel):
        return args.model_dump()
    if dataclasses.is_dataclass(args) and not isinstance(args, type):
        return dataclasses.asdict(args)
    if hasattr(args, "__dict__"):
        return {k: v for k, v in vars(args).items() if not k.startswith("_")}
    raise TemplateError(
        f"unsupported template argument type {type(args).__name__}",
        template_name=None,
    )


class ScriptTemplate:
    """
    A named, compiled script template.

    Compilation happens once in the constructor so that malformed
    templates fail at definition time rather than on first use.

    Usage:
        tmpl = ScriptTemplate("vm_state", "Get-VM -Name '{{Name}}' | ConvertTo-Json")
        script = tmpl.render({"Name": "web01"})
    """

    def __init__(self, name: str, source: str):
        self.name = name
        self.source = source
        self._template: Template = self._compile(name, source)

    @staticmethod
    def _compile(name: str, source: str) -> Template:
        try:
            return _environment.from_string(source)
        except JinjaTemplateError as e:
            raise TemplateError(str(e), template_name=name, original_error=e) from e

    def render(self, args: Any = None) -> RenderedScript:
        """
        Render the template with the given arguments.

        Args:
            args: Mapping, pydantic model, dataclass or plain object

        Returns:
            RenderedScript holding the final text

        Raises:
            TemplateError: A referenced field is missing or rendering failed
        """
        context = template_args(args)
        try:
            text = self._template.render(**context)
        except JinjaTemplateError as e:
            raise TemplateError(
                str(e),
                template_name=self.name,
                details={"fields": sorted(context)},
                original_error=e
            ) from e
        return RenderedScript(name=self.name, text=text)

    def __repr__(self) -> str:
        return f"<ScriptTemplate(name={self.name!r})>"


def render(template: Union[ScriptTemplate, str], args: Any = None) -> str:
    """
    Render a template or raw template source into script text.

    Raw sources are compiled on every call; use ``ScriptTemplate`` for
    scripts rendered repeatedly.
    """
    if not isinstance(template, ScriptTemplate):
        template = ScriptTemplate("inline", template)
    return template.render(args).text
