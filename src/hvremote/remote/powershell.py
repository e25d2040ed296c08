# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - PowerShell Script Builder
# Variables prelude, elevation and long-script staging for WinRM
# ═══════════════════════════════════════════════════════════════

import base64
import uuid
from typing import List, NamedTuple, Optional

# powershell.exe -EncodedCommand must fit the cmd.exe line limit (8191)
MAX_ENCODED_COMMAND_LENGTH = 8000

_UTF8_BOM = b"\xef\xbb\xbf"


def encode_command(script: str) -> str:
    """Base64 of the UTF-16LE script, as accepted by ``-EncodedCommand``."""
    return base64.b64encode(script.encode("utf_16_le")).decode("ascii")


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_script(
    script: str,
    vars: Optional[str] = None,
    elevated_user: Optional[str] = None,
    elevated_password: Optional[str] = None,
) -> str:
    """
    Build the PowerShell text actually sent to the host.

    The variables prelude is prepended first. With an elevated user,
    the result is base64-wrapped and run through ``Invoke-Command``
    against localhost under that identity; a failing elevated script
    exits with code 1.

    Args:
        script: Rendered script text
        vars: Prelude prepended as ``"{vars}; {script}"``
        elevated_user: Identity to run as
        elevated_password: Password of that identity

    Returns:
        PowerShell script text
    """
    body = f"{vars}; {script}" if vars else script
    if not elevated_user:
        return body

    encoded = encode_command(body)
    return "\n".join([
        "$ErrorActionPreference = 'Stop'",
        f"$password = ConvertTo-SecureString {_quote(elevated_password or '')} -AsPlainText -Force",
        f"$credential = New-Object System.Management.Automation.PSCredential({_quote(elevated_user)}, $password)",
        "Invoke-Command -ComputerName localhost -Credential $credential "
        f"-ArgumentList '{encoded}' -ScriptBlock {{",
        "    param($encoded)",
        "    $text = [System.Text.Encoding]::Unicode.GetString([System.Convert]::FromBase64String($encoded))",
        "    & ([ScriptBlock]::Create($text))",
        "}",
        "if (-not $?) { exit 1 }",
    ])


def needs_staging(script: str, limit: int = MAX_ENCODED_COMMAND_LENGTH) -> bool:
    """True when the encoded script would exceed the command line limit."""
    return len(encode_command(script)) > limit


class StagedScript(NamedTuple):
    """Commands that stage a long script to a temp file, run it and remove it."""
    file_name: str
    write_commands: List[str]
    run_command: str
    cleanup_command: str


def stage_script(script: str, chunk_size: int = 1500, file_name: Optional[str] = None) -> StagedScript:
    """
    Split a long script into temp-file writes plus a ``-File`` run.

    The file is written as UTF-8 with a BOM into ``$env:TEMP``. The
    first chunk creates/truncates the file, later chunks append. The
    run command deletes the file after the script finishes and exits
    with the script's exit code.

    Args:
        script: Full PowerShell script
        chunk_size: Raw bytes per write command
        file_name: Temp file name (random when omitted)
    """
    file_name = file_name or f"hvremote-{uuid.uuid4().hex}.ps1"
    path_expr = f"$path = Join-Path $env:TEMP {_quote(file_name)}"
    data = _UTF8_BOM + script.encode("utf-8")

    write_commands = []
    for index, offset in enumerate(range(0, len(data), chunk_size)):
        encoded = base64.b64encode(data[offset:offset + chunk_size]).decode("ascii")
        mode = "Create" if index == 0 else "Append"
        write_commands.append(
            f"{path_expr}; $bytes = [System.Convert]::FromBase64String('{encoded}'); "
            f"$stream = [System.IO.File]::Open($path, '{mode}'); "
            "try { $stream.Write($bytes, 0, $bytes.Length) } finally { $stream.Close() }"
        )

    run_command = (
        f"{path_expr}; "
        "& powershell -NoProfile -NonInteractive -ExecutionPolicy Bypass -File $path; "
        "$code = $LASTEXITCODE; "
        "Remove-Item -Path $path -Force -ErrorAction SilentlyContinue; "
        "exit $code"
    )
    cleanup_command = f"{path_expr}; Remove-Item -Path $path -Force -ErrorAction SilentlyContinue"

    return StagedScript(file_name, write_commands, run_command, cleanup_command)
