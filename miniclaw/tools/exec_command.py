"""
Exec Command Tool — run a shell command with a per-call timeout.
"""

from __future__ import annotations
import asyncio
import os

from .base import BaseTool
from ..core.models import ToolResult

DEFAULT_TIMEOUT = 30
MAX_TIMEOUT = 300
MAX_OUTPUT_CHARS = 100_000


def truncate_output(output: str, max_chars: int) -> str:
    """Keep the head and tail of oversized output."""
    if len(output) <= max_chars:
        return output
    half = max_chars // 2
    omitted = len(output) - 2 * half
    return f"{output[:half]}\n\n... ({omitted} chars omitted) ...\n\n{output[-half:]}"


class ExecCommandTool(BaseTool):
    name = "exec_command"
    description = (
        "Execute a shell command and return its output. "
        "Commands run with a timeout (default 30s, max 300s). "
        "A non-zero exit code is reported at the end of the output."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute",
            },
            "timeout": {
                "type": "integer",
                "description": "Timeout in seconds (default: 30, max: 300)",
            },
        },
        "required": ["command"],
    }

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT, workspace_dir: str = "."):
        self._default_timeout = default_timeout
        resolved = os.path.abspath(workspace_dir)
        self._cwd = resolved if os.path.isdir(resolved) else os.getcwd()

    async def execute(self, command: str, timeout: float = 0, **kwargs) -> ToolResult:
        timeout = min(timeout or self._default_timeout, MAX_TIMEOUT)

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
            )
        except OSError as e:
            return self._error(f"Failed to execute command: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.communicate()
            return self._error(f"Command timed out after {timeout}s: {command}")
        except asyncio.CancelledError:
            process.kill()
            # Reap the child even if the caller cancels again
            await asyncio.shield(process.wait())
            raise

        stdout_str = stdout.decode("utf-8", errors="replace")
        stderr_str = stderr.decode("utf-8", errors="replace")
        exit_code = process.returncode

        output = truncate_output(stdout_str, MAX_OUTPUT_CHARS) if stdout_str else ""
        if stderr_str:
            if output:
                output += "\n"
            output += "[stderr]\n" + truncate_output(stderr_str, MAX_OUTPUT_CHARS // 2)

        if not output:
            output = f"(no output, exit code: {exit_code})"
        elif exit_code != 0:
            output += f"\n[exit code: {exit_code}]"

        return self._success(output, exit_code=exit_code)
