"""
Read File Tool — return a text file's contents, with optional line window.
"""

from __future__ import annotations
from pathlib import Path

from .base import BaseTool
from ..core.models import ToolResult

MAX_CHARS = 100_000


class ReadFileTool(BaseTool):
    name = "read_file"
    description = (
        "Read the contents of a file at the given path. "
        "Use offset and limit to read part of a large file."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the file to read",
            },
            "offset": {
                "type": "integer",
                "description": "Line number to start reading from (1-based)",
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of lines to read",
            },
        },
        "required": ["path"],
    }

    def __init__(self, max_chars: int = MAX_CHARS):
        self._max_chars = max_chars

    async def execute(self, path: str, offset: int = 0, limit: int = 0,
                      **kwargs) -> ToolResult:
        file_path = Path(path).expanduser()

        if not file_path.exists():
            return self._error(f"File not found: {path}")
        if file_path.is_dir():
            return self._error(f"Cannot read directory: {path}. Use list_directory instead.")

        try:
            with open(file_path, "r", encoding="utf-8", errors="replace") as f:
                lines = f.readlines()
        except OSError as e:
            return self._error(f"Failed to read file: {path}: {e}")

        total_lines = len(lines)
        if offset > 0 or limit > 0:
            start = max(0, offset - 1)
            end = start + limit if limit > 0 else total_lines
            lines = lines[start:end]

        content = "".join(lines)
        truncated = len(content) > self._max_chars
        if truncated:
            content = content[:self._max_chars] + f"\n[Truncated: file has {total_lines} lines]"

        return self._success(content, total_lines=total_lines, truncated=truncated)
