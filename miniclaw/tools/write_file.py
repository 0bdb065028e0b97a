"""
Write File Tool — create or overwrite a file, creating parent directories.
"""

from __future__ import annotations
from pathlib import Path

from .base import BaseTool
from ..core.models import ToolResult


class WriteFileTool(BaseTool):
    name = "write_file"
    description = (
        "Write content to a file. Creates the file (and any missing parent "
        "directories) if it doesn't exist, or overwrites it if it does."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the file to write",
            },
            "content": {
                "type": "string",
                "description": "The content to write to the file",
            },
        },
        "required": ["path", "content"],
    }

    async def execute(self, path: str, content: str, **kwargs) -> ToolResult:
        file_path = Path(path).expanduser()
        if file_path.is_dir():
            return self._error(f"Cannot write to a directory: {path}")

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            return self._error(f"Failed to write file: {path}: {e}")

        size = len(content.encode("utf-8"))
        return self._success(f"Successfully wrote {size} bytes to {path}", bytes_written=size)
