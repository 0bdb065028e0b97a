"""
List Directory Tool — directory listing, optionally recursive.
"""

from __future__ import annotations
import os
from pathlib import Path

from .base import BaseTool
from ..core.models import ToolResult

DEFAULT_MAX_DEPTH = 3
MAX_ENTRIES = 500


def format_size(size: int) -> str:
    if size >= 1_048_576:
        return f"{size / 1_048_576:.1f} MB"
    if size >= 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size} B"


class ListDirectoryTool(BaseTool):
    name = "list_directory"
    description = (
        "List files and directories at the given path, with file sizes. "
        "Hidden entries at the top level are skipped."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The directory path to list",
            },
            "recursive": {
                "type": "boolean",
                "description": "Whether to list recursively (default: false)",
            },
            "max_depth": {
                "type": "integer",
                "description": "Maximum recursion depth (default: 3, only used when recursive is true)",
            },
        },
        "required": ["path"],
    }

    async def execute(self, path: str = ".", recursive: bool = False,
                      max_depth: int = DEFAULT_MAX_DEPTH, **kwargs) -> ToolResult:
        root = Path(path).expanduser()
        if not root.exists():
            return self._error(f"Directory not found: {path}")
        if not root.is_dir():
            return self._error(f"Not a directory: {path}")

        entries: list[str] = []
        try:
            self._collect(root, recursive, max_depth, 0, entries)
        except OSError as e:
            return self._error(f"Failed to read directory: {path}: {e}")

        if not entries:
            return self._success(f"{path} (empty directory)", entries=0)

        lines = [f"{path}  ({len(entries)} entries)"] + entries
        if len(entries) >= MAX_ENTRIES:
            lines.append(f"... (truncated at {MAX_ENTRIES} entries)")
        return self._success("\n".join(lines), entries=len(entries))

    def _collect(self, directory: Path, recursive: bool, max_depth: int,
                 depth: int, entries: list[str]) -> None:
        indent = "  " * depth
        for entry in sorted(os.scandir(directory), key=lambda e: e.name):
            if len(entries) >= MAX_ENTRIES:
                return
            # Skip hidden entries at the top level to reduce noise
            if depth == 0 and entry.name.startswith("."):
                continue

            if entry.is_dir():
                entries.append(f"{indent}{entry.name}/")
                if recursive and depth < max_depth:
                    self._collect(Path(entry.path), recursive, max_depth, depth + 1, entries)
            else:
                try:
                    size = entry.stat().st_size
                except OSError:
                    size = 0
                entries.append(f"{indent}  {entry.name} ({format_size(size)})")
