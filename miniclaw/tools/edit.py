"""
Edit Tool — exact-text replacement inside an existing file.
"""

from __future__ import annotations
from pathlib import Path

from .base import BaseTool
from ..core.models import ToolResult

SEARCH_PREVIEW_CHARS = 80


class EditTool(BaseTool):
    name = "edit"
    description = (
        "Make a precise text replacement in a file. Provide the exact text to "
        "find (old_text) and its replacement (new_text); old_text must match "
        "exactly, including whitespace and indentation. Only the first "
        "occurrence is replaced unless replace_all is true."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the file to edit",
            },
            "old_text": {
                "type": "string",
                "description": "The exact text to find in the file",
            },
            "new_text": {
                "type": "string",
                "description": "The text to replace old_text with",
            },
            "replace_all": {
                "type": "boolean",
                "description": "Replace every occurrence (default: false)",
            },
        },
        "required": ["path", "old_text", "new_text"],
    }

    async def execute(self, path: str, old_text: str, new_text: str,
                      replace_all: bool = False, **kwargs) -> ToolResult:
        if not old_text:
            return self._error("old_text must not be empty")

        file_path = Path(path).expanduser()
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return self._error(f"Failed to read file: {path}: {e}")

        found = content.count(old_text)
        if not found:
            searched = old_text
            if len(searched) > SEARCH_PREVIEW_CHARS:
                searched = searched[:SEARCH_PREVIEW_CHARS] + "..."
            return self._error(
                f"old_text not found in {path}. Make sure it matches exactly "
                f"(including whitespace and indentation).\nSearched for: {searched!r}"
            )

        if replace_all:
            updated, replaced = content.replace(old_text, new_text), found
        else:
            updated, replaced = content.replace(old_text, new_text, 1), 1

        try:
            file_path.write_text(updated, encoding="utf-8")
        except OSError as e:
            return self._error(f"Failed to write file: {path}: {e}")

        return self._success(
            f"Successfully replaced {replaced} occurrence(s) in {path}", replacements=replaced,
        )
