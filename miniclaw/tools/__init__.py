"""
Built-in tools and registration from configuration.
"""

from __future__ import annotations
import logging

from .base import BaseTool
from .edit import EditTool
from .exec_command import ExecCommandTool
from .list_directory import ListDirectoryTool
from .read_file import ReadFileTool
from .write_file import WriteFileTool

logger = logging.getLogger(__name__)

__all__ = [
    "BaseTool",
    "EditTool",
    "ExecCommandTool",
    "ListDirectoryTool",
    "ReadFileTool",
    "WriteFileTool",
    "BUILTIN_TOOLS",
    "register_tools",
]

BUILTIN_TOOLS = ("read_file", "write_file", "edit", "list_directory", "exec_command")


def register_tools(registry, config) -> None:
    """Register the tools listed under ``tools.enabled``."""
    enabled = config.get("tools.enabled", list(BUILTIN_TOOLS))
    factories = {
        "read_file": ReadFileTool,
        "write_file": WriteFileTool,
        "edit": EditTool,
        "list_directory": ListDirectoryTool,
        "exec_command": lambda: ExecCommandTool(
            default_timeout=config.get("tools.exec_timeout", 30),
        ),
    }

    for name in enabled:
        factory = factories.get(name)
        if factory is None:
            logger.warning(f"Unknown tool in tools.enabled: {name!r} (skipped)")
            continue
        registry.register(factory())

    logger.info(f"Registered {len(registry)} tools: {registry.tool_names}")
