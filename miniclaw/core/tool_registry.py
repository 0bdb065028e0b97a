"""
Tool Registry — the tool router shared by every session.
Handles registration, name resolution, schema retrieval, and execution.
"""

from __future__ import annotations
import logging
import time

from .errors import ToolExecutionError, UnknownToolError
from .models import ToolCall, ToolResult, ToolSchema

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Name-keyed table of tools, built at startup and read-only afterwards.

    No locking: sessions share one registry and call tools concurrently.
    """

    def __init__(self):
        self._tools: dict = {}  # name -> BaseTool instance

    def register(self, tool) -> None:
        """Register a tool instance."""
        if tool.name in self._tools:
            logger.warning(f"Replacing already registered tool: {tool.name}")
        self._tools[tool.name] = tool

    def resolve(self, name: str):
        """Get a tool by name or raise UnknownToolError."""
        if name not in self._tools:
            raise UnknownToolError(name, list(self._tools.keys()))
        return self._tools[name]

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def definitions(self) -> list[ToolSchema]:
        """Return all tool schemas for the LLM request."""
        return [tool.get_schema() for tool in self._tools.values()]

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, call: ToolCall) -> ToolResult:
        """
        Execute a single tool call.

        Never raises for tool-level problems: unknown names, non-object
        arguments, reported failures and exceptions escaping the tool all come
        back as a failed ToolResult the model can react to.
        """
        t0 = time.time()
        try:
            tool = self.resolve(call.name)
            if not isinstance(call.arguments, dict):
                raise ToolExecutionError(
                    f"Arguments for tool '{call.name}' must be a JSON object, "
                    f"got {type(call.arguments).__name__}"
                )
            result = await tool.execute(**call.arguments)
            result.tool_id = call.id
        except ToolExecutionError as e:
            result = ToolResult(tool_id=call.id, success=False, output="", error=str(e))
        except TypeError as e:
            # Missing/unexpected keyword arguments from the model
            result = ToolResult(
                tool_id=call.id,
                success=False,
                output="",
                error=f"Invalid arguments for tool '{call.name}': {e}",
            )
        except Exception as e:
            logger.exception(f"Tool '{call.name}' raised")
            result = ToolResult(
                tool_id=call.id,
                success=False,
                output="",
                error=f"Tool execution error: {e}",
            )

        duration_ms = (time.time() - t0) * 1000
        result.metadata.setdefault("duration_ms", duration_ms)
        if not result.success:
            logger.warning(f"Tool '{call.name}' failed after {duration_ms:.0f}ms: {result.error}")
        else:
            logger.debug(f"Tool '{call.name}' succeeded in {duration_ms:.0f}ms")
        return result
