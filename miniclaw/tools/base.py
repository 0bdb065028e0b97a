"""
Base tool class — the one capability every tool exposes to the agent:
a name, a description, a JSON schema for its arguments and ``execute``.
"""

from __future__ import annotations
from abc import ABC, abstractmethod

from ..core.models import ToolResult, ToolSchema


class BaseTool(ABC):
    """
    Abstract base class for all agent tools.

    One instance is shared by every session, so ``execute`` may run
    concurrently with itself.  Timeouts and size limits belong to the tool.
    The registry fills in ``ToolResult.tool_id`` after the call returns.
    """

    name: str = ""
    description: str = ""
    input_schema: dict = {}

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult:
        """
        Run with the model's JSON arguments as keyword arguments.

        Report failures either as ``self._error(...)`` or by raising
        ToolExecutionError; both reach the model as an error result.
        """

    def get_schema(self) -> ToolSchema:
        return ToolSchema(self.name, self.description, self.input_schema)

    def _success(self, output: str, **metadata) -> ToolResult:
        return ToolResult(tool_id="", success=True, output=output, metadata=metadata)

    def _error(self, error: str, **metadata) -> ToolResult:
        return ToolResult(tool_id="", success=False, output="", error=error, metadata=metadata)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
