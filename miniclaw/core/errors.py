"""
Error taxonomy for the agent runtime.

Every failure the loop can observe maps to one subclass of ``AgentError``.
Each carries a stable ``kind`` tag (used in ``ErrorEvent``) and an error code
in the same E1xxx–E5xxx families used across the project:

- E1xxx  provider  (rejected request, malformed payload)
- E2xxx  tool      (execution failure, unknown tool)
- E3xxx  agent     (iteration limit)
- E4xxx  config
- E5xxx  network

Only NetworkError, ProviderError, ParseError and IterationLimitExceeded end a
run early.  Tool errors are absorbed into the conversation.
"""

from __future__ import annotations

from typing import Optional


class AgentError(Exception):
    """Base class for every error the agent runtime reports."""

    kind: str = "AgentError"
    code: str = "E3000"
    fatal: bool = True

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "code": self.code, "message": self.message}


class NetworkError(AgentError):
    """Transport-level failure reaching the provider."""

    kind = "NetworkError"
    code = "E5001"


class ProviderError(AgentError):
    """The backend answered with a non-success response."""

    kind = "ProviderError"
    code = "E1001"

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["status_code"] = self.status_code
        return d


class ParseError(AgentError):
    """Malformed incremental payload or unparsable tool-call arguments."""

    kind = "ParseError"
    code = "E1007"

    def __init__(self, message: str = "", tool_index: Optional[int] = None):
        super().__init__(message)
        self.tool_index = tool_index

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["tool_index"] = self.tool_index
        return d


class ToolExecutionError(AgentError):
    """A tool reported its own failure.  Never ends the run."""

    kind = "ToolExecutionError"
    code = "E2001"
    fatal = False


class UnknownToolError(ToolExecutionError):
    """The requested tool name is not registered.  Never ends the run."""

    kind = "UnknownTool"
    code = "E2003"

    def __init__(self, name: str, available: Optional[list[str]] = None):
        available = available or []
        super().__init__(f"Unknown tool: {name}. Available: {available}")
        self.name = name
        self.available = available


class IterationLimitExceeded(AgentError):
    """The loop hit its configured round cap."""

    kind = "IterationLimitExceeded"
    code = "E3001"

    def __init__(self, max_iterations: int):
        super().__init__(
            f"Agent stopped: reached maximum of {max_iterations} iterations"
        )
        self.max_iterations = max_iterations


class ConfigError(AgentError):
    """Invalid or incomplete configuration."""

    kind = "ConfigError"
    code = "E4001"
