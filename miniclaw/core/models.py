"""
Universal data models for the agent runtime.
These are provider-agnostic — each provider converts to/from its native format.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Literal, Optional
import time
import uuid

Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class ToolSchema:
    """Universal tool definition for LLM consumption."""
    name: str
    description: str
    input_schema: dict  # JSON Schema format

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass
class ToolCall:
    """A single tool invocation requested by the LLM."""
    id: str
    name: str
    arguments: Any = field(default_factory=dict)  # any JSON value

    @staticmethod
    def generate_id() -> str:
        return f"call_{uuid.uuid4().hex[:12]}"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            arguments=data.get("arguments", {}),
        )


@dataclass
class ToolResult:
    """Result from executing a tool."""
    tool_id: str
    success: bool
    output: str
    error: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @property
    def content(self) -> str:
        """Text fed back to the model; failures are clearly marked."""
        if self.success:
            return self.output
        return f"Error: {self.error or self.output or 'tool failed'}"


@dataclass
class Message:
    """A single message in the conversation history."""
    role: Role
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[list[ToolCall]] = None) -> "Message":
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.tool_calls:
            d["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            d["tool_call_id"] = self.tool_call_id
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            tool_calls=[ToolCall.from_dict(tc) for tc in data.get("tool_calls", [])],
            tool_call_id=data.get("tool_call_id"),
            timestamp=data.get("timestamp", 0.0),
        )


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ChatRequest:
    """Everything a provider needs for one round."""
    messages: list[Message]
    tools: list[ToolSchema]
    model: str
    max_tokens: int = 4096
    stream: bool = True


@dataclass
class AgentResponse:
    """A completed response from the LLM — text plus zero or more tool calls."""
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Optional[TokenUsage] = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0
