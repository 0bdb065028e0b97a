"""
Stream Events — typed progress events the agent loop emits to consumers.

This variant set is the whole upward surface: the CLI, loggers, stats and
tests all observe a session through these events only.  Consumers ignore
variants they do not know; ``event_from_dict`` returns ``None`` for them.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Union

logger = logging.getLogger(__name__)


# ── Event types ──────────────────────────────────────────────────

@dataclass
class StreamDelta:
    """A chunk of streamed assistant text."""
    text: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"type": "StreamDelta", "text": self.text, "timestamp": self.timestamp}


@dataclass
class ToolStart:
    """Signals that a tool is about to execute."""
    id: str
    name: str
    args_preview: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": "ToolStart",
            "id": self.id,
            "name": self.name,
            "args_preview": self.args_preview,
            "timestamp": self.timestamp,
        }


@dataclass
class ToolConfirm:
    """A risky tool call is waiting for the user's approval."""
    id: str
    name: str
    description: str
    risk: str = "dangerous"
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": "ToolConfirm",
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "risk": self.risk,
            "timestamp": self.timestamp,
        }


@dataclass
class ToolEnd:
    """Signals that a tool has finished executing."""
    id: str
    name: str
    result_preview: str
    success: bool
    duration_ms: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": "ToolEnd",
            "id": self.id,
            "name": self.name,
            "result_preview": self.result_preview,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
        }


@dataclass
class UsageUpdate:
    """Token usage of one completed provider request."""
    input_tokens: int = 0
    output_tokens: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": "UsageUpdate",
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "timestamp": self.timestamp,
        }


@dataclass
class Done:
    """The run finished with a final answer."""
    final_text: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"type": "Done", "final_text": self.final_text, "timestamp": self.timestamp}


@dataclass
class Cancelled:
    """The run stopped at a cancellation checkpoint."""
    reason: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"type": "Cancelled", "reason": self.reason, "timestamp": self.timestamp}


@dataclass
class ErrorEvent:
    """The run failed.  ``kind`` is the error class tag (e.g. ``NetworkError``)."""
    message: str
    kind: str = "AgentError"
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": "Error",
            "message": self.message,
            "kind": self.kind,
            "timestamp": self.timestamp,
        }


# ── Union type ───────────────────────────────────────────────────

AgentEvent = Union[
    StreamDelta, ToolStart, ToolConfirm, ToolEnd, UsageUpdate, Done, Cancelled, ErrorEvent,
]

TERMINAL_EVENTS = (Done, Cancelled, ErrorEvent)


# ── Serialization helpers ────────────────────────────────────────

def event_to_dict(event: AgentEvent) -> dict:
    """Serialize an AgentEvent to a JSON-compatible dict."""
    return event.to_dict()


def event_from_dict(data: dict) -> Optional[AgentEvent]:
    """
    Deserialize a dict to an AgentEvent.

    Returns None for an unknown "type" so newer producers can add variants
    without breaking older consumers.
    """
    event_type = data.get("type", "")
    ts = data.get("timestamp", 0.0)

    if event_type == "StreamDelta":
        return StreamDelta(text=data.get("text", ""), timestamp=ts)

    elif event_type == "ToolStart":
        return ToolStart(
            id=data.get("id", ""),
            name=data.get("name", ""),
            args_preview=data.get("args_preview", ""),
            timestamp=ts,
        )

    elif event_type == "ToolConfirm":
        return ToolConfirm(
            id=data.get("id", ""),
            name=data.get("name", ""),
            description=data.get("description", ""),
            risk=data.get("risk", "dangerous"),
            timestamp=ts,
        )

    elif event_type == "ToolEnd":
        return ToolEnd(
            id=data.get("id", ""),
            name=data.get("name", ""),
            result_preview=data.get("result_preview", ""),
            success=data.get("success", False),
            duration_ms=data.get("duration_ms", 0.0),
            timestamp=ts,
        )

    elif event_type == "UsageUpdate":
        return UsageUpdate(
            input_tokens=data.get("input_tokens", 0),
            output_tokens=data.get("output_tokens", 0),
            timestamp=ts,
        )

    elif event_type == "Done":
        return Done(final_text=data.get("final_text", ""), timestamp=ts)

    elif event_type == "Cancelled":
        return Cancelled(reason=data.get("reason", ""), timestamp=ts)

    elif event_type == "Error":
        return ErrorEvent(
            message=data.get("message", ""),
            kind=data.get("kind", "AgentError"),
            timestamp=ts,
        )

    logger.debug(f"Ignoring unknown event type: {event_type!r}")
    return None


def is_terminal(event: AgentEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


def preview(text: str, limit: int = 200) -> str:
    """Single-line, length-capped preview of a tool argument or result."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: max(limit - 3, 0)] + "..."
