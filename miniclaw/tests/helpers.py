"""
Shared test doubles: a scripted provider and recording tools.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from miniclaw.core.errors import ToolExecutionError
from miniclaw.core.models import AgentResponse, ChatRequest, TokenUsage, ToolCall
from miniclaw.core.providers.base import BaseLLMProvider
from miniclaw.core.stream_assembler import assemble
from miniclaw.core.stream_chunks import StreamDone, TextDelta, response_to_chunks
from miniclaw.tools.base import BaseTool


def text_response(text: str, input_tokens: int = 0, output_tokens: int = 0) -> AgentResponse:
    usage = TokenUsage(input_tokens, output_tokens) if (input_tokens or output_tokens) else None
    return AgentResponse(text=text, usage=usage)


def tool_response(*calls: tuple, text: str = "") -> AgentResponse:
    """``tool_response(("1", "list_directory", {"path": "."}), ...)``"""
    return AgentResponse(
        text=text,
        tool_calls=[ToolCall(id=cid, name=name, arguments=args) for cid, name, args in calls],
    )


class ScriptedProvider(BaseLLMProvider):
    """
    Replays a script, one entry per provider call.

    An entry is an AgentResponse, a list of StreamChunks (streamed verbatim),
    or an exception instance (raised).  ``before_call(n)`` runs before the
    n-th call (0-based) is answered.
    """

    def __init__(self, script=None, before_call: Optional[Callable[[int], None]] = None,
                 chunk_delay: float = 0.0):
        super().__init__(model="mock-model", api_key="test-key")
        self.script = list(script or [])
        self.before_call = before_call
        self.chunk_delay = chunk_delay
        self.requests: list[ChatRequest] = []

    def _next(self, request: ChatRequest):
        index = len(self.requests)
        self.requests.append(request)
        if self.before_call is not None:
            self.before_call(index)
        if index < len(self.script):
            item = self.script[index]
        else:
            item = AgentResponse(text="No more responses configured.")
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def send_message(self, request: ChatRequest) -> AgentResponse:
        item = self._next(request)
        if isinstance(item, AgentResponse):
            return item
        return assemble(item)

    async def stream_message(self, request: ChatRequest):
        item = self._next(request)
        chunks = response_to_chunks(item) if isinstance(item, AgentResponse) else item
        for chunk in chunks:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk


class AlwaysToolProvider(ScriptedProvider):
    """Every call answers with one fresh tool call."""

    async def stream_message(self, request: ChatRequest):
        self.requests.append(request)
        n = len(self.requests)
        for chunk in response_to_chunks(tool_response((f"call-{n}", "echo", {"n": n}))):
            yield chunk


class RecordingTool(BaseTool):
    """Succeeds with ``ok:<name>`` and records every call's arguments."""

    input_schema = {
        "type": "object",
        "properties": {"path": {"type": "string"}},
    }

    def __init__(self, name: str = "echo", on_execute: Optional[Callable[[dict], None]] = None,
                 delay: float = 0.0, output: Optional[str] = None):
        self.name = name
        self.description = f"Test tool {name}"
        self.calls: list[dict] = []
        self.on_execute = on_execute
        self.delay = delay
        self.output = output

    async def execute(self, **kwargs):
        self.calls.append(kwargs)
        if self.on_execute is not None:
            self.on_execute(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._success(self.output if self.output is not None else f"ok:{self.name}")


class FailingTool(BaseTool):
    name = "failing_tool"
    description = "A tool that always reports failure"
    input_schema = {"type": "object", "properties": {}}

    async def execute(self, **kwargs):
        raise ToolExecutionError("disk on fire")


class CrashingTool(BaseTool):
    name = "crashing_tool"
    description = "A tool with a bug"
    input_schema = {"type": "object", "properties": {}}

    async def execute(self, **kwargs):
        raise RuntimeError("unexpected crash")


def stream_of(*texts: str) -> list:
    return [TextDelta(t) for t in texts] + [StreamDone()]
