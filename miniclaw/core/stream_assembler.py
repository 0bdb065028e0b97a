"""
Stream Assembler — rebuilds a complete response from incremental chunks.

Text fragments are concatenated in arrival order.  Tool-call fragments are
grouped by index into per-slot buffers; argument buffers are parsed as JSON
only once the stream reports ``StreamDone``, never speculatively.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable, Optional

from .errors import ParseError, ProviderError
from .models import AgentResponse, TokenUsage, ToolCall
from .stream_chunks import (
    StreamChunk, StreamDone, StreamError, TextDelta, ToolCallDelta, UsageDelta,
)

logger = logging.getLogger(__name__)


@dataclass
class _ToolCallSlot:
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


class StreamAssembler:
    """
    Accumulates one provider response.

    Usage::

        assembler = StreamAssembler()
        async for chunk in provider.stream_message(request):
            assembler.feed(chunk)
        response = assembler.finish()

    ``feed`` raises ``ProviderError`` on a ``StreamError`` chunk and
    ``ParseError`` on protocol violations; ``finish`` raises ``ParseError``
    if the stream never completed or a tool call cannot be built.
    """

    def __init__(self):
        self._text_parts: list[str] = []
        self._slots: dict[int, _ToolCallSlot] = {}
        self._input_tokens: Optional[int] = None
        self._output_tokens: Optional[int] = None
        self._done = False

    @property
    def is_done(self) -> bool:
        return self._done

    @property
    def text(self) -> str:
        """Text assembled so far."""
        return "".join(self._text_parts)

    def feed(self, chunk: StreamChunk) -> None:
        if self._done:
            raise ParseError(f"Chunk received after stream completion: {chunk!r}")

        if isinstance(chunk, TextDelta):
            self._text_parts.append(chunk.text)
        elif isinstance(chunk, ToolCallDelta):
            self._feed_tool_delta(chunk)
        elif isinstance(chunk, UsageDelta):
            if chunk.input_tokens is not None:
                self._input_tokens = chunk.input_tokens
            if chunk.output_tokens is not None:
                self._output_tokens = chunk.output_tokens
        elif isinstance(chunk, StreamDone):
            self._done = True
        elif isinstance(chunk, StreamError):
            raise ProviderError(chunk.message)
        else:
            raise ParseError(f"Unknown stream chunk: {chunk!r}")

    def _feed_tool_delta(self, delta: ToolCallDelta) -> None:
        if delta.index < 0:
            raise ParseError(f"Negative tool call index: {delta.index}", tool_index=delta.index)

        slot = self._slots.setdefault(delta.index, _ToolCallSlot())

        if delta.id:
            if slot.id is None:
                slot.id = delta.id
            elif slot.id != delta.id:
                raise ParseError(
                    f"Tool call index {delta.index} received a second id "
                    f"({delta.id!r} after {slot.id!r})",
                    tool_index=delta.index,
                )

        if delta.name:
            if slot.name is None:
                slot.name = delta.name
            elif slot.name != delta.name:
                raise ParseError(
                    f"Tool call index {delta.index} received a second name "
                    f"({delta.name!r} after {slot.name!r})",
                    tool_index=delta.index,
                )

        if delta.arguments_fragment:
            slot.arguments += delta.arguments_fragment

    def finish(self) -> AgentResponse:
        """Parse the accumulated tool calls and return the completed response."""
        if not self._done:
            raise ParseError("Stream ended before completion")

        tool_calls: list[ToolCall] = []
        seen_ids: set[str] = set()
        for index in sorted(self._slots):
            slot = self._slots[index]
            if not slot.name:
                raise ParseError(f"Tool call index {index} has no name", tool_index=index)

            raw = slot.arguments.strip()
            try:
                arguments = json.loads(raw) if raw else {}
            except json.JSONDecodeError as e:
                raise ParseError(
                    f"Invalid JSON arguments for tool '{slot.name}' (index {index}): {e}",
                    tool_index=index,
                ) from e

            call_id = slot.id or ToolCall.generate_id()
            if call_id in seen_ids:
                raise ParseError(f"Duplicate tool call id: {call_id}", tool_index=index)
            seen_ids.add(call_id)

            tool_calls.append(ToolCall(id=call_id, name=slot.name, arguments=arguments))

        usage = None
        if self._input_tokens is not None or self._output_tokens is not None:
            usage = TokenUsage(
                input_tokens=self._input_tokens or 0,
                output_tokens=self._output_tokens or 0,
            )

        return AgentResponse(text=self.text, tool_calls=tool_calls, usage=usage)


def assemble(chunks: Iterable[StreamChunk]) -> AgentResponse:
    """Assemble a finite, already-materialized chunk sequence."""
    assembler = StreamAssembler()
    for chunk in chunks:
        assembler.feed(chunk)
    return assembler.finish()


async def assemble_stream(
    chunks: AsyncIterator[StreamChunk],
    on_chunk: Optional[Callable[[StreamChunk], None]] = None,
) -> AgentResponse:
    """
    Assemble an async chunk stream, calling ``on_chunk`` for each chunk as it
    arrives.  A chunk the assembler rejects raises ParseError before
    ``on_chunk`` sees it.
    """
    assembler = StreamAssembler()
    async for chunk in chunks:
        assembler.feed(chunk)
        if on_chunk is not None:
            on_chunk(chunk)
    return assembler.finish()
