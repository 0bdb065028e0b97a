"""
Stream Chunks — the incremental units a provider yields for one response.

A provider stream is a finite, ordered sequence of these, terminated by
``StreamDone`` or ``StreamError``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from .models import AgentResponse


@dataclass(frozen=True)
class TextDelta:
    """A fragment of assistant text."""
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """
    A fragment of one tool call.

    ``index`` is the 0-based slot of the call within the response.  ``id`` and
    ``name`` usually arrive on the first fragment for an index and are omitted
    afterwards.
    """
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments_fragment: Optional[str] = None


@dataclass(frozen=True)
class UsageDelta:
    """Latest token counts the provider reported for the request in flight."""
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


@dataclass(frozen=True)
class StreamDone:
    """End of a successful stream."""


@dataclass(frozen=True)
class StreamError:
    """The provider reported a failure mid-stream."""
    message: str


StreamChunk = Union[TextDelta, ToolCallDelta, UsageDelta, StreamDone, StreamError]


def response_to_chunks(response: AgentResponse) -> Iterator[StreamChunk]:
    """
    Express a complete (non-streamed) response as a chunk sequence.

    One ``TextDelta`` with the whole text, one ``ToolCallDelta`` per tool call
    carrying the whole argument object, usage if known, then ``StreamDone``.
    Lets the agent loop consume every provider the same way.
    """
    if response.text:
        yield TextDelta(response.text)
    for index, call in enumerate(response.tool_calls):
        yield ToolCallDelta(
            index=index,
            id=call.id,
            name=call.name,
            arguments_fragment=json.dumps(call.arguments),
        )
    if response.usage is not None:
        yield UsageDelta(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
    yield StreamDone()
