"""
OpenAI-compatible LLM Provider — raw HTTP against any ``/chat/completions``
endpoint (OpenAI, DashScope, vLLM, ...), with SSE streaming.
"""

from __future__ import annotations
import json
import logging
from typing import AsyncIterator, Optional

import httpx

from .base import BaseLLMProvider, ProviderFactory
from ..errors import NetworkError, ParseError, ProviderError
from ..models import AgentResponse, ChatRequest, Message, TokenUsage, ToolCall, ToolSchema
from ..stream_chunks import (
    StreamChunk, StreamDone, StreamError, TextDelta, ToolCallDelta, UsageDelta,
)

logger = logging.getLogger(__name__)


# ── Wire format helpers (shared with the OpenAI SDK provider) ────

def convert_tools(tools: list[ToolSchema]) -> list[dict]:
    """Convert to OpenAI tools format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema,
            },
        }
        for t in tools
    ]


def convert_messages(messages: list[Message]) -> list[dict]:
    """Convert internal messages to OpenAI format."""
    result = []
    for msg in messages:
        if msg.role == "assistant" and msg.tool_calls:
            result.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ],
            })
        elif msg.role == "tool":
            result.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id,
                "content": msg.content,
            })
        else:
            result.append({"role": msg.role, "content": msg.content})
    return result


def _object(value, what: str) -> dict:
    """``value`` if it is a JSON object; ParseError otherwise."""
    if not isinstance(value, dict):
        raise ParseError(f"Expected a JSON object for {what}, got {type(value).__name__}")
    return value


def _list(value, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(f"Expected a JSON array for {what}, got {type(value).__name__}")
    return value


def parse_completion(data) -> AgentResponse:
    """Parse a non-streamed chat completion body."""
    data = _object(data, "response body")
    choices = _list(data.get("choices"), "choices")
    if not choices:
        raise ParseError("Empty response from API: no choices returned")
    message = _object(_object(choices[0], "choice").get("message") or {}, "message")

    tool_calls = []
    for index, tc in enumerate(_list(message.get("tool_calls"), "tool_calls")):
        function = _object(_object(tc, "tool call").get("function") or {}, "function")
        raw = function.get("arguments") or ""
        try:
            arguments = json.loads(raw) if str(raw).strip() else {}
        except (json.JSONDecodeError, TypeError) as e:
            raise ParseError(
                f"Invalid JSON arguments for tool '{function.get('name', '')}': {e}",
                tool_index=index,
            ) from e
        tool_calls.append(ToolCall(
            id=tc.get("id") or ToolCall.generate_id(),
            name=function.get("name", ""),
            arguments=arguments,
        ))

    usage = None
    if data.get("usage"):
        reported = _object(data["usage"], "usage")
        usage = TokenUsage(
            input_tokens=reported.get("prompt_tokens") or 0,
            output_tokens=reported.get("completion_tokens") or 0,
        )

    return AgentResponse(
        text=message.get("content") or "",
        tool_calls=tool_calls,
        usage=usage,
    )


def parse_stream_data(data: str) -> list[StreamChunk]:
    """
    Translate the payload of one SSE ``data:`` line into StreamChunks.

    ``[DONE]`` becomes StreamDone; an ``error`` object becomes StreamError.
    """
    if data.strip() == "[DONE]":
        return [StreamDone()]

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed stream payload: {data[:200]!r}") from e
    payload = _object(payload, "stream payload")

    if payload.get("error"):
        err = payload["error"]
        message = err.get("message", str(err)) if isinstance(err, dict) else str(err)
        return [StreamError(message)]

    chunks: list[StreamChunk] = []
    choices = _list(payload.get("choices"), "choices")
    if choices:
        delta = _object(_object(choices[0], "choice").get("delta") or {}, "delta")
        if delta.get("content"):
            chunks.append(TextDelta(str(delta["content"])))
        for tc in _list(delta.get("tool_calls"), "tool_calls"):
            tc = _object(tc, "tool call delta")
            function = _object(tc.get("function") or {}, "function")
            chunks.append(ToolCallDelta(
                index=tc.get("index", 0),
                id=tc.get("id"),
                name=function.get("name"),
                arguments_fragment=function.get("arguments"),
            ))

    if payload.get("usage"):
        reported = _object(payload["usage"], "usage")
        chunks.append(UsageDelta(
            input_tokens=reported.get("prompt_tokens"),
            output_tokens=reported.get("completion_tokens"),
        ))
    return chunks


# ── Provider ─────────────────────────────────────────────────────

class OpenAICompatibleProvider(BaseLLMProvider):
    """Provider for any endpoint speaking the OpenAI chat completions protocol."""

    def __init__(self, model: str = "qwen-plus", api_key: Optional[str] = None,
                 base_url: str = "https://api.openai.com/v1", **kwargs):
        super().__init__(model=model, base_url=base_url, api_key=api_key, **kwargs)

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_payload(self, request: ChatRequest, stream: bool) -> dict:
        payload = {
            "model": request.model or self.model,
            "messages": convert_messages(request.messages),
            "max_tokens": request.max_tokens,
        }
        if request.tools:
            payload["tools"] = convert_tools(request.tools)
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    async def send_message(self, request: ChatRequest) -> AgentResponse:
        payload = self.build_payload(request, stream=False)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, headers=self._headers(), json=payload)
        except httpx.TransportError as e:
            raise NetworkError(f"Failed to send request to {self.url}: {e}") from e

        if not response.is_success:
            raise ProviderError(
                f"API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"Failed to parse API response: {e}") from e
        return parse_completion(data)

    async def stream_message(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        payload = self.build_payload(request, stream=True)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST", self.url, headers=self._headers(), json=payload,
                ) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderError(
                            f"API error ({response.status_code}): {body}",
                            status_code=response.status_code,
                        )

                    async for line in response.aiter_lines():
                        line = line.strip()
                        if not line.startswith("data:"):
                            continue
                        for chunk in parse_stream_data(line[len("data:"):].strip()):
                            yield chunk
                            if isinstance(chunk, (StreamDone, StreamError)):
                                return

            # Some servers close the stream without a [DONE] marker
            logger.debug("Stream closed without [DONE]; treating EOF as completion")
            yield StreamDone()

        except httpx.TransportError as e:
            raise NetworkError(f"Stream read error from {self.url}: {e}") from e


ProviderFactory.register("openai_compatible", OpenAICompatibleProvider)
