"""
Anthropic LLM Provider — uses the official SDK's native tool_use API.
"""

from __future__ import annotations
import os
from typing import AsyncIterator, Optional

from .base import BaseLLMProvider, ProviderFactory
from ..errors import ConfigError, NetworkError, ProviderError
from ..models import AgentResponse, ChatRequest, Message, TokenUsage, ToolCall, ToolSchema
from ..stream_chunks import (
    StreamChunk, StreamDone, StreamError, TextDelta, ToolCallDelta, UsageDelta,
)


def convert_tools(tools: list[ToolSchema]) -> list[dict]:
    """Convert to Anthropic tools format."""
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.input_schema,
        }
        for t in tools
    ]


def convert_messages(messages: list[Message]) -> tuple[str, list[dict]]:
    """
    Convert internal messages to Anthropic format.

    Returns (system_prompt, messages).  System messages are lifted into the
    system parameter; consecutive tool results are merged into one user turn.
    """
    system_parts = []
    result: list[dict] = []
    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.content)
        elif msg.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content,
                "is_error": msg.content.startswith("Error:"),
            }
            if result and result[-1]["role"] == "user" and isinstance(result[-1]["content"], list) \
                    and result[-1]["content"] and result[-1]["content"][0].get("type") == "tool_result":
                result[-1]["content"].append(block)
            else:
                result.append({"role": "user", "content": [block]})
        elif msg.role == "assistant" and msg.tool_calls:
            content = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                content.append({
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": tc.arguments,
                })
            result.append({"role": "assistant", "content": content})
        else:
            result.append({"role": msg.role, "content": msg.content})
    return "\n\n".join(system_parts), result


class AnthropicProvider(BaseLLMProvider):
    """Anthropic provider with native tool_use support."""

    def __init__(self, model: str = "claude-sonnet-4-5-20250929",
                 api_key: Optional[str] = None, **kwargs):
        super().__init__(
            model=model,
            api_key=api_key or os.getenv("ANTHROPIC_API_KEY"),
            **kwargs,
        )

    def _client(self):
        try:
            from anthropic import AsyncAnthropic
        except ImportError as e:
            raise ConfigError("Anthropic package not installed. Run: pip install anthropic") from e
        kwargs = {"api_key": self.api_key, "timeout": self.timeout}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return AsyncAnthropic(**kwargs)

    def _create_kwargs(self, request: ChatRequest) -> dict:
        system_prompt, messages = convert_messages(request.messages)
        kwargs = {
            "model": request.model or self.model,
            "max_tokens": request.max_tokens,
            "messages": messages,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if request.tools:
            kwargs["tools"] = convert_tools(request.tools)
        return kwargs

    async def send_message(self, request: ChatRequest) -> AgentResponse:
        """Send message using Anthropic's Messages API with tools."""
        import anthropic

        client = self._client()
        try:
            response = await client.messages.create(**self._create_kwargs(request))
        except anthropic.APIConnectionError as e:
            raise NetworkError(f"Anthropic connection error: {e}") from e
        except anthropic.APIStatusError as e:
            raise ProviderError(f"Anthropic error ({e.status_code}): {e.message}", status_code=e.status_code) from e

        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=block.input))

        usage = None
        if getattr(response, "usage", None):
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens or 0,
                output_tokens=response.usage.output_tokens or 0,
            )

        return AgentResponse(text="".join(text_parts), tool_calls=tool_calls, usage=usage)

    async def stream_message(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream response chunks using Anthropic's raw streaming events."""
        import anthropic

        client = self._client()
        # content block index -> tool call slot
        tool_slots: dict[int, int] = {}
        try:
            stream = await client.messages.create(**self._create_kwargs(request), stream=True)
            async for event in stream:
                if event.type == "message_start":
                    usage = event.message.usage
                    yield UsageDelta(
                        input_tokens=usage.input_tokens,
                        output_tokens=usage.output_tokens,
                    )

                elif event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        slot = len(tool_slots)
                        tool_slots[event.index] = slot
                        yield ToolCallDelta(index=slot, id=block.id, name=block.name)

                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        yield TextDelta(delta.text)
                    elif delta.type == "input_json_delta" and event.index in tool_slots:
                        yield ToolCallDelta(
                            index=tool_slots[event.index],
                            arguments_fragment=delta.partial_json,
                        )

                elif event.type == "message_delta":
                    if getattr(event, "usage", None):
                        yield UsageDelta(output_tokens=event.usage.output_tokens)

                elif event.type == "message_stop":
                    yield StreamDone()
                    return

                elif event.type == "error":
                    yield StreamError(str(getattr(event, "error", "Anthropic stream error")))
                    return

        except anthropic.APIConnectionError as e:
            raise NetworkError(f"Anthropic streaming connection error: {e}") from e
        except anthropic.APIStatusError as e:
            raise ProviderError(f"Anthropic error ({e.status_code}): {e.message}", status_code=e.status_code) from e

        yield StreamDone()


ProviderFactory.register("anthropic", AnthropicProvider)
