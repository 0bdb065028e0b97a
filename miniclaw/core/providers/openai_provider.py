"""
OpenAI LLM Provider — uses the official SDK's native tool calling API.
"""

from __future__ import annotations
import os
from typing import AsyncIterator, Optional

from .base import BaseLLMProvider, ProviderFactory
from .openai_compatible import convert_messages, convert_tools, parse_completion
from ..errors import ConfigError, NetworkError, ProviderError
from ..models import AgentResponse, ChatRequest
from ..stream_chunks import StreamChunk, StreamDone, TextDelta, ToolCallDelta, UsageDelta


class OpenAIProvider(BaseLLMProvider):
    """OpenAI provider with native tool_use support."""

    def __init__(self, model: str = "gpt-4o", api_key: Optional[str] = None,
                 base_url: str = "https://api.openai.com/v1", **kwargs):
        super().__init__(
            model=model,
            base_url=base_url,
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            **kwargs,
        )

    def _client(self):
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise ConfigError("OpenAI package not installed. Run: pip install openai") from e
        return AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout)

    def _create_kwargs(self, request: ChatRequest) -> dict:
        kwargs = {
            "model": request.model or self.model,
            "messages": convert_messages(request.messages),
            "max_tokens": request.max_tokens,
        }
        if request.tools:
            kwargs["tools"] = convert_tools(request.tools)
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def send_message(self, request: ChatRequest) -> AgentResponse:
        """Send message using OpenAI's chat completions API with tools."""
        import openai

        client = self._client()
        try:
            response = await client.chat.completions.create(**self._create_kwargs(request))
        except openai.APIConnectionError as e:
            raise NetworkError(f"OpenAI connection error: {e}") from e
        except openai.APIStatusError as e:
            raise ProviderError(f"OpenAI error ({e.status_code}): {e.message}", status_code=e.status_code) from e

        return parse_completion(response.model_dump())

    async def stream_message(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream response chunks using OpenAI's streaming API."""
        import openai

        client = self._client()
        try:
            stream = await client.chat.completions.create(
                **self._create_kwargs(request),
                stream=True,
                stream_options={"include_usage": True},
            )

            async for chunk in stream:
                if chunk.usage:
                    yield UsageDelta(
                        input_tokens=chunk.usage.prompt_tokens,
                        output_tokens=chunk.usage.completion_tokens,
                    )
                if not chunk.choices:
                    continue

                delta = chunk.choices[0].delta
                if delta.content:
                    yield TextDelta(delta.content)
                for tc_delta in delta.tool_calls or []:
                    function = tc_delta.function
                    yield ToolCallDelta(
                        index=tc_delta.index,
                        id=tc_delta.id,
                        name=function.name if function else None,
                        arguments_fragment=function.arguments if function else None,
                    )

        except openai.APIConnectionError as e:
            raise NetworkError(f"OpenAI streaming connection error: {e}") from e
        except openai.APIStatusError as e:
            raise ProviderError(f"OpenAI error ({e.status_code}): {e.message}", status_code=e.status_code) from e

        yield StreamDone()


ProviderFactory.register("openai", OpenAIProvider)
