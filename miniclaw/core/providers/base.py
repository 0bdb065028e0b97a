"""
LLM provider interface.

A provider turns one ChatRequest into either a whole AgentResponse
(``send_message``) or a stream of StreamChunks (``stream_message``).
Implementations: OpenAI-compatible HTTP, OpenAI SDK, Anthropic SDK.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from ..errors import ConfigError
from ..models import AgentResponse, ChatRequest
from ..stream_chunks import StreamChunk, response_to_chunks

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TIMEOUT = 300


def mask_secret(secret: Optional[str]) -> str:
    """``sk-abc...wxyz`` -> ``***wxyz``; short or empty secrets show nothing."""
    if secret and len(secret) > 4:
        return f"***{secret[-4:]}"
    return "***"


class BaseLLMProvider(ABC):
    """
    Shared by every session; nothing on the instance changes after
    construction, so concurrent requests need no locking.
    """

    def __init__(self, model: str, base_url: Optional[str] = None, api_key: Optional[str] = None, **kwargs):
        self.model = model
        self.base_url = base_url
        self._api_key = api_key
        self.max_tokens = kwargs.get("max_tokens", DEFAULT_MAX_TOKENS)
        self.timeout = kwargs.get("timeout", DEFAULT_TIMEOUT)

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    @property
    def provider_name(self) -> str:
        return self.__class__.__name__

    def __repr__(self) -> str:
        return f"{self.provider_name}(model={self.model!r}, api_key={mask_secret(self._api_key)!r})"

    @abstractmethod
    async def send_message(self, request: ChatRequest) -> AgentResponse:
        """
        Non-streaming request.

        Raises NetworkError on transport failure, ProviderError on a
        non-success status and ParseError on a body that cannot be decoded.
        """

    async def stream_message(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Yield StreamChunks ending with StreamDone.

        The fallback replays ``send_message`` as one text chunk plus whole
        tool calls; providers with real streaming override it.
        """
        response = await self.send_message(request)
        for chunk in response_to_chunks(response):
            yield chunk

    async def health_check(self) -> dict:
        """Configuration check only; no request is sent."""
        status = {"provider": self.provider_name, "model": self.model}
        if not self.api_key:
            return {**status, "status": "error", "error": "No API key set"}
        return {**status, "status": "ok"}


class ProviderFactory:
    """Registry of provider classes keyed by the ``llm.provider`` config value."""

    _providers: dict[str, type[BaseLLMProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[BaseLLMProvider]):
        cls._providers[name] = provider_class

    @classmethod
    def available(cls) -> list[str]:
        return sorted(cls._providers)

    @classmethod
    def create(cls, config) -> BaseLLMProvider:
        """
        Instantiate the configured provider.

        Reads ``llm.provider``, ``llm.model``, ``llm.api_base``,
        ``llm.max_tokens``, ``llm.timeout`` and the API key (see
        ``Config.api_key``).  Raises ConfigError for an unregistered name or
        a missing key.
        """
        name = config.get("llm.provider", "openai_compatible")
        provider_class = cls._providers.get(name)
        if provider_class is None:
            raise ConfigError(f"Unknown provider: {name!r}. Available: {cls.available()}")

        options = dict(
            model=config.get("llm.model", "qwen-plus"),
            api_key=config.api_key(),
            max_tokens=config.get("llm.max_tokens", DEFAULT_MAX_TOKENS),
            timeout=config.get("llm.timeout", DEFAULT_TIMEOUT),
        )
        if config.get("llm.api_base"):
            options["base_url"] = config.get("llm.api_base")
        return provider_class(**options)
