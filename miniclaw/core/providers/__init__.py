"""
LLM providers.  Importing this package registers every built-in provider
with ProviderFactory.
"""

from .base import BaseLLMProvider, ProviderFactory
from .openai_compatible import OpenAICompatibleProvider
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider

__all__ = [
    "BaseLLMProvider",
    "ProviderFactory",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "AnthropicProvider",
]
