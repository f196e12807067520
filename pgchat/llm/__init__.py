"""
LLM Provider Module

OpenAI-backed reasoning model abstraction with function calling.

Usage:
    from pgchat.llm import LLMProviderFactory, LLMRequest, LLMMessage
    from pgchat.config import get_settings

    config = get_settings()
    provider = LLMProviderFactory.create_provider(config.llm)

    request = LLMRequest(
        messages=[LLMMessage(role="user", content="Hello!")],
    )

    response = await provider.generate(request)
    print(response.content)
"""

from pgchat.llm.base import BaseLLMProvider
from pgchat.llm.factory import LLMProviderFactory
from pgchat.llm.models import (
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
    LLMToolCall,
    LLMToolSpec,
    LLMUsage,
)
from pgchat.llm.openai import OpenAIProvider, check_api_key

__all__ = [
    # Base classes
    "BaseLLMProvider",
    # Models
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMStreamChunk",
    "LLMToolCall",
    "LLMToolSpec",
    "LLMUsage",
    # Factory
    "LLMProviderFactory",
    # Providers
    "OpenAIProvider",
    "check_api_key",
]
