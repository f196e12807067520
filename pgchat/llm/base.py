"""
Base LLM Provider

Abstract base class defining the interface the orchestration loop uses to
talk to the reasoning model.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from pgchat.llm.models import (
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
)

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Attributes:
        provider_name: Unique identifier for this provider
        temperature: Default sampling temperature
        max_tokens: Default maximum tokens to generate
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            f"Initialized {provider_name} provider",
            extra={
                "provider": provider_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Run one reasoning step.

        The response carries either natural-language content, tool calls,
        or both.

        Raises:
            Exception: Provider-specific errors (API errors, timeouts, etc.)
        """
        pass  # pragma: no cover - abstract method

    @abstractmethod
    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        """
        Stream a text-only completion.

        Yields:
            LLMStreamChunk: Chunks of generated text
        """
        pass  # pragma: no cover - abstract method

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        """Apply default values to request if not specified."""
        if request.temperature is None:
            request.temperature = self.temperature
        if request.max_tokens is None:
            request.max_tokens = self.max_tokens
        return request

    def _log_request(self, request: LLMRequest) -> None:
        """Log request details for debugging."""
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "message_count": len(request.messages),
                "tool_count": len(request.tools),
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "stream": request.stream,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        """Log response details for debugging."""
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
                "finish_reason": response.finish_reason,
                "tool_calls": [call.name for call in response.tool_calls],
            },
        )
