"""
OpenAI LLM Provider

Implementation of BaseLLMProvider for OpenAI chat models with function
calling. Supports GPT-4o, GPT-4o-mini, etc.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from pgchat.llm.base import BaseLLMProvider
from pgchat.llm.models import (
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
    LLMToolCall,
    LLMUsage,
)

logger = logging.getLogger(__name__)

VALID_API_KEY_MESSAGE = "Valid API key"
INVALID_API_KEY_MESSAGE = "Invalid API key"


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI LLM provider implementation.

    Uses the official openai Python SDK with async support.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Default model to use
            temperature: Default temperature
            max_tokens: Default max tokens
            timeout: Request timeout
        """
        super().__init__(
            provider_name="openai",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.model = model
        self.client = AsyncOpenAI(
            api_key=api_key,
            timeout=float(timeout),
        )

        logger.info(f"OpenAI provider initialized with model: {model}", extra={"model": model})

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Run one completion, offering the request's tools to the model.

        Raises:
            openai.APIError: On API errors
            openai.APITimeoutError: On timeout
        """
        request = self._apply_defaults(request)
        self._log_request(request)

        try:
            params: dict[str, Any] = {
                "model": request.model or self.model,
                "messages": [self._to_openai_message(msg) for msg in request.messages],
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            }
            if request.tools:
                params["tools"] = [
                    {
                        "type": "function",
                        "function": {
                            "name": spec.name,
                            "description": spec.description,
                            "parameters": spec.parameters,
                        },
                    }
                    for spec in request.tools
                ]
            params.update(request.metadata)

            response = await self.client.chat.completions.create(**params)

            choice = response.choices[0]
            tool_calls = [
                LLMToolCall(
                    id=call.id,
                    name=call.function.name,
                    arguments=call.function.arguments or "{}",
                )
                for call in (choice.message.tool_calls or [])
            ]

            llm_response = LLMResponse(
                content=choice.message.content or "",
                tool_calls=tool_calls,
                model=response.model,
                usage=LLMUsage(
                    prompt_tokens=response.usage.prompt_tokens,
                    completion_tokens=response.usage.completion_tokens,
                    total_tokens=response.usage.total_tokens,
                ),
                finish_reason=self._map_finish_reason(choice.finish_reason),
                provider="openai",
                metadata={
                    "id": response.id,
                    "created": response.created,
                },
            )

            self._log_response(llm_response)
            return llm_response

        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        """
        Stream a text completion. Tools are never offered on this path.

        Raises:
            openai.APIError: On API errors
        """
        request = self._apply_defaults(request)
        request.stream = True
        self._log_request(request)

        try:
            stream = await self.client.chat.completions.create(
                model=request.model or self.model,
                messages=[self._to_openai_message(msg) for msg in request.messages],
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                stream=True,
                **request.metadata,
            )

            async for chunk in stream:
                if not chunk.choices:
                    continue
                if chunk.choices[0].delta.content:
                    yield LLMStreamChunk(
                        content=chunk.choices[0].delta.content,
                        finish_reason=self._map_finish_reason(chunk.choices[0].finish_reason)
                        if chunk.choices[0].finish_reason
                        else None,
                        metadata={"id": chunk.id},
                    )

        except openai.APIError as e:
            logger.error(f"OpenAI streaming error: {e}")
            raise

    @staticmethod
    def _to_openai_message(message: LLMMessage) -> dict[str, Any]:
        if message.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content or "",
            }
        payload: dict[str, Any] = {"role": message.role, "content": message.content}
        if message.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
        return payload

    def _map_finish_reason(self, reason: str | None) -> str:
        """Map OpenAI finish reason to our standard format."""
        if reason == "stop":
            return "stop"
        elif reason == "length":
            return "length"
        elif reason == "content_filter":
            return "content_filter"
        elif reason in ("tool_calls", "function_call"):
            return "tool_calls"
        else:
            return "stop"  # Default


async def check_api_key(api_key: str) -> str:
    """Validate an API key by listing models."""
    client = AsyncOpenAI(api_key=api_key)
    try:
        await client.models.list()
    except openai.OpenAIError as e:
        logger.info(f"OpenAI API key rejected: {e.__class__.__name__}")
        return INVALID_API_KEY_MESSAGE
    return VALID_API_KEY_MESSAGE
