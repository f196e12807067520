"""
LLM Provider Factory

Creates the reasoning-model provider for one turn from server settings and
optional per-request credential/model overrides.
"""

import logging

from pgchat.config import LLMSettings
from pgchat.llm.base import BaseLLMProvider
from pgchat.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    @staticmethod
    def create_provider(
        config: LLMSettings,
        api_key: str | None = None,
        model: str | None = None,
    ) -> BaseLLMProvider:
        """
        Create an OpenAI provider.

        Args:
            config: LLM configuration settings
            api_key: Per-request API key override (CLI mode)
            model: Per-request model override (CLI mode)

        Returns:
            Configured provider instance

        Raises:
            ValueError: If no API key is available
        """
        resolved_key = api_key or config.api_key
        if not resolved_key:
            raise ValueError("OpenAI API key is required but not configured")

        resolved_model = model or config.model
        logger.info(
            f"Creating openai provider with model {resolved_model}",
            extra={"model": resolved_model, "key_override": api_key is not None},
        )

        return OpenAIProvider(
            api_key=resolved_key,
            model=resolved_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )
