"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from pgchat.config import get_settings

    settings = get_settings()
    print(settings.llm.model)
    print(settings.agent.max_steps)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, PostgresDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """OpenAI reasoning model configuration."""

    api_key: str | None = Field(
        None,
        description="Project OpenAI API key (used unless a request overrides it)",
        min_length=20,
        validation_alias="OPENAI_API_KEY",
    )
    model: str = Field(default="gpt-4o", description="Chat model used for reasoning steps")
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Temperature for LLM responses (0.0 = deterministic)",
    )
    max_tokens: int = Field(
        default=2000,
        gt=0,
        le=16000,
        description="Maximum tokens per LLM response",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str | None) -> str | None:
        """Validate OpenAI API key format."""
        if v and not v.startswith("sk-"):
            raise ValueError("OpenAI API key must start with 'sk-'")
        return v


class SystemDatabaseSettings(BaseSettings):
    """System database configuration (chat persistence)."""

    url: PostgresDsn | None = Field(
        None,
        description="PostgreSQL URL of the database that stores chats",
    )
    pool_min_size: int = Field(default=1, ge=1, description="Minimum pool connections")
    pool_max_size: int = Field(default=5, ge=1, le=50, description="Maximum pool connections")

    model_config = SettingsConfigDict(
        env_prefix="SYSTEM_DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, v: str | PostgresDsn | None) -> str | PostgresDsn | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> "SystemDatabaseSettings":
        if self.pool_min_size > self.pool_max_size:
            raise ValueError(
                f"pool_min_size ({self.pool_min_size}) must not exceed "
                f"pool_max_size ({self.pool_max_size})"
            )
        return self


class AgentSettings(BaseSettings):
    """Orchestration loop limits."""

    max_steps: int = Field(
        default=22,
        ge=1,
        le=100,
        description="Maximum number of model steps per turn",
    )
    row_limit: int = Field(
        default=100,
        gt=0,
        le=10000,
        description="Row cap appended to guarded SQL without a LIMIT clause",
    )
    turn_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Wall-clock ceiling for one streamed turn",
    )
    tool_timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="Default per-tool execution timeout",
    )
    query_timeout_seconds: int = Field(
        default=15,
        ge=1,
        description="statement_timeout applied to target database sessions",
    )
    expose_run_sql: bool = Field(
        default=False,
        description="Expose the guarded SQL executor to the reasoning model",
    )
    stream_chunking: Literal["line", "word"] = Field(
        default="line",
        description="Granularity of streamed answer chunks",
    )

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stdout only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,  # Override any existing configuration
        )


class ToolsSettings(BaseSettings):
    """Tooling configuration."""

    policy_path: str | None = Field(
        default=None,
        description="Optional path to a YAML tool policy file",
    )

    model_config = SettingsConfigDict(
        env_prefix="TOOLS_",
        env_file=".env",
        extra="ignore",
    )


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, system_database, agent, logging, tools).

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        CLI_MODE: Run as a local single-user tool; OpenAI key and model come
            from request headers instead of the server configuration
        LOCAL_USER_ID: Owner id used for chats in CLI mode
        API_HOST / API_PORT: API server bind address
        LLM_*: Reasoning model configuration (see LLMSettings)
        SYSTEM_DATABASE_*: Chat storage database (see SystemDatabaseSettings)
        AGENT_*: Orchestration limits (see AgentSettings)
        LOG_*: Logging configuration (see LoggingSettings)
        TOOLS_*: Tool policy configuration (see ToolsSettings)

    Example:
        >>> settings = get_settings()
        >>> settings.agent.max_steps
        22
        >>> settings.cli_mode
        False
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(default="pgchat", description="Application name")
    cli_mode: bool = Field(
        default=False,
        description="Local CLI mode (per-request OpenAI key and model headers)",
    )
    local_user_id: str = Field(
        default="local",
        min_length=1,
        description="Chat owner id used when running in CLI mode",
    )
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, gt=0, le=65535, description="API server port")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    system_database: SystemDatabaseSettings = Field(default_factory=SystemDatabaseSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    tools: ToolsSettings = Field(default_factory=ToolsSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "cli_mode": self.cli_mode,
                "llm_model": self.llm.model,
                "agent_max_steps": self.agent.max_steps,
                "chat_storage": self.system_database.url is not None,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("PGCHAT_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses functools.lru_cache to ensure settings are loaded only once.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
