"""Per-request connection context. Never persisted."""

from pydantic import BaseModel, Field, SecretStr


class ConnectionContext(BaseModel):
    """Target database plus optional reasoning-model overrides for one turn."""

    connection_string: SecretStr = Field(..., description="Target database URL")
    openai_api_key: SecretStr | None = Field(None, description="Per-request OpenAI key")
    model: str | None = Field(None, description="Per-request model override")

    @property
    def dsn(self) -> str:
        return self.connection_string.get_secret_value()

    @property
    def api_key(self) -> str | None:
        return self.openai_api_key.get_secret_value() if self.openai_api_key else None
