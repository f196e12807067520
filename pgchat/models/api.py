"""
API Request/Response Models

Pydantic models for FastAPI endpoints.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pgchat.models.transcript import Message

MAX_CHAT_NAME_LENGTH = 100


class ChatTurnRequest(BaseModel):
    """Request model for the streamed chat endpoint."""

    id: str | None = Field(None, description="Chat UUID chosen by the client")
    messages: list[Message] = Field(
        default_factory=list,
        description="Prior transcript followed by the new user message",
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "3a1f2d3e-4b5c-6d7e-8f90-1234567890ab",
                "messages": [{"role": "user", "content": "How many users do I have?"}],
            }
        }
    }


class ChatSummary(BaseModel):
    """Chat listing entry."""

    id: str
    name: str
    created_at: datetime


class ChatDetail(ChatSummary):
    """Chat with its full transcript."""

    messages: list[dict[str, Any]] = Field(default_factory=list)


class RenameChatRequest(BaseModel):
    """Rename form payload. Length is checked by the route to answer 400."""

    name: str | None = Field(None, description="New display name")


class RenameChatResponse(BaseModel):
    success: str


class RunSqlRequest(BaseModel):
    """Guarded SQL execution request."""

    query: str = Field(..., min_length=1, description="SQL statement to run")


class RunSqlResponse(BaseModel):
    """Rows payload on success; a plain string for refusals and errors."""

    result: Any


class ConnectionValidateRequest(BaseModel):
    connection_string: str = Field(..., min_length=1)


class ApiKeyValidateRequest(BaseModel):
    api_key: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    message: str


class ToolInfo(BaseModel):
    """Tool definition as exposed to the reasoning model."""

    name: str
    description: str
    enabled: bool
    parameters_schema: dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    timestamp: str = Field(..., description="Current server time (ISO 8601)")
    chat_storage: bool = Field(..., description="Whether chat persistence is configured")
