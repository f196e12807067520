"""
LLM Request and Response Models

Pydantic models for reasoning-model interactions, including function/tool
calling.
"""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

FinishReason = Literal["stop", "length", "content_filter", "tool_calls", "error"]


class LLMToolCall(BaseModel):
    """One function call requested by the model."""

    id: str = Field(
        ...,
        description="Provider-assigned call identifier"
    )
    name: str = Field(
        ...,
        description="Name of the requested tool"
    )
    arguments: str = Field(
        default="{}",
        description="Raw JSON-encoded arguments as emitted by the model"
    )

    def parsed_arguments(self) -> Dict[str, Any]:
        """Decode the arguments payload. Raises ValueError on malformed JSON."""
        raw = self.arguments.strip() or "{}"
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed tool arguments: {e}") from e
        if not isinstance(payload, dict):
            raise ValueError("Tool arguments must be a JSON object")
        return payload


class LLMToolSpec(BaseModel):
    """Function declaration offered to the model."""

    name: str = Field(
        ...,
        description="Tool name"
    )
    description: str = Field(
        ...,
        description="What the tool does"
    )
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the tool arguments"
    )


class LLMMessage(BaseModel):
    """Single message in an LLM conversation."""

    role: Literal["system", "user", "assistant", "tool"] = Field(
        ...,
        description="Message role"
    )
    content: Optional[str] = Field(
        None,
        description="Message content"
    )
    tool_calls: List[LLMToolCall] = Field(
        default_factory=list,
        description="Function calls emitted by an assistant message"
    )
    tool_call_id: Optional[str] = Field(
        None,
        description="Call identifier answered by a tool message"
    )

    @model_validator(mode="after")
    def validate_shape(self) -> "LLMMessage":
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require tool_call_id")
        if self.role != "assistant" and self.tool_calls:
            raise ValueError("only assistant messages may carry tool_calls")
        if self.role in ("system", "user") and not self.content:
            raise ValueError(f"{self.role} messages require content")
        return self


class LLMRequest(BaseModel):
    """Request to an LLM provider."""

    messages: List[LLMMessage] = Field(
        ...,
        description="Conversation messages",
        min_length=1
    )
    tools: List[LLMToolSpec] = Field(
        default_factory=list,
        description="Functions the model may call"
    )
    temperature: Optional[float] = Field(
        None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (overrides default)"
    )
    max_tokens: Optional[int] = Field(
        None,
        gt=0,
        description="Maximum tokens to generate (overrides default)"
    )
    stream: bool = Field(
        default=False,
        description="Whether to stream the response"
    )
    model: Optional[str] = Field(
        None,
        description="Specific model to use (overrides default)"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional provider-specific parameters"
    )


class LLMUsage(BaseModel):
    """Token usage information."""

    prompt_tokens: int = Field(
        ...,
        ge=0,
        description="Number of tokens in the prompt"
    )
    completion_tokens: int = Field(
        ...,
        ge=0,
        description="Number of tokens in the completion"
    )
    total_tokens: int = Field(
        ...,
        ge=0,
        description="Total tokens used"
    )


class LLMResponse(BaseModel):
    """Response from an LLM provider."""

    content: str = Field(
        default="",
        description="Generated text content"
    )
    tool_calls: List[LLMToolCall] = Field(
        default_factory=list,
        description="Function calls requested in this step"
    )
    model: str = Field(
        ...,
        description="Model that generated the response"
    )
    usage: LLMUsage = Field(
        ...,
        description="Token usage information"
    )
    finish_reason: FinishReason = Field(
        ...,
        description="Reason the generation stopped"
    )
    provider: str = Field(
        ...,
        description="Provider that handled the request"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional provider-specific response data"
    )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class LLMStreamChunk(BaseModel):
    """Streaming response chunk from an LLM provider."""

    content: str = Field(
        ...,
        description="Chunk of generated text"
    )
    finish_reason: Optional[FinishReason] = Field(
        None,
        description="Reason if this is the final chunk"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional chunk metadata"
    )
