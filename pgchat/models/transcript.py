"""
Transcript Models

Role-tagged chat messages whose ``parts`` form a discriminated union on the
``type`` field. Field names serialize in camelCase so transcripts round-trip
unchanged with the browser client (``toolInvocation``, ``toolCallId`` ...).
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pgchat.llm.models import LLMMessage, LLMToolCall

logger = logging.getLogger(__name__)


class TranscriptModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class TextPart(TranscriptModel):
    type: Literal["text"] = "text"
    text: str


class ReasoningPart(TranscriptModel):
    type: Literal["reasoning"] = "reasoning"
    reasoning: str


class ToolInvocation(TranscriptModel):
    """A tool call and, once resolved, its result."""

    state: Literal["call", "result"] = "call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None

    @property
    def is_resolved(self) -> bool:
        return self.state == "result"


class ToolInvocationPart(TranscriptModel):
    type: Literal["tool-invocation"] = "tool-invocation"
    tool_invocation: ToolInvocation


MessagePart = Annotated[
    TextPart | ReasoningPart | ToolInvocationPart,
    Field(discriminator="type"),
]


class Message(TranscriptModel):
    """One transcript entry."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant", "tool"]
    content: str = ""
    parts: list[MessagePart] = Field(default_factory=list)
    created_at: datetime | None = None

    @property
    def text(self) -> str:
        """Message text, falling back to the concatenated text parts."""
        if self.content:
            return self.content
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [
            part.tool_invocation
            for part in self.parts
            if isinstance(part, ToolInvocationPart)
        ]


def serialize_transcript(messages: list[Message]) -> list[dict[str, Any]]:
    """Dump messages in their wire (camelCase, JSON-safe) form."""
    return [
        message.model_dump(mode="json", by_alias=True, exclude_none=True)
        for message in messages
    ]


def parse_transcript(payload: Any) -> list[Message]:
    """Load a stored or submitted transcript. Accepts a JSON string or a list."""
    if payload is None:
        return []
    if isinstance(payload, str):
        payload = json.loads(payload)
    return [Message.model_validate(item) for item in payload]


def ensure_resolved(messages: list[Message]) -> None:
    """
    Reject transcripts holding pending tool calls.

    Raises:
        ValueError: If any tool invocation is still in the ``call`` state
    """
    for message in messages:
        for invocation in message.tool_invocations:
            if not invocation.is_resolved:
                raise ValueError(
                    f"Tool invocation {invocation.tool_call_id} "
                    f"({invocation.tool_name}) is not resolved"
                )


def encode_tool_result(result: Any) -> str:
    """Render a tool result as the text the model sees."""
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


def to_llm_messages(messages: list[Message]) -> list[LLMMessage]:
    """
    Convert a transcript into chat-completion messages.

    Consecutive tool invocations become one assistant message carrying the
    calls followed by one tool message per result. Reasoning parts are not
    replayed. Unresolved invocations from an interrupted turn are dropped.
    Tool messages contribute only their invocations, never their text.
    """
    converted: list[LLMMessage] = []

    for message in messages:
        if message.role == "user":
            text = message.text
            if text:
                converted.append(LLMMessage(role="user", content=text))
            continue

        if message.role == "tool" and not message.tool_invocations:
            logger.warning(
                "Dropping tool message without tool invocations from transcript",
                extra={"message_id": message.id},
            )
            continue

        if not message.parts:
            if message.content:
                converted.append(LLMMessage(role="assistant", content=message.content))
            continue

        pending_calls: list[ToolInvocation] = []

        def flush_calls() -> None:
            if not pending_calls:
                return
            converted.append(
                LLMMessage(
                    role="assistant",
                    tool_calls=[
                        LLMToolCall(
                            id=invocation.tool_call_id,
                            name=invocation.tool_name,
                            arguments=json.dumps(invocation.args),
                        )
                        for invocation in pending_calls
                    ],
                )
            )
            for invocation in pending_calls:
                converted.append(
                    LLMMessage(
                        role="tool",
                        tool_call_id=invocation.tool_call_id,
                        content=encode_tool_result(invocation.result),
                    )
                )
            pending_calls.clear()

        for part in message.parts:
            if isinstance(part, ToolInvocationPart):
                if not part.tool_invocation.is_resolved:
                    logger.warning(
                        "Dropping unresolved tool invocation from transcript",
                        extra={"tool_call_id": part.tool_invocation.tool_call_id},
                    )
                    continue
                pending_calls.append(part.tool_invocation)
            elif isinstance(part, TextPart) and message.role == "assistant":
                flush_calls()
                if part.text:
                    converted.append(LLMMessage(role="assistant", content=part.text))
        flush_calls()

    return converted
