"""
pgchat Models Module

Transcript Models:
    - Message: Role-tagged transcript entry
    - TextPart / ReasoningPart / ToolInvocationPart: Message parts
    - ToolInvocation: Tool call with its resolved result

Context Models:
    - ConnectionContext: Per-request target database and model overrides

API Models:
    - ChatTurnRequest: Streamed chat turn submission
    - ChatSummary / ChatDetail: Chat listing and fetch payloads
    - RenameChatRequest, RunSqlRequest, ...
"""

from pgchat.models.api import (
    MAX_CHAT_NAME_LENGTH,
    ApiKeyValidateRequest,
    ChatDetail,
    ChatSummary,
    ChatTurnRequest,
    ConnectionValidateRequest,
    HealthResponse,
    MessageResponse,
    RenameChatRequest,
    RenameChatResponse,
    RunSqlRequest,
    RunSqlResponse,
    ToolInfo,
)
from pgchat.models.context import ConnectionContext
from pgchat.models.transcript import (
    Message,
    MessagePart,
    ReasoningPart,
    TextPart,
    ToolInvocation,
    ToolInvocationPart,
    encode_tool_result,
    ensure_resolved,
    parse_transcript,
    serialize_transcript,
    to_llm_messages,
)

__all__ = [
    "MAX_CHAT_NAME_LENGTH",
    "ApiKeyValidateRequest",
    "ChatDetail",
    "ChatSummary",
    "ChatTurnRequest",
    "ConnectionContext",
    "ConnectionValidateRequest",
    "HealthResponse",
    "Message",
    "MessagePart",
    "MessageResponse",
    "ReasoningPart",
    "RenameChatRequest",
    "RenameChatResponse",
    "RunSqlRequest",
    "RunSqlResponse",
    "TextPart",
    "ToolInfo",
    "ToolInvocation",
    "ToolInvocationPart",
    "encode_tool_result",
    "ensure_resolved",
    "parse_transcript",
    "serialize_transcript",
    "to_llm_messages",
]
