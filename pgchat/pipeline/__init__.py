"""Turn orchestration."""

from pgchat.pipeline.orchestrator import (
    BUDGET_EXHAUSTED_MESSAGE,
    ChatOrchestrator,
    TurnError,
    TurnRequest,
    TurnResult,
    TurnState,
    parse_chat_id,
)
from pgchat.pipeline.streaming import smooth_chunks

__all__ = [
    "BUDGET_EXHAUSTED_MESSAGE",
    "ChatOrchestrator",
    "TurnError",
    "TurnRequest",
    "TurnResult",
    "TurnState",
    "parse_chat_id",
    "smooth_chunks",
]
