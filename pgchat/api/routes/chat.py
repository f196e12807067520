"""
Chat Routes

Streamed turn submission.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse

from pgchat.api.dependencies import get_chat_store, get_user_id
from pgchat.config import get_settings
from pgchat.llm import LLMProviderFactory
from pgchat.models.api import ChatTurnRequest
from pgchat.models.context import ConnectionContext
from pgchat.pipeline import ChatOrchestrator, TurnError, TurnRequest

logger = logging.getLogger(__name__)

router = APIRouter()


async def stream_with_deadline(chunks: AsyncIterator[str], timeout: float) -> AsyncIterator[str]:
    """
    Relay chunks until the turn's wall-clock ceiling.

    On timeout the stream simply ends. The turn generator is closed before
    it reaches persistence, so nothing is written.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError
            try:
                chunk = await asyncio.wait_for(anext(chunks), timeout=remaining)
            except StopAsyncIteration:
                return
            yield chunk
    except asyncio.TimeoutError:
        logger.warning(f"Turn exceeded {timeout}s, ending stream")
    finally:
        await chunks.aclose()


@router.post("/chat")
async def chat(
    payload: ChatTurnRequest,
    user_id: str = Depends(get_user_id),
    x_connection_string: str | None = Header(default=None),
    x_openai_api_key: str | None = Header(default=None),
    x_model: str | None = Header(default=None),
) -> StreamingResponse:
    """
    Run one chat turn and stream the answer as plain text.

    Raises:
        TurnError: 400 / 401 / 500 boundary failures, before any model call
    """
    settings = get_settings()
    logger.info(
        "Chat request received",
        extra={"chat_id": payload.id, "message_count": len(payload.messages)},
    )

    orchestrator = ChatOrchestrator(store=get_chat_store(), settings=settings)
    turn = TurnRequest(
        chat_id=payload.id,
        owner_id=user_id,
        messages=payload.messages,
        connection=ConnectionContext(
            connection_string=x_connection_string or "",
            openai_api_key=x_openai_api_key,
            model=x_model,
        ),
    )
    result = await orchestrator.prepare(turn)

    if settings.cli_mode and not (x_openai_api_key and x_model):
        raise TurnError(400, "OpenAI API key and model are required")

    try:
        orchestrator.provider = LLMProviderFactory.create_provider(
            settings.llm, api_key=x_openai_api_key, model=x_model
        )
    except ValueError as e:
        logger.error(f"Cannot create model provider: {e}")
        raise TurnError(500, "OpenAI API key is not configured") from e

    return StreamingResponse(
        stream_with_deadline(
            orchestrator.stream_turn(turn, result),
            settings.agent.turn_timeout_seconds,
        ),
        media_type="text/plain; charset=utf-8",
    )
