"""Routes for a user's persisted chats."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from pgchat.api.dependencies import get_chat_store, get_user_id, require_chat_id
from pgchat.conversations import ChatNotFoundError, ChatOwnershipError
from pgchat.models.api import (
    MAX_CHAT_NAME_LENGTH,
    ChatDetail,
    ChatSummary,
    RenameChatRequest,
    RenameChatResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_store():
    store = get_chat_store()
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Chat storage is not configured",
        )
    return store


@router.get("/chats", response_model=list[ChatSummary])
async def list_chats(user_id: str = Depends(get_user_id)) -> list[ChatSummary]:
    """List the caller's chats, newest first."""
    store = get_chat_store()
    if store is None:
        return []
    rows = await store.list_chats(user_id)
    return [ChatSummary(**row) for row in rows]


@router.get("/chats/{chat_id}", response_model=ChatDetail)
async def get_chat(chat_id: str, user_id: str = Depends(get_user_id)) -> ChatDetail:
    chat_id = require_chat_id(chat_id)
    store = _require_store()
    try:
        chat = await store.get_chat(user_id, chat_id)
    except ChatOwnershipError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from exc
    except ChatNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found") from exc
    return ChatDetail(
        id=chat["id"],
        name=chat["name"],
        created_at=chat["created_at"],
        messages=chat["messages"],
    )


@router.patch("/chats/{chat_id}", response_model=RenameChatResponse)
async def rename_chat(
    chat_id: str,
    payload: RenameChatRequest,
    user_id: str = Depends(get_user_id),
) -> RenameChatResponse:
    """Rename one of the caller's chats."""
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    if len(name) > MAX_CHAT_NAME_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Name must be at most {MAX_CHAT_NAME_LENGTH} characters",
        )
    chat_id = require_chat_id(chat_id)
    store = _require_store()

    try:
        await store.rename_chat(user_id, chat_id, name)
    except ChatOwnershipError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from exc
    except ChatNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    logger.info("Chat renamed", extra={"chat_id": chat_id})
    return RenameChatResponse(success="Chat name updated")
