"""Request-scoped dependencies shared by the routers."""

from __future__ import annotations

import logging
import uuid

from fastapi import Header, HTTPException, status

from pgchat.config import get_settings
from pgchat.conversations import ChatStore

logger = logging.getLogger(__name__)


def get_chat_store() -> ChatStore | None:
    from pgchat.api.main import app_state

    return app_state.get("chat_store")


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Resolve the caller.

    The upstream auth layer forwards the authenticated user in
    ``x-user-id``. In CLI mode there is a single local user.
    """
    if x_user_id:
        return x_user_id
    settings = get_settings()
    if settings.cli_mode:
        return settings.local_user_id
    logger.info("Unauthorized: no user on request")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def require_chat_id(chat_id: str) -> str:
    try:
        return str(uuid.UUID(chat_id))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid id") from exc
