"""Guarded SQL execution and credential validation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status
from pydantic_core import to_jsonable_python

from pgchat.config import get_settings
from pgchat.connectors import check_connection
from pgchat.llm import check_api_key
from pgchat.models.api import (
    ApiKeyValidateRequest,
    ConnectionValidateRequest,
    MessageResponse,
    RunSqlRequest,
    RunSqlResponse,
)
from pgchat.tools.builtin.query import run_guarded_sql

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sql/run", response_model=RunSqlResponse)
async def run_sql(
    payload: RunSqlRequest,
    x_connection_string: str | None = Header(default=None),
) -> RunSqlResponse:
    """
    Run a user-supplied statement behind the denylist and the row cap.

    Refusals and database errors come back as a string ``result``.
    """
    if not x_connection_string:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No connection string provided",
        )
    settings = get_settings()
    result = await run_guarded_sql(
        x_connection_string,
        payload.query,
        row_limit=settings.agent.row_limit,
        timeout=settings.agent.query_timeout_seconds,
    )
    return RunSqlResponse(result=to_jsonable_python(result, fallback=str))


@router.post("/connections/validate", response_model=MessageResponse)
async def validate_connection(payload: ConnectionValidateRequest) -> MessageResponse:
    message = await check_connection(payload.connection_string)
    return MessageResponse(message=message)


@router.post("/openai/validate", response_model=MessageResponse)
async def validate_openai_key(payload: ApiKeyValidateRequest) -> MessageResponse:
    message = await check_api_key(payload.api_key)
    return MessageResponse(message=message)
