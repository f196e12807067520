"""Tool listing endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from pgchat.config import get_settings
from pgchat.models.api import ToolInfo
from pgchat.tools import ToolRegistry, agent_tool_names

router = APIRouter()


@router.get("/tools", response_model=list[ToolInfo])
async def list_tools() -> list[ToolInfo]:
    """Tools the reasoning model is offered on each turn."""
    names = agent_tool_names(get_settings().agent.expose_run_sql)
    return [
        ToolInfo(
            name=definition.name.value,
            description=definition.description,
            enabled=definition.policy.enabled,
            parameters_schema=definition.parameters_schema,
        )
        for definition in ToolRegistry.list_definitions(names)
    ]
