"""Tool system entrypoint."""

from __future__ import annotations

from pathlib import Path

from pgchat.tools.base import ToolContext, ToolName
from pgchat.tools.executor import ToolExecutor, ToolOutcome
from pgchat.tools.policy import PolicyEngine
from pgchat.tools.registry import ToolRegistry

AGENT_TOOLS: tuple[ToolName, ...] = (
    ToolName.LIST_TABLES,
    ToolName.EXPLAIN,
    ToolName.INDEX_USAGE,
    ToolName.LIST_INDEXES,
    ToolName.TABLE_STATS,
    ToolName.FOREIGN_KEYS,
    ToolName.COLUMN_STATS,
)


def initialize_tools(policy_path: str | Path | None = None) -> None:
    # Register built-in tools
    from pgchat.tools import builtin  # noqa: F401

    ToolRegistry.ensure_complete()
    if policy_path:
        ToolRegistry.load_policy_config(policy_path)


def agent_tool_names(expose_run_sql: bool = False) -> list[ToolName]:
    """Tools offered to the reasoning model, minus any disabled by policy."""
    names = list(AGENT_TOOLS)
    if expose_run_sql:
        names.append(ToolName.RUN_SQL)
    return [
        definition.name
        for definition in ToolRegistry.list_definitions(names)
        if definition.policy.enabled
    ]


__all__ = [
    "AGENT_TOOLS",
    "PolicyEngine",
    "ToolContext",
    "ToolExecutor",
    "ToolName",
    "ToolOutcome",
    "ToolRegistry",
    "agent_tool_names",
    "initialize_tools",
]
