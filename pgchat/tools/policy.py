"""Policy enforcement for tool execution."""

from __future__ import annotations

from pgchat.tools.base import ToolContext, ToolDefinition


class ToolPolicyError(Exception):
    pass


class PolicyEngine:
    def enforce(self, definition: ToolDefinition, ctx: ToolContext) -> None:
        if not definition.policy.enabled:
            raise ToolPolicyError(f"Tool '{definition.name}' is disabled by policy.")

    def timeout_for(self, definition: ToolDefinition, ctx: ToolContext) -> int:
        return definition.policy.max_execution_time_seconds or ctx.default_timeout
