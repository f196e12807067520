"""Tool execution engine."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Collection
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_core import to_jsonable_python

from pgchat.llm.models import LLMToolCall
from pgchat.tools.base import ToolContext, ToolName
from pgchat.tools.policy import PolicyEngine, ToolPolicyError
from pgchat.tools.registry import ToolRegistry, UnknownToolError

logger = logging.getLogger(__name__)


class ToolOutcome(BaseModel):
    """Resolved result of one tool call. ``result`` is always JSON-safe."""

    tool_call_id: str = ""
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: bool = Field(
        default=False,
        description="True when dispatch itself failed (unknown tool, bad arguments, timeout)",
    )


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg')}")
    return "; ".join(problems)


class ToolExecutor:
    """
    Dispatches tool calls. Never raises for tool-level failures: every
    problem becomes a string result the reasoning model can read.
    """

    def __init__(self, policy_engine: PolicyEngine | None = None) -> None:
        self.policy_engine = policy_engine or PolicyEngine()

    async def execute(
        self,
        name: str,
        args: dict[str, Any],
        ctx: ToolContext,
        allowed: Collection[ToolName] | None = None,
    ) -> ToolOutcome:
        """
        Run one tool. When ``allowed`` is given, names outside it are treated
        as unknown, so only the tools offered to the model can be dispatched.
        """
        try:
            tool_name = ToolRegistry.resolve_name(name)
            if allowed is not None and tool_name not in allowed:
                raise UnknownToolError(f"Unknown tool: {name}")
            definition = ToolRegistry.get_definition(tool_name)
            handler = ToolRegistry.get_handler(tool_name)
            self.policy_engine.enforce(definition, ctx)
            arguments = definition.arguments_model.model_validate(args)
        except (UnknownToolError, ToolPolicyError) as exc:
            logger.warning(f"Tool call rejected: {exc}")
            return ToolOutcome(tool_name=name, args=args, result=str(exc), error=True)
        except ValidationError as exc:
            message = f"Invalid arguments for {name}: {_describe_validation_error(exc)}"
            logger.warning(message)
            return ToolOutcome(tool_name=name, args=args, result=message, error=True)

        ctx.log_action("tool_invoked", {"tool": name, "args": list(args.keys())})
        timeout = self.policy_engine.timeout_for(definition, ctx)

        try:
            result = handler(**arguments.model_dump(), ctx=ctx)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Tool execution timed out: {name} after {timeout}s")
            return ToolOutcome(
                tool_name=name,
                args=args,
                result=f"Tool {name} timed out after {timeout}s",
                error=True,
            )
        except Exception as exc:
            logger.error(f"Tool execution failed: {name} - {exc}")
            return ToolOutcome(
                tool_name=name, args=args, result=f"Error running {name}, {exc}", error=True
            )

        ctx.log_action("tool_completed", {"tool": name})
        return ToolOutcome(
            tool_name=name,
            args=args,
            result=to_jsonable_python(result, fallback=str),
        )

    async def execute_call(
        self,
        call: LLMToolCall,
        ctx: ToolContext,
        allowed: Collection[ToolName] | None = None,
    ) -> ToolOutcome:
        try:
            args = call.parsed_arguments()
        except ValueError as exc:
            outcome = ToolOutcome(
                tool_name=call.name,
                result=f"Invalid arguments for {call.name}: {exc}",
                error=True,
            )
        else:
            outcome = await self.execute(call.name, args, ctx, allowed)
        outcome.tool_call_id = call.id
        return outcome

    async def execute_calls(
        self,
        calls: list[LLMToolCall],
        ctx: ToolContext,
        allowed: Collection[ToolName] | None = None,
    ) -> list[ToolOutcome]:
        """
        Run the calls of one model step concurrently.

        Each tool opens its own session, so the calls are independent.
        Outcomes are returned in emission order, not completion order.
        """
        return list(
            await asyncio.gather(*(self.execute_call(call, ctx, allowed) for call in calls))
        )
