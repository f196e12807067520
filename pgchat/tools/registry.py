"""Tool registry keyed by the closed ToolName enumeration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import yaml

from pgchat.tools.base import ToolDefinition, ToolName

logger = logging.getLogger(__name__)


class UnknownToolError(LookupError):
    pass


class ToolRegistry:
    _definitions: dict[ToolName, ToolDefinition] = {}
    _handlers: dict[ToolName, Callable[..., Any]] = {}

    @classmethod
    def register(cls, definition: ToolDefinition, handler: Callable[..., Any]) -> None:
        cls._definitions[definition.name] = definition
        cls._handlers[definition.name] = handler
        logger.debug(f"Registered tool: {definition.name}")

    @staticmethod
    def resolve_name(raw_name: str) -> ToolName:
        """
        Map a model-supplied function name onto the enumeration.

        Raises:
            UnknownToolError: If the name is outside the tool set
        """
        try:
            return ToolName(raw_name)
        except ValueError as exc:
            raise UnknownToolError(f"Unknown tool: {raw_name}") from exc

    @classmethod
    def get_definition(cls, name: ToolName) -> ToolDefinition:
        try:
            return cls._definitions[name]
        except KeyError as exc:
            raise UnknownToolError(f"Tool not registered: {name}") from exc

    @classmethod
    def get_handler(cls, name: ToolName) -> Callable[..., Any]:
        try:
            return cls._handlers[name]
        except KeyError as exc:
            raise UnknownToolError(f"Tool not registered: {name}") from exc

    @classmethod
    def list_definitions(cls, names: list[ToolName] | None = None) -> list[ToolDefinition]:
        selected = names if names is not None else list(ToolName)
        return [cls._definitions[name] for name in selected if name in cls._definitions]

    @classmethod
    def ensure_complete(cls) -> None:
        """
        Verify every ToolName member has a handler.

        Raises:
            RuntimeError: Listing the members without a handler
        """
        missing = [name.value for name in ToolName if name not in cls._handlers]
        if missing:
            raise RuntimeError(f"Tools without handlers: {', '.join(missing)}")

    @classmethod
    def load_policy_config(cls, path: str | Path) -> None:
        policy_path = Path(path)
        if not policy_path.exists():
            logger.warning(f"Tool policy file not found: {policy_path}")
            return

        data = yaml.safe_load(policy_path.read_text()) or {}
        for tool_policy in data.get("tools", []):
            raw_name = tool_policy.get("name")
            try:
                name = cls.resolve_name(raw_name or "")
            except UnknownToolError:
                logger.warning(f"Ignoring policy for unknown tool: {raw_name}")
                continue
            if name not in cls._definitions:
                continue
            definition = cls._definitions[name]
            policy = definition.policy.model_copy(
                update={
                    key: tool_policy[key]
                    for key in ("enabled", "max_execution_time_seconds")
                    if key in tool_policy
                }
            )
            cls._definitions[name] = definition.model_copy(update={"policy": policy})
            logger.info(f"Loaded policy for tool: {name}")
