"""Tool system base types and decorator."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, create_model

from pgchat.models.context import ConnectionContext

logger = logging.getLogger(__name__)


class ToolName(StrEnum):
    """
    Closed set of tools the reasoning model can call.

    Values are the function names the model and the browser client see.
    """

    LIST_TABLES = "getPublicTablesWithColumns"
    LIST_INDEXES = "getIndexes"
    INDEX_USAGE = "getIndexStatsUsage"
    TABLE_STATS = "getTableStats"
    FOREIGN_KEYS = "getForeignKeyConstraints"
    COLUMN_STATS = "getColumnStats"
    EXPLAIN = "getExplainForQuery"
    RUN_SQL = "runSql"


class ToolPolicy(BaseModel):
    enabled: bool = True
    max_execution_time_seconds: int | None = Field(default=None, ge=1)


class ToolDefinition(BaseModel):
    name: ToolName
    description: str
    policy: ToolPolicy
    arguments_model: type[BaseModel]
    parameters_schema: dict[str, Any]


class ToolContext(BaseModel):
    """Everything a tool handler may depend on for one invocation."""

    user_id: str
    correlation_id: str
    connection: ConnectionContext
    row_limit: int = 100
    query_timeout: int = 15
    default_timeout: int = 30

    @property
    def connection_string(self) -> str:
        return self.connection.dsn

    def log_action(self, action: str, metadata: dict[str, Any]) -> None:
        logger.info(
            "tool_action",
            extra={
                "user_id": self.user_id,
                "correlation_id": self.correlation_id,
                "action": action,
                "metadata": metadata,
            },
        )


def _build_arguments_model(name: ToolName, func: Callable[..., Any]) -> type[BaseModel]:
    signature = inspect.signature(func)
    type_hints = get_type_hints(func)
    fields: dict[str, Any] = {}

    for param_name, param in signature.parameters.items():
        if param_name in ("ctx", "context"):
            continue
        annotation = type_hints.get(param_name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param_name] = (annotation, default)

    return create_model(
        f"{name.name.title().replace('_', '')}Arguments",
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def _parameters_schema(arguments_model: type[BaseModel]) -> dict[str, Any]:
    schema = arguments_model.model_json_schema()
    properties = schema.get("properties", {})
    for property_schema in properties.values():
        property_schema.pop("title", None)
    return {
        "type": "object",
        "properties": properties,
        "required": schema.get("required", []),
        "additionalProperties": False,
    }


def tool(
    name: ToolName,
    description: str,
    **policy_kwargs: Any,
):
    def decorator(func: Callable[..., Any]):
        from pgchat.tools.registry import ToolRegistry

        arguments_model = _build_arguments_model(name, func)
        tool_def = ToolDefinition(
            name=name,
            description=description,
            policy=ToolPolicy(**policy_kwargs),
            arguments_model=arguments_model,
            parameters_schema=_parameters_schema(arguments_model),
        )
        ToolRegistry.register(tool_def, func)
        return func

    return decorator
