"""Explain and guarded SQL execution tools."""

from __future__ import annotations

import json
import logging
from typing import Any

from pgchat.connectors import ConnectorError, open_session
from pgchat.tools.base import ToolContext, ToolName, tool
from pgchat.tools.guard import (
    DEFAULT_ROW_LIMIT,
    DenylistGuard,
    StatementGuard,
    apply_row_limit,
    build_explain_statement,
)

logger = logging.getLogger(__name__)

default_guard: StatementGuard = DenylistGuard()


async def explain_query(connection_string: str, query: str, timeout: int = 15) -> Any:
    """
    Run ``EXPLAIN (FORMAT JSON)`` for a query and return the plan payload.

    Returns:
        The decoded JSON plan, or an error string.
    """
    statement = build_explain_statement(query)
    logger.debug("Explaining statement", extra={"statement": statement[:200]})
    try:
        async with open_session(connection_string, timeout=timeout) as connector:
            plan = await connector.fetchval(statement)
    except ConnectorError as e:
        logger.error(f"Error fetching explain for query: {e}")
        return f"Error fetching explain for query, {e}"

    if isinstance(plan, str):
        try:
            return json.loads(plan)
        except json.JSONDecodeError:
            return plan
    return plan


async def run_guarded_sql(
    connection_string: str,
    query: str,
    *,
    guard: StatementGuard | None = None,
    row_limit: int = DEFAULT_ROW_LIMIT,
    timeout: int = 15,
) -> dict[str, Any] | str:
    """
    Execute a free-form statement behind the guard and the row cap.

    The guard runs before any connection is opened, so a refused statement
    never reaches the database.

    Returns:
        ``{"columns", "rows", "row_count"}`` on success, otherwise a refusal
        or error string.
    """
    refusal = (guard or default_guard).check(query)
    if refusal:
        return refusal

    statement = apply_row_limit(query, row_limit)
    try:
        async with open_session(connection_string, timeout=timeout) as connector:
            result = await connector.execute(statement)
    except ConnectorError as e:
        logger.error(f"Error running query: {e}")
        return f"Error running query, {e}"

    return {
        "columns": [column.model_dump() for column in result.columns],
        "rows": result.rows,
        "row_count": result.row_count,
    }


@tool(
    name=ToolName.EXPLAIN,
    description=(
        "Analyzes and optimizes a given SQL query, providing a detailed execution plan "
        "in JSON format. If the query is not valid, it returns an error message. The "
        "function itself will add the EXPLAIN keyword to the query, so you don't need "
        "to include it."
    ),
)
async def get_explain_for_query(query: str, ctx: ToolContext) -> Any:
    return await explain_query(ctx.connection_string, query, timeout=ctx.query_timeout)


@tool(
    name=ToolName.RUN_SQL,
    description=(
        "Runs a read-only SQL query against the connected database and returns up to "
        "100 rows. Statements containing DROP, DELETE, ALTER, TRUNCATE, GRANT or "
        "REVOKE are refused."
    ),
)
async def run_sql(query: str, ctx: ToolContext) -> dict[str, Any] | str:
    return await run_guarded_sql(
        ctx.connection_string,
        query,
        row_limit=ctx.row_limit,
        timeout=ctx.query_timeout,
    )
