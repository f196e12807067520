"""Read-only catalog and statistics tools.

Every tool opens its own session, runs its catalog query and closes the
session again. Failures come back as ``"Error fetching ..., <detail>"``
strings so the reasoning model can explain them instead of the turn
aborting.
"""

from __future__ import annotations

import logging
from typing import Any

from pgchat.connectors import ConnectorError, open_session
from pgchat.tools.base import ToolContext, ToolName, tool

logger = logging.getLogger(__name__)

_SYSTEM_SCHEMA_FILTER = (
    "NOT IN ('pg_catalog', 'information_schema') AND {column} NOT LIKE 'pg_toast%'"
)


def _user_schemas(column: str) -> str:
    return f"{column} {_SYSTEM_SCHEMA_FILTER.format(column=column)}"


TABLES_QUERY = f"""
    SELECT table_schema, table_name, table_type
    FROM information_schema.tables
    WHERE {_user_schemas("table_schema")}
    ORDER BY table_schema, table_name
"""

COLUMNS_QUERY = f"""
    SELECT table_schema, table_name, column_name, data_type, is_nullable
    FROM information_schema.columns
    WHERE {_user_schemas("table_schema")}
    ORDER BY table_schema, table_name, ordinal_position
"""

INDEXES_QUERY = f"""
    SELECT indexname, tablename, schemaname, indexdef
    FROM pg_indexes
    WHERE {_user_schemas("schemaname")}
    ORDER BY schemaname, tablename, indexname
"""

INDEX_USAGE_QUERY = """
    SELECT schemaname, relname, indexrelname, idx_scan, idx_tup_read, idx_tup_fetch
    FROM pg_stat_user_indexes
    ORDER BY schemaname, relname, indexrelname
"""

TABLE_STATS_QUERY = """
    SELECT
        schemaname,
        relname,
        n_live_tup AS row_estimate,
        pg_total_relation_size(relid) AS total_bytes,
        pg_relation_size(relid) AS table_bytes,
        pg_indexes_size(relid) AS index_bytes,
        last_vacuum,
        last_autovacuum,
        last_analyze,
        last_autoanalyze
    FROM pg_stat_user_tables
    ORDER BY pg_total_relation_size(relid) DESC, schemaname, relname
"""

FOREIGN_KEYS_QUERY = f"""
    SELECT
        tc.constraint_name,
        tc.table_schema,
        tc.table_name,
        kcu.column_name,
        ccu.table_schema AS foreign_table_schema,
        ccu.table_name AS foreign_table_name,
        ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.constraint_schema = tc.constraint_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
    AND {_user_schemas("tc.table_schema")}
    ORDER BY tc.table_schema, tc.table_name, tc.constraint_name, kcu.ordinal_position
"""

# most_common_vals is anyarray, which has no binary decoder; send it as text.
COLUMN_STATS_QUERY = f"""
    SELECT
        schemaname,
        tablename,
        attname,
        n_distinct,
        null_frac,
        avg_width,
        most_common_vals::text AS most_common_vals,
        most_common_freqs
    FROM pg_stats
    WHERE {_user_schemas("schemaname")}
    AND ($1::text IS NULL OR tablename = $1::text)
    ORDER BY schemaname, tablename, attname
"""


async def _fetch_rows(
    ctx: ToolContext, query: str, params: list[Any] | None = None
) -> list[dict[str, Any]]:
    async with open_session(ctx.connection_string, timeout=ctx.query_timeout) as connector:
        result = await connector.execute(query, params)
    return result.rows


def group_columns_by_table(
    tables: list[dict[str, Any]], columns: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Attach column descriptors to their tables, keeping catalog order."""
    by_table: dict[tuple[str, str], list[dict[str, Any]]] = {}
    for column in columns:
        key = (column["table_schema"], column["table_name"])
        by_table.setdefault(key, []).append(
            {
                "name": column["column_name"],
                "type": column["data_type"],
                "is_nullable": column["is_nullable"] == "YES",
            }
        )

    return [
        {
            "table_name": table["table_name"],
            "schema_name": table["table_schema"],
            "table_type": table["table_type"],
            "columns": by_table.get((table["table_schema"], table["table_name"]), []),
        }
        for table in tables
    ]


@tool(
    name=ToolName.LIST_TABLES,
    description=(
        "Retrieves a list of tables and their columns from the connected "
        "PostgreSQL database."
    ),
)
async def list_tables_with_columns(ctx: ToolContext) -> list[dict[str, Any]] | str:
    try:
        async with open_session(ctx.connection_string, timeout=ctx.query_timeout) as connector:
            tables = await connector.execute(TABLES_QUERY)
            columns = await connector.execute(COLUMNS_QUERY)
    except ConnectorError as e:
        logger.error(f"Error fetching tables with columns: {e}")
        return f"Error fetching tables with columns, {e}"
    return group_columns_by_table(tables.rows, columns.rows)


@tool(
    name=ToolName.LIST_INDEXES,
    description="Retrieves the indexes present in the connected database.",
)
async def list_indexes(ctx: ToolContext) -> list[dict[str, Any]] | str:
    try:
        return await _fetch_rows(ctx, INDEXES_QUERY)
    except ConnectorError as e:
        logger.error(f"Error fetching indexes: {e}")
        return f"Error fetching indexes, {e}"


@tool(
    name=ToolName.INDEX_USAGE,
    description="Retrieves usage statistics for indexes in the database.",
)
async def index_usage_stats(ctx: ToolContext) -> list[dict[str, Any]] | str:
    try:
        return await _fetch_rows(ctx, INDEX_USAGE_QUERY)
    except ConnectorError as e:
        logger.error(f"Error fetching index stats usage: {e}")
        return f"Error fetching index stats usage, {e}"


@tool(
    name=ToolName.TABLE_STATS,
    description="Retrieves statistics about tables, including row counts and sizes.",
)
async def table_stats(ctx: ToolContext) -> list[dict[str, Any]] | str:
    try:
        return await _fetch_rows(ctx, TABLE_STATS_QUERY)
    except ConnectorError as e:
        logger.error(f"Error fetching table stats: {e}")
        return f"Error fetching table stats, {e}"


@tool(
    name=ToolName.FOREIGN_KEYS,
    description="Retrieves information about foreign key relationships between tables.",
)
async def foreign_key_constraints(ctx: ToolContext) -> list[dict[str, Any]] | str:
    try:
        return await _fetch_rows(ctx, FOREIGN_KEYS_QUERY)
    except ConnectorError as e:
        logger.error(f"Error fetching foreign key constraints: {e}")
        return f"Error fetching foreign key constraints, {e}"


@tool(
    name=ToolName.COLUMN_STATS,
    description=(
        "Retrieves planner statistics per column (distinct values, null fraction, "
        "average width, most common values). Optionally restricted to one table."
    ),
)
async def column_stats(
    table_name: str | None = None, *, ctx: ToolContext
) -> list[dict[str, Any]] | str:
    try:
        return await _fetch_rows(ctx, COLUMN_STATS_QUERY, [table_name])
    except ConnectorError as e:
        logger.error(f"Error fetching column stats: {e}")
        return f"Error fetching column stats, {e}"
