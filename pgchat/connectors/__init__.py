"""Target database connectors."""

from pgchat.connectors.base import (
    BaseConnector,
    ColumnDescriptor,
    ConnectionError,
    ConnectorError,
    QueryError,
    QueryResult,
)
from pgchat.connectors.postgres import (
    VALID_CONNECTION_MESSAGE,
    PostgresConnector,
    check_connection,
    normalize_postgres_url,
    open_session,
)

__all__ = [
    "BaseConnector",
    "ColumnDescriptor",
    "ConnectionError",
    "ConnectorError",
    "PostgresConnector",
    "QueryError",
    "QueryResult",
    "VALID_CONNECTION_MESSAGE",
    "check_connection",
    "normalize_postgres_url",
    "open_session",
]
