"""
Base Database Connector

Abstract base class for target database connectors. Provides a consistent
async interface for opening a short-lived session, running statements and
closing the session again.

All connectors must implement:
- connect(): Open exactly one session
- execute(): Run a statement and return rows with column descriptors
- fetchval(): Run a statement and return the first column of the first row
- close(): Release the session (idempotent)

Connectors are async context managers, so the session is released on every
exit path:

    async with PostgresConnector(connection_string) as connector:
        result = await connector.execute("SELECT 1 AS one")
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ============================================================================
# Data Models
# ============================================================================


class ColumnDescriptor(BaseModel):
    """Name and type of one result column."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Server-side type name")


class QueryResult(BaseModel):
    """Result from statement execution."""

    rows: list[dict[str, Any]] = Field(..., description="Result rows")
    row_count: int = Field(..., description="Number of rows returned")
    columns: list[ColumnDescriptor] = Field(
        default_factory=list, description="Result column descriptors"
    )
    execution_time_ms: float = Field(..., description="Execution time in ms")

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]


class ConnectorError(Exception):
    """Base exception for connector errors."""

    pass


class ConnectionError(ConnectorError):
    """Error establishing or managing the database session."""

    pass


class QueryError(ConnectorError):
    """Error executing a statement."""

    pass


# ============================================================================
# Base Connector
# ============================================================================


class BaseConnector(ABC):
    """
    Abstract base class for per-call database sessions.

    A connector owns at most one live session. There is no pooling: each
    tool call builds its own connector, uses it, and closes it.
    """

    def __init__(self, connection_string: str, timeout: int = 15, **kwargs):
        """
        Initialize connector.

        Args:
            connection_string: Database URL supplied by the caller
            timeout: Connect and statement timeout in seconds
            **kwargs: Additional connector-specific parameters
        """
        self.connection_string = connection_string
        self.timeout = timeout
        self.kwargs = kwargs

        self._conn = None
        self._connected = False

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the session. Idempotent.

        Raises:
            ConnectionError: If the session cannot be opened
        """
        pass

    @abstractmethod
    async def execute(self, query: str, params: list[Any] | None = None) -> QueryResult:
        """
        Execute a statement.

        Raises:
            QueryError: If execution fails
            ConnectionError: If not connected
        """
        pass

    @abstractmethod
    async def fetchval(self, query: str, params: list[Any] | None = None) -> Any:
        """
        Execute a statement and return a single value.

        Raises:
            QueryError: If execution fails
            ConnectionError: If not connected
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Safe to call multiple times."""
        pass

    @property
    def is_connected(self) -> bool:
        """Check if connector holds an open session."""
        return self._connected

    @property
    def display_target(self) -> str:
        """Connection target with credentials removed, for logs."""
        target = self.connection_string.rsplit("@", 1)[-1]
        return target.split("?", 1)[0]

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
        return False

    def __repr__(self) -> str:
        """String representation."""
        status = "connected" if self._connected else "disconnected"
        return f"<{self.__class__.__name__} {self.display_target} ({status})>"
