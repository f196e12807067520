"""
SQL statement guard and rewriting helpers.

The default guard is a textual keyword denylist, not a parser.
``SELECT deleted_at FROM users`` is refused because it contains ``DELETE``,
and a mutating statement that avoids every listed keyword (``UPDATE``,
``INSERT``) is let through. Callers depend only on the ``StatementGuard``
protocol so a parser-based guard can replace it.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

logger = logging.getLogger(__name__)

DENIED_KEYWORDS: tuple[str, ...] = ("DROP", "DELETE", "ALTER", "TRUNCATE", "GRANT", "REVOKE")
DEFAULT_ROW_LIMIT = 100

_LIMIT_CLAUSE = re.compile(r"\blimit\s*\d+", re.IGNORECASE)
_EXPLAIN_PREFIX = re.compile(
    r"^\s*explain\b\s*(?:\([^)]*\)\s*|analy[sz]e\b\s*|verbose\b\s*)*",
    re.IGNORECASE,
)
_LEADING_KEYWORD = re.compile(r"^([A-Za-z]+)(.*)$", re.DOTALL)


class StatementGuard(Protocol):
    def check(self, sql: str) -> str | None:
        """Return a refusal message, or None when the statement may run."""
        ...


class DenylistGuard:
    """Refuse statements containing any denied keyword, case-insensitively."""

    def __init__(self, keywords: tuple[str, ...] = DENIED_KEYWORDS) -> None:
        self.keywords = tuple(keyword.upper() for keyword in keywords)

    def check(self, sql: str) -> str | None:
        upper_sql = sql.upper()
        for keyword in self.keywords:
            if keyword in upper_sql:
                logger.info("Statement refused by denylist", extra={"keyword": keyword})
                return f"This action is not allowed {keyword}"
        return None


def _strip_terminator(sql: str) -> str:
    return sql.strip().rstrip(";").rstrip()


def has_limit_clause(sql: str) -> bool:
    return _LIMIT_CLAUSE.search(sql) is not None


def apply_row_limit(sql: str, limit: int = DEFAULT_ROW_LIMIT) -> str:
    """
    Append ``LIMIT <limit>`` unless the statement already has a LIMIT clause.

    Only the statement text is inspected; a LIMIT inside a CTE or subquery
    counts as present.
    """
    if has_limit_clause(sql):
        return sql
    return f"{_strip_terminator(sql)} LIMIT {limit}"


def strip_explain_prefix(sql: str) -> str:
    """
    Remove a leading EXPLAIN / EXPLAIN ANALYZE (with options) and the
    statement terminator. The first keyword of what remains is upper-cased.
    """
    statement = _EXPLAIN_PREFIX.sub("", sql.strip(), count=1)
    statement = _strip_terminator(statement)
    match = _LEADING_KEYWORD.match(statement)
    if match:
        statement = match.group(1).upper() + match.group(2)
    return statement


def build_explain_statement(sql: str) -> str:
    return f"EXPLAIN (FORMAT JSON) {strip_explain_prefix(sql)}"
