"""
Quarry DB Backend - Base Adapter Interface.

All database backends implement this interface. The ``Database`` handle
delegates to the appropriate adapter based on the connection URL.

The interface abstracts differences between SQLite and PostgreSQL:
- Parameter placeholder style (?, $1)
- Introspection queries
- RETURNING clause support
- Row count / last insert id reporting
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger("quarry.db.backends")

__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
    "ColumnInfo",
    "ExecuteResult",
]


@dataclass(frozen=True)
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_returning: bool = False
    param_style: str = "qmark"  # qmark (?) | numeric ($1)
    name: str = "base"


@dataclass
class ColumnInfo:
    """Introspection result for a single column."""

    name: str
    data_type: str
    nullable: bool = True
    default: Optional[str] = None
    primary_key: bool = False


@dataclass
class ExecuteResult:
    """Outcome of a write statement."""

    rowcount: int = 0
    lastrowid: Optional[int] = None


class DatabaseAdapter(ABC):
    """
    Abstract database adapter interface.

    SQL handed to an adapter always uses ``?`` placeholders; adapters whose
    driver expects another style rewrite it in ``adapt_sql``.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    @abstractmethod
    async def connect(self, url: str, **options) -> None:
        """Open a connection to the database."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection."""
        ...

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        """Execute a SQL statement and report affected rows."""
        ...

    @abstractmethod
    async def execute_many(self, sql: str, params_list: Sequence[Sequence[Any]]) -> None:
        """Execute a SQL statement with multiple parameter sets."""
        ...

    @abstractmethod
    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute and return all rows as dicts."""
        ...

    @abstractmethod
    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute and return one row as dict, or None."""
        ...

    @abstractmethod
    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute and return a scalar value."""
        ...

    # ── Introspection ────────────────────────────────────────────────

    @abstractmethod
    async def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        ...

    @abstractmethod
    async def get_tables(self) -> List[str]:
        """List all user table names."""
        ...

    @abstractmethod
    async def get_columns(self, table_name: str) -> List[ColumnInfo]:
        """Get column metadata for a table."""
        ...

    # ── Helpers ──────────────────────────────────────────────────────

    def adapt_sql(self, sql: str) -> str:
        """Rewrite ``?`` placeholders for the driver. Identity by default."""
        return sql

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @property
    @abstractmethod
    def dialect(self) -> str:
        """Dialect name used for SQL rendering ("sqlite", "postgresql")."""
        ...
