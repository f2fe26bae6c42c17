"""
Quarry DB Backend - SQLite adapter via aiosqlite.

This is the default backend. It wraps aiosqlite and implements
the full DatabaseAdapter interface including introspection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from .base import (
    DatabaseAdapter,
    AdapterCapabilities,
    ColumnInfo,
    ExecuteResult,
)

try:
    import aiosqlite
except ImportError:
    aiosqlite = None  # type: ignore[assignment]

logger = logging.getLogger("quarry.db.backends.sqlite")

__all__ = ["SQLiteAdapter"]


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using aiosqlite.

    Features:
    - Foreign key enforcement (``PRAGMA foreign_keys=ON``)
    - Auto-commit after every write statement
    - Introspection through ``sqlite_master`` and ``PRAGMA table_info``
    """

    capabilities = AdapterCapabilities(
        supports_returning=False,
        param_style="qmark",
        name="sqlite",
    )

    def __init__(self):
        self._connection: Any = None
        self._connected = False
        self._lock = asyncio.Lock()

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return
        if aiosqlite is None:
            raise ImportError(
                "aiosqlite is required for SQLite backend. "
                "Install: pip install aiosqlite"
            )
        async with self._lock:
            if self._connected:
                return
            db_path = self._parse_url(url)
            self._connection = await aiosqlite.connect(db_path, **options)
            await self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.row_factory = aiosqlite.Row
            self._connected = True
            logger.info(f"SQLite connected: {db_path}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
            self._connected = False
            logger.info("SQLite disconnected")

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        if not self._connected:
            raise RuntimeError("Not connected")
        cursor = await self._connection.execute(sql, list(params or []))
        await self._connection.commit()
        result = ExecuteResult(rowcount=cursor.rowcount, lastrowid=cursor.lastrowid)
        await cursor.close()
        return result

    async def execute_many(self, sql: str, params_list: Sequence[Sequence[Any]]) -> None:
        if not self._connected:
            raise RuntimeError("Not connected")
        await self._connection.executemany(sql, params_list)
        await self._connection.commit()

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        if not self._connected:
            raise RuntimeError("Not connected")
        async with self._connection.execute(sql, list(params or [])) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        if not self._connected:
            raise RuntimeError("Not connected")
        async with self._connection.execute(sql, list(params or [])) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        if not self._connected:
            raise RuntimeError("Not connected")
        async with self._connection.execute(sql, list(params or [])) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return row[0]

    # ── Introspection ────────────────────────────────────────────────

    async def table_exists(self, table_name: str) -> bool:
        row = await self.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            [table_name],
        )
        return row is not None

    async def get_tables(self) -> List[str]:
        rows = await self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [r["name"] for r in rows]

    async def get_columns(self, table_name: str) -> List[ColumnInfo]:
        # Table names reaching here have passed the identifier allow-list
        rows = await self.fetch_all(f'PRAGMA table_info("{table_name}")')
        columns = []
        for row in rows:
            columns.append(ColumnInfo(
                name=row["name"],
                data_type=row["type"],
                nullable=not row["notnull"],
                default=row["dflt_value"],
                primary_key=bool(row["pk"]),
            ))
        return columns

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def dialect(self) -> str:
        return "sqlite"

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"
