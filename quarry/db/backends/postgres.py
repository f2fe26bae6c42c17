"""
Quarry DB Backend - PostgreSQL adapter via asyncpg.

Holds a single asyncpg connection (no pool) and introspects through
``information_schema``.

Requires asyncpg:
    pip install asyncpg
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from .base import (
    DatabaseAdapter,
    AdapterCapabilities,
    ColumnInfo,
    ExecuteResult,
)

logger = logging.getLogger("quarry.db.backends.postgres")

__all__ = ["PostgresAdapter"]

try:
    import asyncpg
    _HAS_ASYNCPG = True
except ImportError:
    asyncpg = None  # type: ignore
    _HAS_ASYNCPG = False


class PostgresAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter using one asyncpg connection.

    Features:
    - ``RETURNING`` support for inserts
    - Introspection via information_schema (``public`` schema)
    - Automatic ``?`` -> ``$N`` placeholder conversion (string-literal safe)
    """

    capabilities = AdapterCapabilities(
        supports_returning=True,
        param_style="numeric",  # $1, $2, ...
        name="postgresql",
    )

    def __init__(self):
        self._conn: Any = None
        self._connected = False

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return

        if not _HAS_ASYNCPG:
            raise ImportError(
                "asyncpg is required for PostgreSQL support.\n"
                "Install: pip install asyncpg"
            )

        self._conn = await asyncpg.connect(_normalize_url(url), **options)
        self._connected = True
        logger.info(f"PostgreSQL connected via asyncpg: {_mask_url(url)}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
        self._connected = False
        logger.info("PostgreSQL disconnected")

    def adapt_sql(self, sql: str) -> str:
        """
        Convert ``?`` placeholders to ``$1, $2, ...`` for asyncpg.

        String-literal safe: skips ``?`` inside single-quoted strings.
        """
        result: list[str] = []
        param_idx = 0
        in_string = False
        i = 0
        while i < len(sql):
            ch = sql[i]
            if ch == "'" and not in_string:
                in_string = True
                result.append(ch)
            elif ch == "'" and in_string:
                # Escaped quote ''
                if i + 1 < len(sql) and sql[i + 1] == "'":
                    result.append("''")
                    i += 2
                    continue
                in_string = False
                result.append(ch)
            elif ch == "?" and not in_string:
                param_idx += 1
                result.append(f"${param_idx}")
            else:
                result.append(ch)
            i += 1
        return "".join(result)

    def _require_conn(self) -> Any:
        if not self._connected or self._conn is None:
            raise RuntimeError("Not connected to PostgreSQL")
        return self._conn

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        conn = self._require_conn()
        status = await conn.execute(self.adapt_sql(sql), *(params or []))
        return ExecuteResult(rowcount=_rowcount_from_status(status))

    async def execute_many(self, sql: str, params_list: Sequence[Sequence[Any]]) -> None:
        conn = self._require_conn()
        await conn.executemany(self.adapt_sql(sql), params_list)

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        conn = self._require_conn()
        rows = await conn.fetch(self.adapt_sql(sql), *(params or []))
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        conn = self._require_conn()
        row = await conn.fetchrow(self.adapt_sql(sql), *(params or []))
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        conn = self._require_conn()
        return await conn.fetchval(self.adapt_sql(sql), *(params or []))

    # ── Introspection ────────────────────────────────────────────────

    async def table_exists(self, table_name: str) -> bool:
        row = await self.fetch_one(
            "SELECT EXISTS(SELECT 1 FROM information_schema.tables "
            "WHERE table_schema='public' AND table_name=?) AS e",
            [table_name],
        )
        return bool(row and row.get("e"))

    async def get_tables(self) -> List[str]:
        rows = await self.fetch_all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema='public' ORDER BY table_name"
        )
        return [r["table_name"] for r in rows]

    async def get_columns(self, table_name: str) -> List[ColumnInfo]:
        rows = await self.fetch_all(
            "SELECT column_name, data_type, is_nullable, column_default "
            "FROM information_schema.columns "
            "WHERE table_schema='public' AND table_name=? "
            "ORDER BY ordinal_position",
            [table_name],
        )
        columns = []
        for row in rows:
            columns.append(ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                nullable=row["is_nullable"] == "YES",
                default=row.get("column_default"),
            ))
        return columns

    @property
    def is_connected(self) -> bool:
        return self._connected and self._conn is not None

    @property
    def dialect(self) -> str:
        return "postgresql"


def _normalize_url(url: str) -> str:
    """asyncpg accepts postgresql:// and postgres:// but not driver suffixes."""
    if url.startswith("postgresql+"):
        return "postgresql://" + url.split("://", 1)[1]
    return url


def _rowcount_from_status(status: Any) -> int:
    """Parse asyncpg's command tag ("UPDATE 3", "INSERT 0 1")."""
    if not isinstance(status, str):
        return 0
    tail = status.rsplit(" ", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def _mask_url(url: str) -> str:
    """Mask password in URL for logging."""
    if "@" in url:
        pre, host = url.rsplit("@", 1)
        scheme, _, credentials = pre.partition("://")
        if ":" in credentials:
            user = credentials.split(":", 1)[0]
            return f"{scheme}://{user}:***@{host}"
    return url
