"""
Quarry DB backends.

- ``sqlite``: aiosqlite (default)
- ``postgres``: asyncpg (``pip install quarry-orm[postgres]``)
"""

from .base import AdapterCapabilities, ColumnInfo, DatabaseAdapter, ExecuteResult

__all__ = [
    "AdapterCapabilities",
    "ColumnInfo",
    "DatabaseAdapter",
    "ExecuteResult",
]
