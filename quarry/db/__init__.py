"""
Quarry DB - explicit async database handle and backend adapters.

Usage:
    from quarry.db import Database

    db = Database("sqlite:///app.db")
    await db.connect()
    ...
    await db.disconnect()
"""

from .backends.base import AdapterCapabilities, ColumnInfo, ExecuteResult
from .engine import Database

__all__ = [
    "Database",
    "AdapterCapabilities",
    "ColumnInfo",
    "ExecuteResult",
]
