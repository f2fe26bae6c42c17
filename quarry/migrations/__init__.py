"""
Quarry migrations - snapshot files and live-schema synchronisation.

    path = makemigrations([User, Post], "migrations")
    report = await migrate(db, [User, Post], migrations_dir="migrations")
"""

from .engine import MigrationReport, SchemaSynchronizer, migrate, type_family
from .snapshot import (
    INDEX_FILE,
    build_snapshot,
    latest_snapshot,
    list_migration_files,
    load_index,
    makemigrations,
    save_index,
)

__all__ = [
    "makemigrations",
    "migrate",
    "MigrationReport",
    "SchemaSynchronizer",
    "type_family",
    "build_snapshot",
    "latest_snapshot",
    "list_migration_files",
    "load_index",
    "save_index",
    "INDEX_FILE",
]
