"""
Quarry migration snapshots - declared schema and migration files.

A snapshot maps ``table -> {column: definition}`` using the same column
definitions the synchroniser renders. ``makemigrations`` writes one JSON
file per change, named ``<NNNN>_auto_<YYYYMMDDHHMMSS>.json``, next to an
index file ``migrations.json`` holding ``{"applied": [...]}``.

Migration files are an audit trail. Applying always diffs against the live
schema, never against earlier files.
"""

from __future__ import annotations

import datetime
import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Type, Union, TYPE_CHECKING

from ..faults.domains import MigrationFault

if TYPE_CHECKING:
    from ..models.base import Model

logger = logging.getLogger("quarry.migrations")

__all__ = [
    "INDEX_FILE",
    "Snapshot",
    "build_snapshot",
    "list_migration_files",
    "latest_snapshot",
    "load_index",
    "save_index",
    "makemigrations",
]

INDEX_FILE = "migrations.json"
MIGRATION_FILE_RE = re.compile(r"^(\d{4})_auto_(\d{14})\.json$")

Snapshot = Dict[str, Dict[str, str]]
PathLike = Union[str, Path]


def build_snapshot(models: Iterable[Type[Model]], dialect: str = "sqlite") -> Snapshot:
    """Declared schema for ``models``, join tables included."""
    snapshot: Snapshot = {}
    for model in models:
        meta = model._meta
        if meta.abstract:
            continue
        snapshot[meta.table_name] = {
            field.column_name: field.sql_definition(dialect) for field in meta.concrete_fields
        }
        for m2m in meta.many_to_many:
            snapshot.setdefault(m2m.join_table_name(), m2m.join_table_definitions(dialect))
    return snapshot


def list_migration_files(migrations_dir: PathLike) -> List[Path]:
    """Migration files in sequence order (the index file is not one)."""
    directory = Path(migrations_dir)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if MIGRATION_FILE_RE.match(p.name))


def latest_snapshot(migrations_dir: PathLike) -> Optional[Snapshot]:
    files = list_migration_files(migrations_dir)
    if not files:
        return None
    return _read_json(files[-1])


def load_index(migrations_dir: PathLike) -> List[str]:
    """Names of applied migrations, in application order."""
    path = Path(migrations_dir) / INDEX_FILE
    if not path.exists():
        return []
    data = _read_json(path)
    applied = data.get("applied") if isinstance(data, dict) else None
    if not isinstance(applied, list):
        raise MigrationFault(INDEX_FILE, "index file must hold an 'applied' list")
    return [str(name) for name in applied]


def save_index(migrations_dir: PathLike, applied: List[str]) -> None:
    path = Path(migrations_dir) / INDEX_FILE
    path.write_text(json.dumps({"applied": applied}, indent=2), encoding="utf-8")


def makemigrations(
    models: Iterable[Type[Model]],
    migrations_dir: PathLike = "migrations",
    dialect: str = "sqlite",
) -> Optional[Path]:
    """
    Write a migration file when the declared schema changed.

    Returns:
        Path of the new file, or None when the snapshot equals the latest one.
    """
    directory = Path(migrations_dir)
    directory.mkdir(parents=True, exist_ok=True)
    if not (directory / INDEX_FILE).exists():
        save_index(directory, [])

    snapshot = build_snapshot(models, dialect)
    if snapshot == latest_snapshot(directory):
        logger.warning("No changes detected")
        return None

    sequence = len(list_migration_files(directory)) + 1
    stamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d%H%M%S")
    path = directory / f"{sequence:04d}_auto_{stamp}.json"
    path.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
    logger.info(f"Generated migration: {path}")
    return path


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise MigrationFault(path.name, f"invalid JSON: {exc}") from exc
