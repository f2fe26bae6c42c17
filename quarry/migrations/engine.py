"""
Quarry schema synchroniser - forward-only, diff against the live schema.

For every model, in the order given:

- table absent: ``CREATE TABLE`` with every non many-to-many column
- table present: drop columns the model no longer declares, re-introspect,
  then ``ALTER TABLE ... ADD COLUMN`` for the missing ones

Column types are never altered in place; a column whose type family
differs from its declaration fails that table with a SchemaFault. Join
tables are created in a second pass. A failure on one table is logged and
recorded and the run moves on; nothing is retried.

Usage:
    report = await migrate(db, [User, Post, Tag], migrations_dir="migrations")
    print(report.statements)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Type, TYPE_CHECKING

from ..faults.domains import MigrationFault, SchemaFault
from ..models.sql import quote_identifier
from .snapshot import PathLike, list_migration_files, load_index, save_index

if TYPE_CHECKING:
    from ..db.engine import Database
    from ..models.base import Model

logger = logging.getLogger("quarry.migrations")

__all__ = [
    "MigrationReport",
    "SchemaSynchronizer",
    "migrate",
    "type_family",
]


# Checked in order; the first keyword found names the family.
_TYPE_FAMILIES = (
    ("timestamp", "timestamp"),
    ("datetime", "timestamp"),
    ("serial", "integer"),
    ("int", "integer"),
    ("bool", "boolean"),
    ("json", "json"),
    ("uuid", "uuid"),
    ("char", "text"),
    ("text", "text"),
    ("clob", "text"),
    ("real", "real"),
    ("float", "real"),
    ("double", "real"),
    ("numeric", "numeric"),
    ("decimal", "numeric"),
    ("blob", "blob"),
    ("bytea", "blob"),
    ("date", "date"),
    ("time", "time"),
)


def type_family(sql_type: Optional[str]) -> Optional[str]:
    """
    Reduce a declared or introspected SQL type to a comparable family.

        >>> type_family("VARCHAR(150)"), type_family("character varying")
        ('text', 'text')

    Returns None for an empty type.
    """
    text = (sql_type or "").strip().lower()
    if not text:
        return None
    for keyword, family in _TYPE_FAMILIES:
        if keyword in text:
            return family
    return text


@dataclass
class MigrationReport:
    """Outcome of one synchronisation run."""

    statements: List[str] = field(default_factory=list)
    tables: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class SchemaSynchronizer:
    """Brings the live schema of ``db`` in line with ``models``."""

    def __init__(self, db: Database, models: Iterable[Type[Model]]):
        self.db = db
        self.models: List[Type[Model]] = []
        for model in models:
            if not model._meta.abstract and model not in self.models:
                self.models.append(model)
        self.report = MigrationReport()

    @property
    def dialect(self) -> str:
        return self.db.dialect

    async def _execute(self, sql: str) -> None:
        await self.db.execute(sql)
        self.report.statements.append(sql)

    async def run(self) -> MigrationReport:
        failed_models = set()
        for model in self.models:
            table = model._meta.table_name
            try:
                await self.sync_table(model)
                self.report.tables.append(table)
            except Exception as exc:
                logger.error(f"Migration of table '{table}' failed: {exc}")
                self.report.failures[table] = str(exc)
                failed_models.add(model)

        for model in self.models:
            for m2m in model._meta.many_to_many:
                join_table = m2m.join_table_name()
                if model in failed_models:
                    logger.warning(
                        f"Skipping join table '{join_table}': table "
                        f"'{model._meta.table_name}' failed"
                    )
                    continue
                try:
                    if await self.create_join_table(m2m):
                        self.report.tables.append(join_table)
                except Exception as exc:
                    logger.error(f"Creating join table '{join_table}' failed: {exc}")
                    self.report.failures[join_table] = str(exc)

        logger.info(
            f"Schema sync finished: {len(self.report.statements)} statement(s), "
            f"{len(self.report.failures)} failure(s)"
        )
        return self.report

    async def sync_table(self, model: Type[Model]) -> None:
        meta = model._meta
        table = meta.table_name
        declared = {f.column_name: f for f in meta.concrete_fields}

        if not await self.db.table_exists(table):
            columns = ", ".join(f.render_column_sql(self.dialect) for f in declared.values())
            await self._execute(f"CREATE TABLE {quote_identifier(table)} ({columns})")
            logger.info(f"Created table: {table}")
            return

        live = {c.name: c for c in await self.db.get_columns(table)}

        for name, column in live.items():
            if name not in declared:
                continue
            expected = type_family(declared[name].sql_type(self.dialect))
            actual = type_family(column.data_type)
            if expected is None or actual is None:
                continue
            if expected != actual:
                raise SchemaFault(
                    table,
                    f"column '{name}' is {column.data_type} in the database but "
                    f"declared as {declared[name].sql_type(self.dialect)}; "
                    f"types are not altered automatically",
                )

        extra = [name for name in live if name not in declared]
        for name in extra:
            await self._execute(
                f"ALTER TABLE {quote_identifier(table)} DROP COLUMN {quote_identifier(name)}"
            )
            logger.info(f"Dropped column {table}.{name}")

        if extra:
            live = {c.name: c for c in await self.db.get_columns(table)}

        for name, fld in declared.items():
            if name in live:
                continue
            await self._execute(
                f"ALTER TABLE {quote_identifier(table)} "
                f"ADD COLUMN {fld.render_column_sql(self.dialect, with_unique=False)}"
            )
            logger.info(f"Added column {table}.{name}")
            if fld.is_unique:
                index = quote_identifier(f"{table}_{name}_uniq")
                await self._execute(
                    f"CREATE UNIQUE INDEX {index} ON {quote_identifier(table)} ({quote_identifier(name)})"
                )

    async def create_join_table(self, m2m) -> bool:
        """Create the join table for ``m2m`` if absent. Returns True when created."""
        table = m2m.join_table_name()
        if await self.db.table_exists(table):
            return False
        await self._execute(m2m.join_table_sql(self.dialect))
        logger.info(f"Created join table: {table}")
        return True


async def migrate(
    db: Database,
    models: Iterable[Type[Model]],
    migrations_dir: Optional[PathLike] = None,
    raise_on_error: bool = True,
) -> MigrationReport:
    """
    Synchronise the live schema with ``models``.

    When ``migrations_dir`` is given and the run had no failures, migration
    files not yet in the index are recorded as applied.

    Raises:
        MigrationFault: after every table was processed, if any failed and
            ``raise_on_error`` is set.
    """
    logger.info("Applying migrations...")
    report = await SchemaSynchronizer(db, models).run()

    if migrations_dir is not None and report.ok and Path(migrations_dir).is_dir():
        applied = load_index(migrations_dir)
        pending = [p.stem for p in list_migration_files(migrations_dir) if p.stem not in applied]
        if pending:
            save_index(migrations_dir, applied + pending)
        for name in pending:
            logger.info(f"Marked migration applied: {name}")

    if report.failures and raise_on_error:
        details = "; ".join(f"{table}: {reason}" for table, reason in report.failures.items())
        raise MigrationFault("migrate", details)
    return report
