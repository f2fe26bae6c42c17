"""
Tests for the migration system: live-schema synchronisation, type
families, snapshot files and the applied-migrations index.
"""

import json
import logging
import re

import pytest

from quarry.faults import MigrationFault, QueryFault, SchemaFault
from quarry.migrations import (
    INDEX_FILE,
    MigrationReport,
    SchemaSynchronizer,
    build_snapshot,
    latest_snapshot,
    list_migration_files,
    load_index,
    makemigrations,
    migrate,
    type_family,
)
from quarry.models import (
    CharField,
    DateTimeField,
    EmailField,
    IntegerField,
    ManyToManyField,
    Model,
)


# ============================================================================
# Type families
# ============================================================================

class TestTypeFamily:
    """Declared and introspected types reduce to comparable families."""

    @pytest.mark.parametrize("sql_type, family", [
        ("VARCHAR(150)", "text"),
        ("character varying", "text"),
        ("TEXT", "text"),
        ("INTEGER", "integer"),
        ("BIGSERIAL", "integer"),
        ("smallint", "integer"),
        ("TIMESTAMP WITH TIME ZONE", "timestamp"),
        ("timestamp without time zone", "timestamp"),
        ("DOUBLE PRECISION", "real"),
        ("REAL", "real"),
        ("NUMERIC(10, 2)", "numeric"),
        ("BOOLEAN", "boolean"),
        ("jsonb", "json"),
        ("uuid", "uuid"),
        ("bytea", "blob"),
        ("BLOB", "blob"),
        ("date", "date"),
        ("time without time zone", "time"),
    ])
    def test_families(self, sql_type, family):
        assert type_family(sql_type) == family

    def test_empty(self):
        assert type_family("") is None
        assert type_family(None) is None


# ============================================================================
# Live-schema synchronisation
# ============================================================================

class TestSchemaSync:
    """migrate() diffs declared models against the live schema."""

    @pytest.mark.asyncio
    async def test_creates_tables(self, db, blog):
        report = await migrate(db, blog.all)
        assert isinstance(report, MigrationReport)
        assert report.ok
        assert report.tables == ["users", "tags", "posts", "posts_tags"]
        assert report.statements[0].startswith('CREATE TABLE "users" (')
        assert set(await db.get_tables()) >= {"users", "tags", "posts", "posts_tags"}

    @pytest.mark.asyncio
    async def test_idempotent(self, db, blog):
        await migrate(db, blog.all)
        second = await migrate(db, blog.all)
        assert second.statements == []
        assert second.ok

    @pytest.mark.asyncio
    async def test_add_and_drop_columns(self, db):
        await db.execute(
            'CREATE TABLE "contacts" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, '
            '"name" TEXT NOT NULL, "extra" TEXT)'
        )

        class Contact(Model):
            table = "contacts"
            name = CharField(max_length=50)
            email = EmailField(null=True)

        report = await migrate(db, [Contact])
        assert report.statements == [
            'ALTER TABLE "contacts" DROP COLUMN "extra"',
            'ALTER TABLE "contacts" ADD COLUMN "email" TEXT',
        ]
        columns = [c.name for c in await db.get_columns("contacts")]
        assert columns == ["id", "name", "email"]

    @pytest.mark.asyncio
    async def test_add_unique_column(self, db):
        await db.execute('CREATE TABLE "contacts" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "name" TEXT)')
        await db.execute('INSERT INTO "contacts" ("name") VALUES (?)', ["existing"])

        class Contact(Model):
            table = "contacts"
            name = CharField(max_length=50, null=True)
            email = EmailField(null=True, unique=True)

        report = await migrate(db, [Contact])
        assert report.statements == [
            'ALTER TABLE "contacts" ADD COLUMN "email" TEXT',
            'CREATE UNIQUE INDEX "contacts_email_uniq" ON "contacts" ("email")',
        ]
        await db.execute('INSERT INTO "contacts" ("name", "email") VALUES (?, ?)', ["a", "a@example.com"])
        with pytest.raises(QueryFault):
            await db.execute('INSERT INTO "contacts" ("name", "email") VALUES (?, ?)', ["b", "a@example.com"])
        assert (await migrate(db, [Contact])).statements == []

    @pytest.mark.asyncio
    async def test_type_mismatch_fails_table(self, db):
        await db.execute('CREATE TABLE "items" ("id" INTEGER PRIMARY KEY, "qty" TEXT)')

        class Item(Model):
            table = "items"
            qty = IntegerField()

        synchronizer = SchemaSynchronizer(db, [Item])
        with pytest.raises(SchemaFault):
            await synchronizer.sync_table(Item)

        with pytest.raises(MigrationFault) as exc_info:
            await migrate(db, [Item])
        assert "items" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_run(self, db):
        await db.execute('CREATE TABLE "items" ("id" INTEGER PRIMARY KEY, "qty" TEXT)')

        class Label(Model):
            table = "labels"
            name = CharField(max_length=20)

        class Item(Model):
            table = "items"
            qty = IntegerField()
            labels = ManyToManyField("Label")

        class Shelf(Model):
            table = "shelves"
            code = CharField(max_length=5)

        report = await migrate(db, [Item, Label, Shelf], raise_on_error=False)
        assert not report.ok
        assert list(report.failures) == ["items"]
        assert report.tables == ["labels", "shelves"]
        assert await db.table_exists("shelves")
        # join table of a failed model is skipped
        assert not await db.table_exists("items_labels")

    @pytest.mark.asyncio
    async def test_not_null_add_without_default(self, db):
        await db.execute('CREATE TABLE "contacts" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "name" TEXT)')
        await db.execute('INSERT INTO "contacts" ("name") VALUES (?)', ["existing"])

        class Contact(Model):
            table = "contacts"
            name = CharField(max_length=50, null=True)
            phone = CharField(max_length=20)

        report = await migrate(db, [Contact], raise_on_error=False)
        assert "contacts" in report.failures

    @pytest.mark.asyncio
    async def test_abstract_and_duplicate_models_skipped(self, db):
        class Stamped(Model):
            created_at = DateTimeField(auto_now_add=True)

            class Meta:
                abstract = True

        class Entry(Stamped):
            table = "entries"
            title = CharField(max_length=20)

        report = await migrate(db, [Stamped, Entry, Entry])
        assert report.tables == ["entries"]
        assert len(report.statements) == 1


# ============================================================================
# Snapshots and migration files
# ============================================================================

class TestSnapshots:
    """makemigrations writes audit files; migrate records them as applied."""

    def test_build_snapshot(self, blog):
        snapshot = build_snapshot(blog.all)
        assert list(snapshot) == ["users", "tags", "posts", "posts_tags"]
        assert snapshot["users"]["id"] == "INTEGER PRIMARY KEY AUTOINCREMENT"
        assert "tags" not in snapshot["posts"]
        assert snapshot["posts"]["author_id"].startswith("INTEGER NOT NULL REFERENCES")
        pg = build_snapshot(blog.all, dialect="postgresql")
        assert pg["users"]["id"] == "SERIAL PRIMARY KEY"

    def test_makemigrations_writes_file(self, tmp_path, blog):
        directory = tmp_path / "migrations"
        path = makemigrations(blog.all, directory)
        assert re.match(r"^0001_auto_\d{14}\.json$", path.name)
        assert json.loads(path.read_text()) == build_snapshot(blog.all)
        assert json.loads((directory / INDEX_FILE).read_text()) == {"applied": []}
        assert latest_snapshot(directory) == build_snapshot(blog.all)

    def test_no_changes(self, tmp_path, blog, caplog):
        directory = tmp_path / "migrations"
        makemigrations(blog.all, directory)
        with caplog.at_level(logging.WARNING, logger="quarry.migrations"):
            assert makemigrations(blog.all, directory) is None
        assert "No changes detected" in caplog.text
        assert len(list_migration_files(directory)) == 1

    def test_sequence_increments(self, tmp_path, blog):
        directory = tmp_path / "migrations"
        makemigrations([blog.User], directory)
        second = makemigrations(blog.all, directory)
        assert second.name.startswith("0002_auto_")
        assert [p.name[:4] for p in list_migration_files(directory)] == ["0001", "0002"]

    @pytest.mark.asyncio
    async def test_migrate_marks_applied(self, tmp_path, db, blog):
        directory = tmp_path / "migrations"
        first = makemigrations([blog.User], directory)
        second = makemigrations(blog.all, directory)
        await migrate(db, blog.all, migrations_dir=directory)
        assert load_index(directory) == [first.stem, second.stem]
        await migrate(db, blog.all, migrations_dir=directory)
        assert load_index(directory) == [first.stem, second.stem]

    @pytest.mark.asyncio
    async def test_failed_run_not_marked(self, tmp_path, db):
        await db.execute('CREATE TABLE "items" ("id" INTEGER PRIMARY KEY, "qty" TEXT)')

        class Item(Model):
            table = "items"
            qty = IntegerField()

        directory = tmp_path / "migrations"
        makemigrations([Item], directory)
        report = await migrate(db, [Item], migrations_dir=directory, raise_on_error=False)
        assert not report.ok
        assert load_index(directory) == []

    @pytest.mark.asyncio
    async def test_missing_directory_ignored(self, tmp_path, db, blog):
        report = await migrate(db, blog.all, migrations_dir=tmp_path / "absent")
        assert report.ok
        assert not (tmp_path / "absent").exists()

    def test_bad_index(self, tmp_path):
        (tmp_path / INDEX_FILE).write_text(json.dumps({"applied": 3}))
        with pytest.raises(MigrationFault):
            load_index(tmp_path)
        (tmp_path / INDEX_FILE).write_text("{not json")
        with pytest.raises(MigrationFault):
            load_index(tmp_path)

    def test_index_missing(self, tmp_path):
        assert load_index(tmp_path) == []
        assert list_migration_files(tmp_path / "nope") == []
