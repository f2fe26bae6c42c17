"""
Tests for QuerySet: immutable chaining, SQL compilation and the async
terminal and write methods against an in-memory SQLite database.
"""

import datetime

import pytest

from quarry.faults import (
    FieldValidationFault,
    MultipleObjectsReturnedFault,
    ObjectDoesNotExistFault,
    QueryFault,
    UnsafeIdentifierFault,
    UnsafeOperationFault,
)
from quarry.migrations import migrate
from quarry.models import (
    CharField,
    DateTimeField,
    IntegerField,
    JSONField,
    Manager,
    Model,
    QuerySet,
    now,
)


async def seed_users(User):
    alice = await User.objects.create({"username": "alice", "age": 30, "role": "admin"})
    bob = await User.objects.create({"username": "bob", "age": 20})
    carol = await User.objects.create({"username": "carol", "age": 40, "is_active": False})
    dave = await User.objects.create({"username": "dave"})
    return alice, bob, carol, dave


# ============================================================================
# Compilation (no database)
# ============================================================================

class TestQuerySetCompile:
    """Chain methods build SQL; nothing executes."""

    def test_basic_select(self, blog):
        sql, params = blog.User.objects.filter(age__gte=18).order_by("-id").limit(10).compile()
        assert sql == 'SELECT * FROM "users" WHERE "age" >= ? ORDER BY "id" DESC LIMIT 10'
        assert params == [18]

    def test_chain_is_immutable(self, blog):
        base = blog.User.objects.filter(role="admin")
        narrowed = base.filter(age__lt=30).order_by("username")
        assert base.compile() == ('SELECT * FROM "users" WHERE "role" = ?', ["admin"])
        assert narrowed.compile() == (
            'SELECT * FROM "users" WHERE "role" = ? AND "age" < ? ORDER BY "username" ASC',
            ["admin", 30],
        )
        assert narrowed is not base

    def test_filter_order_does_not_matter(self, blog):
        base = blog.User.objects.filter(role="admin")
        ab = base.filter(age__lt=30).filter(is_active=True)
        ba = base.filter(is_active=True).filter(age__lt=30)
        assert ab._state["filters"] == ba._state["filters"]

        def clauses(qs):
            sql, params = qs.compile()
            return set(sql.split(" WHERE ")[1].split(" AND ")), sorted(map(str, params))

        assert clauses(ab) == clauses(ba)
        # a repeated key keeps the last value whichever order the others came in
        assert base.filter(age=1).filter(age=2)._state["filters"]["age"] == 2

    def test_lookups(self, blog):
        qs = blog.User.objects
        assert qs.filter(age=None).compile()[0].endswith('WHERE "age" IS NULL')
        assert qs.filter(age__ne=None).compile()[0].endswith('WHERE "age" IS NOT NULL')
        assert qs.filter(age__isnull=False).compile()[0].endswith('WHERE "age" IS NOT NULL')
        assert qs.filter(age__ne=3).compile() == ('SELECT * FROM "users" WHERE "age" <> ?', [3])
        assert qs.filter(age__range=(1, 5)).compile() == (
            'SELECT * FROM "users" WHERE "age" BETWEEN ? AND ?', [1, 5],
        )
        assert qs.filter(age=[1, 2]).compile() == (
            'SELECT * FROM "users" WHERE "age" IN (?, ?)', [1, 2],
        )
        assert qs.filter(pk__in=[7]).compile() == ('SELECT * FROM "users" WHERE "id" IN (?)', [7])

    def test_values_converted(self, blog):
        _, params = blog.User.objects.filter(is_active=True).compile()
        assert params == [1]
        author = blog.User(id=5, username="x")
        _, params = blog.Post.objects.filter(author=author).compile()
        assert params == [5]

    def test_empty_in(self, blog):
        assert blog.User.objects.filter(age__in=[]).compile() == (
            'SELECT * FROM "users" WHERE 1 = 0', [],
        )
        assert blog.User.objects.exclude(age__in=[]).compile() == (
            'SELECT * FROM "users" WHERE NOT (1 = 0)', [],
        )

    def test_exclude(self, blog):
        assert blog.User.objects.exclude(role="admin").compile() == (
            'SELECT * FROM "users" WHERE NOT ("role" = ?)', ["admin"],
        )

    def test_in_rejects_scalars(self, blog):
        with pytest.raises(QueryFault):
            blog.User.objects.filter(age__in="abc").compile()
        with pytest.raises(QueryFault):
            blog.User.objects.filter(age__range=5).compile()

    def test_offset_without_limit(self, blog):
        sql, _ = blog.User.objects.offset(5).compile()
        assert sql == 'SELECT * FROM "users" LIMIT -1 OFFSET 5'

    def test_negative_window(self, blog):
        with pytest.raises(QueryFault):
            blog.User.objects.limit(-1)
        with pytest.raises(QueryFault):
            blog.User.objects.offset(-1)

    def test_projection(self, blog):
        assert blog.User.objects.values("username").distinct().compile()[0] == (
            'SELECT DISTINCT "username" FROM "users"'
        )
        assert blog.Post.objects.values_list("author", flat=True).compile()[0] == (
            'SELECT "author_id" FROM "posts"'
        )
        with pytest.raises(QueryFault):
            blog.User.objects.values_list("username", "age", flat=True)

    def test_group_by_annotate(self, blog):
        qs = blog.Post.objects.values("author").annotate(n=("COUNT", "id")).group_by("author")
        assert qs.compile()[0] == (
            'SELECT "author_id", COUNT("id") AS "n" FROM "posts" GROUP BY "author_id"'
        )
        qs = blog.Post.objects.annotate(n={"fn": "count"})
        assert qs.compile()[0] == 'SELECT "posts".*, COUNT(*) AS "n" FROM "posts"'

    def test_bad_aggregates(self, blog):
        with pytest.raises(QueryFault):
            blog.User.objects.annotate(x=("MEDIAN", "age"))
        with pytest.raises(QueryFault):
            blog.User.objects.annotate(x=("SUM", "*"))
        with pytest.raises(QueryFault):
            blog.User.objects.annotate(x="COUNT")

    def test_compound(self, blog):
        young = blog.User.objects.filter(age__lt=10)
        old = blog.User.objects.filter(age__gt=50)
        assert young.union(old).compile() == (
            'SELECT * FROM (SELECT * FROM (SELECT * FROM "users" WHERE "age" < ?) AS _lhs '
            'UNION SELECT * FROM (SELECT * FROM "users" WHERE "age" > ?) AS _rhs) AS _compound',
            [10, 50],
        )
        assert " UNION ALL " in young.union(old, all=True).compile()[0]
        assert " INTERSECT " in young.intersect(old).compile()[0]
        assert " EXCEPT " in young.except_(old).compile()[0]
        with pytest.raises(QueryFault):
            young.union([1, 2])

    def test_compound_window_applies_to_combined_rows(self, blog):
        young = blog.User.objects.filter(age__lt=10)
        old = blog.User.objects.filter(age__gt=50)
        sql, params = young.order_by("-id").limit(1).offset(2).union(old).compile()
        assert sql == (
            'SELECT * FROM (SELECT * FROM (SELECT * FROM "users" WHERE "age" < ?) AS _lhs '
            'UNION SELECT * FROM (SELECT * FROM "users" WHERE "age" > ?) AS _rhs) AS _compound '
            'ORDER BY "id" DESC LIMIT 1 OFFSET 2'
        )
        assert params == [10, 50]

    def test_only_defer(self, blog):
        assert blog.User.objects.only("username").compile()[0] == 'SELECT "id", "username" FROM "users"'
        assert blog.Post.objects.only("author", "title").filter(status="live").compile()[0] == (
            'SELECT "id", "title", "author_id" FROM "posts" WHERE "status" = ?'
        )
        assert blog.Post.objects.defer("body", "meta").compile()[0] == (
            'SELECT "id", "title", "status", "views", "published_at", "author_id" FROM "posts"'
        )
        assert blog.User.objects.only("username").only().compile()[0] == 'SELECT * FROM "users"'
        with pytest.raises(QueryFault):
            blog.User.objects.only("nickname")
        with pytest.raises(QueryFault):
            blog.Post.objects.defer("tags")

    def test_ordering(self):
        class Event(Model):
            when = IntegerField()

            class Meta:
                ordering = ["-when"]

        assert Event.objects.get_queryset().compile()[0] == 'SELECT * FROM "event" ORDER BY "when" DESC'
        assert Event.objects.reverse().compile()[0] == 'SELECT * FROM "event" ORDER BY "when" ASC'
        assert Event.objects.order_by("id").compile()[0].endswith('ORDER BY "id" ASC')

    def test_reverse_without_ordering(self, blog):
        assert blog.User.objects.reverse().compile()[0] == 'SELECT * FROM "users" ORDER BY "id" DESC'

    def test_unsafe_identifiers(self, blog):
        with pytest.raises(UnsafeIdentifierFault):
            blog.User.objects.order_by("age; DROP TABLE users")
        with pytest.raises(UnsafeIdentifierFault):
            blog.User.objects.values('x" FROM users --')
        with pytest.raises(UnsafeIdentifierFault):
            blog.User.objects.filter(**{"bad key": 1}).compile()

    def test_repr(self, blog):
        assert repr(blog.User.objects.none()) == "<QuerySet: User.none()>"
        assert 'SELECT * FROM "users"' in repr(blog.User.objects.get_queryset())


# ============================================================================
# Reads
# ============================================================================

class TestQuerySetReads:
    """Terminal read methods."""

    @pytest.mark.asyncio
    async def test_all_filter_exclude(self, blog_db):
        await seed_users(blog_db.User)
        users = await blog_db.User.objects.filter(age__gte=25).order_by("username").all()
        assert [u.username for u in users] == ["alice", "carol"]
        users = await blog_db.User.objects.exclude(role="admin").order_by("-id").all()
        assert [u.username for u in users] == ["dave", "carol", "bob"]
        inactive = await blog_db.User.objects.filter(is_active=False).all()
        assert [u.username for u in inactive] == ["carol"]
        assert inactive[0].is_active is False

    @pytest.mark.asyncio
    async def test_empty_in_matches_nothing(self, blog_db):
        await seed_users(blog_db.User)
        assert await blog_db.User.objects.filter(id__in=[]).all() == []
        assert await blog_db.User.objects.exclude(id__in=[]).count() == 4

    @pytest.mark.asyncio
    async def test_get_cardinality(self, blog_db):
        await seed_users(blog_db.User)
        await blog_db.User.objects.create({"username": "alice2", "age": 30})

        alice = await blog_db.User.objects.get(username="alice")
        assert alice.role == "admin"
        assert await blog_db.User.objects.get(username="nobody") is None
        with pytest.raises(blog_db.User.MultipleObjectsReturned) as exc_info:
            await blog_db.User.objects.get(age=30)
        assert isinstance(exc_info.value, MultipleObjectsReturnedFault)

    @pytest.mark.asyncio
    async def test_first_last(self, blog_db):
        await seed_users(blog_db.User)
        assert (await blog_db.User.objects.first()).username == "alice"
        assert (await blog_db.User.objects.last()).username == "dave"
        youngest = await blog_db.User.objects.order_by("age").filter(age__isnull=False).first()
        assert youngest.username == "bob"
        assert await blog_db.User.objects.filter(age__gt=100).first() is None

    @pytest.mark.asyncio
    async def test_earliest_latest(self, blog_db):
        await seed_users(blog_db.User)
        aged = blog_db.User.objects.filter(age__isnull=False)
        assert (await aged.earliest("age")).username == "bob"
        assert (await aged.latest("age")).username == "carol"
        with pytest.raises(ObjectDoesNotExistFault):
            await blog_db.User.objects.filter(age__gt=100).latest("age")

    @pytest.mark.asyncio
    async def test_count_exists(self, blog_db):
        assert await blog_db.User.objects.exists() is False
        await seed_users(blog_db.User)
        assert await blog_db.User.objects.count() == 4
        assert await blog_db.User.objects.filter(age__lt=25).count() == 1
        assert await blog_db.User.objects.limit(2).count() == 2
        assert await blog_db.User.objects.offset(3).count() == 1
        assert await blog_db.User.objects.filter(role="admin").exists() is True
        assert await blog_db.User.objects.filter(role="admin").offset(1).exists() is False
        assert await blog_db.User.objects.values("role").distinct().count() == 2

    @pytest.mark.asyncio
    async def test_window(self, blog_db):
        await seed_users(blog_db.User)
        page = await blog_db.User.objects.order_by("id").limit(2).offset(1).all()
        assert [u.username for u in page] == ["bob", "carol"]
        tail = await blog_db.User.objects.order_by("id").offset(2).all()
        assert [u.username for u in tail] == ["carol", "dave"]

    @pytest.mark.asyncio
    async def test_async_iteration(self, blog_db):
        await seed_users(blog_db.User)
        names = [u.username async for u in blog_db.User.objects.filter(age__gte=30)]
        assert sorted(names) == ["alice", "carol"]

    @pytest.mark.asyncio
    async def test_iterator_batches(self, blog_db):
        for i in range(5):
            await blog_db.User.objects.create({"username": f"user{i}"})
        names = [u.username async for u in blog_db.User.objects.iterator(batch_size=2)]
        assert names == [f"user{i}" for i in range(5)]
        window = blog_db.User.objects.order_by("id").offset(1).limit(3)
        names = [u.username async for u in window.iterator(batch_size=2)]
        assert names == ["user1", "user2", "user3"]
        with pytest.raises(QueryFault):
            [u async for u in blog_db.User.objects.iterator(batch_size=0)]

    @pytest.mark.asyncio
    async def test_values(self, blog_db):
        await seed_users(blog_db.User)
        rows = await blog_db.User.objects.order_by("id").values("username", "is_active").all()
        assert rows[0] == {"username": "alice", "is_active": True}
        assert rows[2] == {"username": "carol", "is_active": False}
        names = await blog_db.User.objects.order_by("id").values_list("username", flat=True).all()
        assert names == ["alice", "bob", "carol", "dave"]
        pairs = await blog_db.User.objects.order_by("id").limit(2).values_list("username", "age").all()
        assert pairs == [("alice", 30), ("bob", 20)]
        full = await blog_db.User.objects.filter(username="bob").values().all()
        assert set(full[0]) == set(blog_db.User._meta.column_names)

    @pytest.mark.asyncio
    async def test_only_defer_load_partial_instances(self, blog_db):
        await seed_users(blog_db.User)
        alice = await blog_db.User.objects.only("username").get(username="alice")
        assert alice.pk == 1 and alice.username == "alice"
        assert alice.age is None and alice.role is None

        alice.username = "alicia"
        await alice.save()
        fresh = await blog_db.User.objects.get(pk=alice.pk)
        assert fresh.username == "alicia"
        assert fresh.age == 30 and fresh.role == "admin"
        assert alice.age == 30

        bob = await blog_db.User.objects.defer("age").get(username="bob")
        assert bob.age is None and bob.role == "user"

    @pytest.mark.asyncio
    async def test_group_by(self, blog_db):
        alice, bob, _, _ = await seed_users(blog_db.User)
        Post = blog_db.Post
        await Post.objects.create({"title": "a1", "author": alice, "views": 10})
        await Post.objects.create({"title": "a2", "author": alice, "views": 5, "status": "live"})
        await Post.objects.create({"title": "b1", "author": bob, "views": 1, "status": "live"})

        per_author = await (
            Post.objects.values("author").annotate(n=("COUNT", "id"))
            .group_by("author").order_by("author").all()
        )
        assert per_author == [{"author_id": alice.pk, "n": 2}, {"author_id": bob.pk, "n": 1}]

        by_status = await (
            Post.objects.annotate(total={"fn": "SUM", "field": "views"})
            .group_by("status").order_by("status").all()
        )
        assert by_status == [{"status": "draft", "total": 10}, {"status": "live", "total": 6}]

    @pytest.mark.asyncio
    async def test_compound(self, blog_db):
        await seed_users(blog_db.User)
        User = blog_db.User
        young = User.objects.filter(age__lt=25)
        old = User.objects.filter(age__gt=35)
        admins = User.objects.filter(role="admin")
        aged = User.objects.filter(age__isnull=False)

        assert {u.username for u in await young.union(old).all()} == {"bob", "carol"}
        assert await young.union(young, all=True).count() == 2
        assert await young.union(young).count() == 1
        assert [u.username for u in await aged.intersect(admins).all()] == ["alice"]
        assert {u.username for u in await aged.difference(admins).all()} == {"bob", "carol"}

    @pytest.mark.asyncio
    async def test_compound_window_and_iteration(self, blog_db):
        await seed_users(blog_db.User)
        User = blog_db.User
        combined = User.objects.filter(age__gte=0).union(User.objects.filter(role="admin"))

        assert len(await combined.limit(1).all()) == 1
        assert [u.username for u in await combined.order_by("id").offset(1).all()] == ["bob", "carol"]
        assert (await combined.first()).username == "alice"
        assert (await combined.last()).username == "carol"
        assert await combined.limit(2).count() == 2
        with pytest.raises(User.MultipleObjectsReturned):
            await combined.get()

        names = [u.username async for u in combined.iterator(batch_size=1)]
        assert names == ["alice", "bob", "carol"]
        names = [u.username async for u in combined.iterator(batch_size=2)]
        assert names == ["alice", "bob", "carol"]

    @pytest.mark.asyncio
    async def test_none(self, blog_db):
        await seed_users(blog_db.User)
        empty = blog_db.User.objects.none()
        assert await empty.all() == []
        assert await empty.count() == 0
        assert await empty.exists() is False
        assert await empty.aggregate(n=("COUNT", "*"), top=("MAX", "age")) == {"n": 0, "top": None}
        assert await empty.filter(age=30).update(age=1) == 0
        assert await empty.delete() == 0
        assert [u async for u in empty.iterator()] == []

    @pytest.mark.asyncio
    async def test_aggregate(self, blog_db):
        await seed_users(blog_db.User)
        result = await blog_db.User.objects.aggregate(
            total=("SUM", "age"),
            n=("COUNT", "*"),
            oldest={"fn": "MAX", "field": "age"},
        )
        assert result == {"total": 90, "n": 4, "oldest": 40}
        limited = await blog_db.User.objects.order_by("id").limit(2).aggregate(total=("SUM", "age"))
        assert limited == {"total": 50}
        assert await blog_db.User.objects.aggregate() == {}

    @pytest.mark.asyncio
    async def test_in_bulk(self, blog_db):
        alice, _, carol, _ = await seed_users(blog_db.User)
        found = await blog_db.User.objects.in_bulk([alice.pk, carol.pk, 999])
        assert set(found) == {alice.pk, carol.pk}
        assert found[carol.pk].username == "carol"
        assert await blog_db.User.objects.in_bulk([]) == {}


# ============================================================================
# Writes
# ============================================================================

class TestQuerySetWrites:
    """create / update / delete and the combined helpers."""

    @pytest.mark.asyncio
    async def test_create_reads_back(self, blog_db):
        user = await blog_db.User.objects.create(username="alice")
        assert user.pk == 1
        assert user.role == "user"
        assert user.is_active is True
        assert isinstance(user.created_at, datetime.datetime)
        assert user.updated_at is not None

    @pytest.mark.asyncio
    async def test_create_defaults(self, db):
        class Setting(Model):
            table = "settings"

            data = JSONField(default=dict)
            stamp = DateTimeField(default=now)
            count = IntegerField(default=3)
            label = CharField(max_length=10, null=True)

        await migrate(db, [Setting])
        settings = Manager(Setting, db)
        first = await settings.create({})
        second = await settings.create({})
        assert first.data == {} and second.data == {}
        assert first.count == 3
        assert first.label is None
        assert isinstance(first.stamp, datetime.datetime)
        assert second.pk == first.pk + 1

    @pytest.mark.asyncio
    async def test_create_default_values_only(self, db):
        class Marker(Model):
            pass

        await migrate(db, [Marker])
        markers = Manager(Marker, db)
        marker = await markers.create()
        assert marker.pk == 1
        assert await markers.count() == 1

    @pytest.mark.asyncio
    async def test_create_with_explicit_key(self, db):
        class Country(Model):
            code = CharField(max_length=2, primary_key=True)
            name = CharField(max_length=50)

        await migrate(db, [Country])
        countries = Manager(Country, db)
        country = await countries.create({"code": "DE", "name": "Germany"})
        assert country.pk == "DE"
        assert (await countries.get(pk="DE")).name == "Germany"

    @pytest.mark.asyncio
    async def test_create_rejections(self, blog_db):
        with pytest.raises(QueryFault):
            await blog_db.User.objects.create({"username": "a", "nickname": "b"})
        with pytest.raises(FieldValidationFault) as exc_info:
            await blog_db.User.objects.create({"username": "a" * 200})
        assert exc_info.value.constraint == "max_length"
        with pytest.raises(FieldValidationFault):
            await blog_db.User.objects.create({})
        await blog_db.User.objects.create({"username": "taken"})
        with pytest.raises(QueryFault):
            await blog_db.User.objects.create({"username": "taken"})

    @pytest.mark.asyncio
    async def test_bulk_create(self, blog_db):
        created = await blog_db.Tag.objects.bulk_create([{"name": "a"}, {"name": "b"}])
        assert [t.name for t in created] == ["a", "b"]
        assert await blog_db.Tag.objects.count() == 2

    @pytest.mark.asyncio
    async def test_update(self, blog_db):
        await seed_users(blog_db.User)
        count = await blog_db.User.objects.filter(age__lt=35).update(role="admin")
        assert count == 2
        assert await blog_db.User.objects.filter(role="admin").count() == 2
        count = await blog_db.User.objects.update({"username": "dave"}, {"age": 50})
        assert count == 1
        assert (await blog_db.User.objects.get(username="dave")).age == 50

    @pytest.mark.asyncio
    async def test_bulk_update(self, blog_db):
        alice, bob, carol, _ = await seed_users(blog_db.User)
        alice.age = 31
        bob.age = 21
        bob.role = "admin"
        ghost = blog_db.User(username="ghost")
        changed = await blog_db.User.objects.bulk_update([alice, bob, ghost], ["age"])
        assert changed == 2
        ages = await blog_db.User.objects.order_by("id").values_list("age", flat=True).all()
        assert ages == [31, 21, 40, None]
        assert (await blog_db.User.objects.get(pk=bob.pk)).role == "user"

        rows = [{"id": carol.pk, "role": "admin"}]
        assert await blog_db.User.objects.bulk_update(rows, ["role", "age"]) == 1
        assert (await blog_db.User.objects.get(pk=carol.pk)).role == "admin"
        assert await blog_db.User.objects.bulk_update([], ["age"]) == 0

        with pytest.raises(QueryFault):
            await blog_db.User.objects.bulk_update([alice], [])
        with pytest.raises(QueryFault):
            await blog_db.User.objects.bulk_update([alice], ["nickname"])
        with pytest.raises(QueryFault):
            await blog_db.User.objects.bulk_update([alice], ["id"])

    @pytest.mark.asyncio
    async def test_update_restamps_auto_now(self, blog_db, db):
        user = await blog_db.User.objects.create({"username": "alice"})
        await db.execute(
            'UPDATE "users" SET "updated_at" = ?, "created_at" = ? WHERE "id" = ?',
            ["2000-01-01T00:00:00+00:00", "2000-01-01T00:00:00+00:00", user.pk],
        )
        await blog_db.User.objects.filter(id=user.pk).update(age=5)
        fresh = await blog_db.User.objects.get(id=user.pk)
        assert fresh.updated_at.year > 2000
        assert fresh.created_at.year == 2000

    @pytest.mark.asyncio
    async def test_update_validates(self, blog_db):
        await seed_users(blog_db.User)
        with pytest.raises(FieldValidationFault):
            await blog_db.User.objects.filter(username="bob").update(role="root")
        with pytest.raises(QueryFault):
            await blog_db.User.objects.filter(username="bob").update(nickname="x")
        with pytest.raises(QueryFault):
            await blog_db.User.objects.limit(1).update(age=1)

    @pytest.mark.asyncio
    async def test_update_rejects_null_before_sql(self, blog_db, db):
        await seed_users(blog_db.User)
        with pytest.raises(FieldValidationFault) as exc_info:
            await blog_db.User.objects.filter(username="bob").update(role=None)
        assert exc_info.value.constraint == "null"
        assert await db.fetch_val('SELECT "role" FROM "users" WHERE "username" = ?', ["bob"]) == "user"

        bob = await blog_db.User.objects.get(username="bob")
        bob.is_active = None
        with pytest.raises(FieldValidationFault):
            await bob.save()
        await bob.refresh()
        assert bob.is_active is True

    @pytest.mark.asyncio
    async def test_delete_guard(self, blog_db):
        await seed_users(blog_db.User)
        with pytest.raises(UnsafeOperationFault):
            await blog_db.User.objects.delete()
        with pytest.raises(UnsafeOperationFault):
            await blog_db.User.objects.filter().delete()
        with pytest.raises(UnsafeOperationFault):
            await blog_db.User.objects.delete({})
        with pytest.raises(UnsafeOperationFault):
            await blog_db.User.objects.filter({}).delete({})
        assert await blog_db.User.objects.count() == 4

    @pytest.mark.asyncio
    async def test_delete(self, blog_db):
        await seed_users(blog_db.User)
        assert await blog_db.User.objects.filter(age__gt=25).delete() == 2
        assert await blog_db.User.objects.delete({"username": "bob"}) == 1
        assert await blog_db.User.objects.exclude(username="nobody").delete() == 1
        assert await blog_db.User.objects.count() == 0
        with pytest.raises(QueryFault):
            await blog_db.User.objects.filter(age=1).limit(1).delete()

    @pytest.mark.asyncio
    async def test_get_or_create(self, blog_db):
        user, created = await blog_db.User.objects.get_or_create({"username": "erin"}, {"age": 22})
        assert created is True
        assert user.age == 22
        again, created = await blog_db.User.objects.get_or_create({"username": "erin"}, {"age": 99})
        assert created is False
        assert again.pk == user.pk and again.age == 22

        frank, created = await blog_db.User.objects.get_or_create(
            {"username": "frank", "age__isnull": True}
        )
        assert created is True
        assert frank.username == "frank" and frank.age is None

    @pytest.mark.asyncio
    async def test_update_or_create(self, blog_db):
        await seed_users(blog_db.User)
        alice, created = await blog_db.User.objects.update_or_create({"username": "alice"}, {"age": 31})
        assert created is False
        assert alice.age == 31
        zoe, created = await blog_db.User.objects.update_or_create({"username": "zoe"}, {"age": 18})
        assert created is True
        assert zoe.age == 18
        assert await blog_db.User.objects.count() == 5

    @pytest.mark.asyncio
    async def test_explicit_handle(self, db):
        class Widget(Model):
            name = CharField(max_length=20)

        await migrate(db, [Widget])
        widgets = QuerySet(Widget, db)
        await widgets.create({"name": "w"})
        assert Widget._db is None
        assert await widgets.filter(name="w").count() == 1
