"""
Quarry Relations - explicit accessor registry for model relations.

Relation accessors are not patched onto model classes. They live in a
``RelationRegistry`` keyed by ``(model, name)`` and are looked up when
``instance.related(name)`` is awaited:

    register_relations([User, Post, Tag])

    author = await post.related("author")       # forward FK -> User | None
    posts = await user.related("posts")          # reverse FK -> QuerySet
    tags = await post.related("tags")            # M2M -> ManyRelated
    await tags.add(python, asyncio)
    names = [t.name for t in await tags.all()]

Resolvers run on every call; nothing is cached on the instance.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, TYPE_CHECKING

from ..faults.domains import QueryFault, RelationConflictFault
from .fields import FK_KINDS, Field, FieldKind
from .query import QuerySet
from .sql import quote_identifier

if TYPE_CHECKING:
    from .base import Model

logger = logging.getLogger("quarry.models.relations")

__all__ = [
    "RelationRegistry",
    "ManyRelated",
    "ForwardRelation",
    "ReverseRelation",
    "ManyRelation",
    "default_registry",
    "register_relations",
]


Resolver = Callable[[Any], Any]


# ── Resolvers ────────────────────────────────────────────────────────────────
#
# Frozen dataclasses so that re-registering an identical accessor compares
# equal and is a no-op.


@dataclass(frozen=True)
class ForwardRelation:
    """FK / one-to-one on the declaring model: loads the target row."""

    field: Field

    async def __call__(self, instance: Model) -> Optional[Model]:
        value = getattr(instance, self.field.name, None)
        if value is None:
            return None
        target = self.field.related_model
        return await QuerySet(target).get({target._meta.pk.name: value})


@dataclass(frozen=True)
class ReverseRelation:
    """Reverse FK on the target model: a lazy QuerySet of referring rows."""

    field: Field

    def __call__(self, instance: Model) -> QuerySet:
        return QuerySet(self.field.model).filter({self.field.name: instance.pk})


@dataclass(frozen=True)
class ManyRelation:
    """Either side of a many-to-many field."""

    field: Field
    reverse: bool = False

    def __call__(self, instance: Model) -> ManyRelated:
        return ManyRelated(instance, self.field, reverse=self.reverse)


class ManyRelated:
    """
    Many-to-many accessor bound to one instance.

    Reads JOIN through the join table; ``add``/``remove`` write to it.
    """

    def __init__(self, instance: Model, field: Field, *, reverse: bool = False):
        self.instance = instance
        self.field = field
        self.reverse = reverse

        src_col, dst_col = field.join_columns()
        if reverse:
            self.own_column, self.other_column = dst_col, src_col
            self.other_model = field.model
        else:
            self.own_column, self.other_column = src_col, dst_col
            self.other_model = field.related_model
        self.join_table = field.join_table_name()

    def _own_pk(self) -> Any:
        pk = self.instance.pk
        if pk is None:
            raise QueryFault(
                model=type(self.instance).__name__,
                operation="many_to_many",
                reason="Instance must be saved before using its relations",
            )
        return pk

    @staticmethod
    def _pk_of(obj: Any) -> Any:
        if hasattr(obj, "_meta") and hasattr(obj, "pk"):
            return obj.pk
        return obj

    async def all(self) -> List[Model]:
        """Related instances, read with one JOIN."""
        db = type(self.instance)._get_db()
        other = self.other_model
        table = quote_identifier(other._meta.table_name)
        join = quote_identifier(self.join_table)
        other_pk = quote_identifier(other._meta.pk.column_name)
        sql = (
            f"SELECT {table}.* FROM {table} "
            f"INNER JOIN {join} ON {table}.{other_pk} = {join}.{quote_identifier(self.other_column)} "
            f"WHERE {join}.{quote_identifier(self.own_column)} = ? "
            f"ORDER BY {table}.{other_pk} ASC"
        )
        rows = await db.fetch_all(sql, [self._own_pk()])
        return [other.from_row(row) for row in rows]

    async def ids(self) -> List[Any]:
        db = type(self.instance)._get_db()
        join = quote_identifier(self.join_table)
        other_col = quote_identifier(self.other_column)
        rows = await db.fetch_all(
            f"SELECT {other_col} FROM {join} WHERE {quote_identifier(self.own_column)} = ?",
            [self._own_pk()],
        )
        return [row[self.other_column] for row in rows]

    async def queryset(self) -> QuerySet:
        """A QuerySet over the related model limited to the current links."""
        ids = await self.ids()
        return QuerySet(self.other_model).filter(pk__in=ids)

    async def add(self, *objs: Any) -> int:
        """Link objects (instances or primary keys). Existing links are kept."""
        db = type(self.instance)._get_db()
        own = self._own_pk()
        join = quote_identifier(self.join_table)
        sql = (
            f"INSERT INTO {join} ({quote_identifier(self.own_column)}, {quote_identifier(self.other_column)}) "
            f"VALUES (?, ?) ON CONFLICT DO NOTHING"
        )
        added = 0
        for obj in objs:
            result = await db.execute(sql, [own, self._pk_of(obj)])
            added += max(result.rowcount, 0)
        return added

    async def remove(self, *objs: Any) -> int:
        """Unlink objects (instances or primary keys)."""
        db = type(self.instance)._get_db()
        own = self._own_pk()
        join = quote_identifier(self.join_table)
        sql = (
            f"DELETE FROM {join} WHERE {quote_identifier(self.own_column)} = ? "
            f"AND {quote_identifier(self.other_column)} = ?"
        )
        removed = 0
        for obj in objs:
            result = await db.execute(sql, [own, self._pk_of(obj)])
            removed += max(result.rowcount, 0)
        return removed

    def __repr__(self) -> str:
        return (
            f"<ManyRelated {type(self.instance).__name__}({self.instance.pk!r}) "
            f"-> {self.other_model.__name__} via {self.join_table}>"
        )


# ── Registry ─────────────────────────────────────────────────────────────────


class RelationRegistry:
    """Maps ``(model, name)`` to a resolver."""

    def __init__(self):
        self._resolvers: Dict[Tuple[type, str], Resolver] = {}

    def register(self, model: Type[Model], name: str, resolver: Resolver) -> Optional[str]:
        """
        Register an accessor.

        Returns a conflict description instead of overwriting when the name
        is a concrete field or already maps to a different resolver.
        """
        field = model._meta.fields.get(name)
        if field is not None and getattr(resolver, "field", None) is not field:
            return f"{model.__name__}.{name} clashes with a field of the same name"
        key = (model, name)
        existing = self._resolvers.get(key)
        if existing is None:
            self._resolvers[key] = resolver
            return None
        if existing == resolver:
            return None
        return f"{model.__name__}.{name} is already registered to a different relation"

    def get(self, model: Type[Model], name: str) -> Optional[Resolver]:
        return self._resolvers.get((model, name))

    def names(self, model: Type[Model]) -> List[str]:
        return [name for (owner, name) in self._resolvers if owner is model]

    async def related(self, model: Type[Model], name: str, instance: Model) -> Any:
        """Run the resolver for ``name``, awaiting it when needed."""
        resolver = self.get(model, name)
        if resolver is None:
            raise AttributeError(f"No relation '{name}' on {model.__name__}")
        result = resolver(instance)
        if inspect.isawaitable(result):
            result = await result
        return result

    def clear(self) -> None:
        self._resolvers.clear()

    def __len__(self) -> int:
        return len(self._resolvers)


default_registry = RelationRegistry()


def register_relations(
    models: Iterable[Type[Model]],
    registry: Optional[RelationRegistry] = None,
    strict: bool = True,
) -> List[str]:
    """
    Register forward, reverse and many-to-many accessors for ``models``.

    Conflicting names are skipped and reported. With ``strict=True`` the
    collected conflicts raise RelationConflictFault once every model has
    been processed; otherwise they are returned.
    """
    registry = registry if registry is not None else default_registry
    conflicts: List[str] = []

    def add(model: Type[Model], name: str, resolver: Resolver) -> None:
        problem = registry.register(model, name, resolver)
        if problem is not None:
            logger.warning(f"Skipping relation accessor: {problem}")
            conflicts.append(problem)

    for model in models:
        source_table = model._meta.table_name
        for field in model._meta.fields.values():
            if field.kind in FK_KINDS:
                add(model, field.name, ForwardRelation(field))
                reverse_name = field.related_name or f"{source_table}_set"
                add(field.related_model, reverse_name, ReverseRelation(field))
            elif field.kind is FieldKind.MANY_TO_MANY:
                add(model, field.name, ManyRelation(field))
                reverse_name = field.related_name or f"{source_table}_set"
                add(field.related_model, reverse_name, ManyRelation(field, reverse=True))

    logger.info(f"Registered relations for {len(registry)} accessor(s)")

    if conflicts and strict:
        raise RelationConflictFault(conflicts)
    return conflicts
