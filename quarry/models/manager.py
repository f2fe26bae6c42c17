"""
Quarry Model Manager - descriptor-based QuerySet access.

    class User(Model):
        table = "users"
        name = CharField(max_length=150)

    users = await User.objects.filter(active=True).all()
    user = await User.objects.create({"name": "alice"})

The default Manager is attached as ``objects`` on every concrete Model.
A manager can also be built explicitly around a handle:

    users = Manager(User, db)
    await users.count()
"""

from __future__ import annotations

from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TYPE_CHECKING,
)

if TYPE_CHECKING:
    from ..db.engine import Database
    from .base import Model
    from .query import QuerySet


__all__ = ["Manager"]


class Manager:
    """
    Entry point for queries on a model.

    Accessible only via the model class. Every call starts from a fresh
    ``QuerySet(model, db)``, so nothing leaks between calls.
    """

    def __init__(self, model: Optional[Type[Model]] = None, db: Optional[Database] = None):
        self.model = model
        self.db = db

    def __set_name__(self, owner: type, name: str) -> None:
        if self.model is None:
            self.model = owner  # type: ignore

    def __get__(self, instance: Any, owner: type) -> Manager:
        if instance is not None:
            raise AttributeError(
                "Manager is accessible only via the model class, not instances."
            )
        # Bind to the accessing class (supports inheritance)
        return self.__class__(owner, self.db)  # type: ignore

    def get_queryset(self) -> QuerySet:
        """
        Override point for custom managers.

        Example:
            class ActiveManager(Manager):
                def get_queryset(self):
                    return super().get_queryset().filter(active=True)
        """
        from .query import QuerySet

        if self.model is None:
            raise RuntimeError("Manager is not bound to a model")
        return QuerySet(self.model, self.db)

    # ── Chain methods ────────────────────────────────────────────────

    def filter(self, criteria: Optional[Mapping[str, Any]] = None, **lookups: Any) -> QuerySet:
        return self.get_queryset().filter(criteria, **lookups)

    def exclude(self, criteria: Optional[Mapping[str, Any]] = None, **lookups: Any) -> QuerySet:
        return self.get_queryset().exclude(criteria, **lookups)

    def order_by(self, *columns: str) -> QuerySet:
        return self.get_queryset().order_by(*columns)

    def reverse(self) -> QuerySet:
        return self.get_queryset().reverse()

    def limit(self, n: int) -> QuerySet:
        return self.get_queryset().limit(n)

    def offset(self, n: int) -> QuerySet:
        return self.get_queryset().offset(n)

    def distinct(self, flag: bool = True) -> QuerySet:
        return self.get_queryset().distinct(flag)

    def values(self, *columns: str) -> QuerySet:
        return self.get_queryset().values(*columns)

    def values_list(self, *columns: str, flat: bool = False) -> QuerySet:
        return self.get_queryset().values_list(*columns, flat=flat)

    def only(self, *fields: str) -> QuerySet:
        return self.get_queryset().only(*fields)

    def defer(self, *fields: str) -> QuerySet:
        return self.get_queryset().defer(*fields)

    def annotate(self, mapping: Optional[Mapping[str, Any]] = None, **specs: Any) -> QuerySet:
        return self.get_queryset().annotate(mapping, **specs)

    def group_by(self, *columns: str) -> QuerySet:
        return self.get_queryset().group_by(*columns)

    def union(self, other: QuerySet, all: bool = False) -> QuerySet:
        return self.get_queryset().union(other, all=all)

    def intersect(self, other: QuerySet, all: bool = False) -> QuerySet:
        return self.get_queryset().intersect(other, all=all)

    def difference(self, other: QuerySet, all: bool = False) -> QuerySet:
        return self.get_queryset().difference(other, all=all)

    def none(self) -> QuerySet:
        return self.get_queryset().none()

    # ── Terminal methods ─────────────────────────────────────────────

    async def all(self) -> List[Any]:
        return await self.get_queryset().all()

    async def get(self, criteria: Optional[Mapping[str, Any]] = None, **lookups: Any) -> Optional[Model]:
        return await self.get_queryset().get(criteria, **lookups)

    async def first(self) -> Optional[Model]:
        return await self.get_queryset().first()

    async def last(self) -> Optional[Model]:
        return await self.get_queryset().last()

    async def earliest(self, column: str) -> Model:
        return await self.get_queryset().earliest(column)

    async def latest(self, column: str) -> Model:
        return await self.get_queryset().latest(column)

    async def count(self) -> int:
        return await self.get_queryset().count()

    async def exists(self) -> bool:
        return await self.get_queryset().exists()

    async def aggregate(self, mapping: Optional[Mapping[str, Any]] = None, **specs: Any) -> Dict[str, Any]:
        return await self.get_queryset().aggregate(mapping, **specs)

    async def in_bulk(self, ids: Iterable[Any]) -> Dict[Any, Model]:
        return await self.get_queryset().in_bulk(ids)

    def iterator(self, batch_size: int = 100) -> AsyncIterator[Any]:
        return self.get_queryset().iterator(batch_size)

    async def create(self, data: Optional[Mapping[str, Any]] = None, **values: Any) -> Model:
        return await self.get_queryset().create(data, **values)

    async def bulk_create(self, rows: Iterable[Mapping[str, Any]]) -> List[Model]:
        return await self.get_queryset().bulk_create(rows)

    async def bulk_update(self, objs: Iterable[Any], fields: Iterable[str]) -> int:
        return await self.get_queryset().bulk_update(objs, fields)

    async def update(
        self,
        criteria: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        **values: Any,
    ) -> int:
        return await self.get_queryset().update(criteria, data, **values)

    async def delete(self, criteria: Optional[Mapping[str, Any]] = None) -> int:
        return await self.get_queryset().delete(criteria)

    async def get_or_create(
        self, lookup: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None
    ) -> Tuple[Model, bool]:
        return await self.get_queryset().get_or_create(lookup, defaults)

    async def update_or_create(
        self, lookup: Mapping[str, Any], data: Optional[Mapping[str, Any]] = None
    ) -> Tuple[Model, bool]:
        return await self.get_queryset().update_or_create(lookup, data)

    def __repr__(self) -> str:
        model_name = self.model.__name__ if self.model else "<unbound>"
        return f"<{self.__class__.__name__} for {model_name}>"
