"""
Quarry Model Base - metaclass-driven async models.

Usage:
    from quarry.models import Model
    from quarry.models.fields import CharField, IntegerField, DateTimeField

    class User(Model):
        table = "users"

        name = CharField(max_length=150)
        email = EmailField(unique=True)
        age = IntegerField(null=True)
        created_at = DateTimeField(auto_now_add=True)

        class Meta:
            ordering = ["-created_at"]

    ModelRegistry.bind(db)
    user = await User.objects.create({"name": "Alice", "email": "alice@test.com"})
    user.age = 31
    await user.save()
"""

from __future__ import annotations

import datetime
import decimal
import logging
import uuid
from typing import Any, ClassVar, Dict, List, Optional, TYPE_CHECKING

from ..faults.domains import DatabaseConnectionFault, QueryFault
from .metaclass import ModelMeta
from .sql import quote_identifier

if TYPE_CHECKING:
    from ..db.engine import Database
    from .options import Options

logger = logging.getLogger("quarry.models")

__all__ = ["Model"]


class Model(metaclass=ModelMeta):
    """
    Quarry model base class.

    Define models by subclassing and declaring fields. Foreign keys are
    stored as the raw key value under the field name (``post.author`` is an
    id); the column is ``author_id``. Use ``related()`` to load the target.

    API:
        user = await User.objects.create({"name": "Alice"})
        user = await User.objects.get(id=1)
        users = await User.objects.filter(active=True).order_by("-created_at").all()
        await User.objects.filter(id=1).update(name="Bob")
        await user.delete()

        author = await post.related("author")
        posts = await (await user.related("posts")).all()
    """

    _meta: ClassVar[Options]
    _db: ClassVar[Optional[Database]] = None
    _deferred: frozenset = frozenset()

    def __init__(self, **values: Any):
        """Create an in-memory instance (not persisted)."""
        unknown = set(values)
        for attr_name, field in self._meta.fields.items():
            if field.is_many_to_many:
                continue
            if attr_name in values:
                setattr(self, attr_name, values[attr_name])
                unknown.discard(attr_name)
            elif field.column_name in values:
                setattr(self, attr_name, values[field.column_name])
                unknown.discard(field.column_name)
            elif field.has_default():
                setattr(self, attr_name, field.get_default())
            else:
                setattr(self, attr_name, None)
        if unknown:
            raise TypeError(
                f"{self.__class__.__name__}() got unexpected fields: {', '.join(sorted(unknown))}"
            )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} pk={self.pk!r}>"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Model) or other.__class__ is not self.__class__:
            return NotImplemented
        if self.pk is None:
            return self is other
        return self.pk == other.pk

    def __hash__(self) -> int:
        if self.pk is None:
            return id(self)
        return hash((self.__class__.__name__, self.pk))

    @property
    def pk(self) -> Any:
        pk_field = self._meta.pk
        return getattr(self, pk_field.name, None) if pk_field else None

    @pk.setter
    def pk(self, value: Any) -> None:
        setattr(self, self._meta.pk.name, value)

    # ── Database handle ──────────────────────────────────────────────

    @classmethod
    def _get_db(cls) -> Database:
        """Return the handle bound to this model."""
        if cls._db is None:
            raise DatabaseConnectionFault(
                url="<unbound>",
                reason=f"No database bound to {cls.__name__}. Call ModelRegistry.bind(db).",
            )
        return cls._db

    # ── Instance persistence ─────────────────────────────────────────

    async def save(self) -> Model:
        """
        Insert when the primary key is unset, otherwise update by pk.

        Updates re-stamp ``auto_now`` fields.
        """
        if self.pk is None:
            values = {
                attr: getattr(self, attr)
                for attr, field in self._meta.fields.items()
                if not field.is_many_to_many and getattr(self, attr, None) is not None
            }
            created = await self.__class__.objects.create(values)
            self._load_from(created)
            return self

        data: Dict[str, Any] = {}
        for attr_name, field in self._meta.fields.items():
            if field.is_many_to_many or field.primary_key or attr_name in self._deferred:
                continue
            data[attr_name] = getattr(self, attr_name, None)

        affected = await self.__class__.objects.filter({self._meta.pk.name: self.pk}).update(data=data)
        if affected == 0:
            raise QueryFault(
                model=self.__class__.__name__,
                operation="save",
                reason=f"No row with pk={self.pk!r} to update",
            )
        await self.refresh()
        return self

    async def delete(self) -> int:
        """Delete this instance's row. Returns the affected row count."""
        if self.pk is None:
            raise QueryFault(
                model=self.__class__.__name__,
                operation="delete",
                reason="Cannot delete an unsaved instance",
            )
        db = self._get_db()
        pk_field = self._meta.pk
        result = await db.execute(
            f"DELETE FROM {quote_identifier(self._meta.table_name)} "
            f"WHERE {quote_identifier(pk_field.column_name)} = ?",
            [pk_field.to_db(self.pk, db.dialect)],
        )
        logger.debug(f"Deleted {self.__class__.__name__} pk={self.pk!r}")
        return result.rowcount

    async def refresh(self) -> Model:
        """Reload from the database; raises DoesNotExist when the row is gone."""
        if self.pk is None:
            raise QueryFault(
                model=self.__class__.__name__,
                operation="refresh",
                reason="Cannot refresh an unsaved instance",
            )
        lookup = {self._meta.pk.name: self.pk}
        fresh = await self.__class__.objects.get(lookup)
        if fresh is None:
            raise self.DoesNotExist(self.__class__.__name__, lookup)
        self._load_from(fresh)
        return self

    def _load_from(self, other: Model) -> None:
        for attr_name, field in self._meta.fields.items():
            if not field.is_many_to_many:
                setattr(self, attr_name, getattr(other, attr_name, None))
        self._deferred = other._deferred

    # ── Relationships ────────────────────────────────────────────────

    async def related(self, name: str) -> Any:
        """
        Resolve a registered relation accessor on this instance.

        Usage:
            author = await post.related("author")          # FK forward
            posts = await user.related("posts")             # reverse FK (QuerySet)
            tags = await (await post.related("tags")).all() # M2M
        """
        from .relations import default_registry

        return await default_registry.related(self.__class__, name, self)

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self, *, exclude: Optional[List[str]] = None) -> Dict[str, Any]:
        """Serialize instance to a JSON-friendly dict."""
        exclude = set(exclude or [])
        result: Dict[str, Any] = {}
        for attr_name, field in self._meta.fields.items():
            if field.is_many_to_many or attr_name in exclude:
                continue
            value = getattr(self, attr_name, None)
            if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
                value = value.isoformat()
            elif isinstance(value, datetime.timedelta):
                value = value.total_seconds()
            elif isinstance(value, uuid.UUID):
                value = str(value)
            elif isinstance(value, bytes):
                value = value.hex()
            elif isinstance(value, decimal.Decimal):
                value = str(value)
            result[attr_name] = value
        return result

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Model:
        """Create an instance from a database row dict."""
        instance = cls.__new__(cls)
        deferred = []
        for attr_name, field in cls._meta.fields.items():
            if field.is_many_to_many:
                continue
            if field.column_name in row:
                raw = row[field.column_name]
            elif attr_name in row:
                raw = row[attr_name]
            else:
                raw = None
                deferred.append(attr_name)
            setattr(instance, attr_name, field.to_python(raw))
        if deferred:
            instance._deferred = frozenset(deferred)
        return instance
