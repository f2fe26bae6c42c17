"""
Quarry QuerySet - chainable, immutable, async-terminal query builder.

Every chain method returns a NEW QuerySet with copied state; terminal
methods (all, get, count, ...) are async and run against the handle the
queryset was built with (or the one bound to its model).

Usage:
    users = await User.objects.filter(active=True).order_by("-id").limit(10).all()
    count = await User.objects.filter(age__gt=18).count()
    names = await User.objects.values_list("name", flat=True).all()
    stats = await Post.objects.values("author").annotate(n=("COUNT", "id")).group_by("author").all()

Filter keys are field names or column names, optionally suffixed with a
lookup: ``__exact``, ``__ne``, ``__gt``, ``__gte``, ``__lt``, ``__lte``,
``__in``, ``__isnull``, ``__range``. Values always travel as bound
parameters; identifiers pass the allow-list in ``quarry.models.sql``.
"""

from __future__ import annotations

import logging
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

from ..faults.domains import (
    DatabaseConnectionFault,
    QueryFault,
    UnsafeOperationFault,
)
from .sql import check_identifier, quote_identifier

if TYPE_CHECKING:
    from ..db.engine import Database
    from .base import Model
    from .fields import Field

logger = logging.getLogger("quarry.models.query")

__all__ = ["QuerySet", "LOOKUPS", "AGGREGATE_FUNCTIONS"]


LOOKUPS = frozenset({"exact", "ne", "gt", "gte", "lt", "lte", "in", "isnull", "range"})
AGGREGATE_FUNCTIONS = frozenset({"COUNT", "SUM", "AVG", "MIN", "MAX"})

_COMPARISONS = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<="}
_COMPOUND_OPS = {"union": "UNION", "intersect": "INTERSECT", "difference": "EXCEPT"}

_NEVER = "1 = 0"


def _initial_state() -> Dict[str, Any]:
    return {
        "filters": {},
        "excludes": {},
        "ordering": None,
        "limit": None,
        "offset": None,
        "distinct": False,
        "projection": None,
        "columns": (),
        "only": None,
        "defer": None,
        "flat": False,
        "group_by": (),
        "annotations": {},
        "compound": None,
        "none": False,
    }


class QuerySet:
    """
    Lazy, immutable query over one model's table.

    State: filter and exclude criteria, ordering, limit/offset, distinct,
    projection (``None``, ``"values"``, ``"values_list"``), group-by,
    annotations ``{alias: (fn, column)}`` and at most one compound
    operation. Nothing touches the database until a terminal method runs.
    """

    __slots__ = ("model", "_db", "_state")

    def __init__(
        self,
        model: Type[Model],
        db: Optional[Database] = None,
        state: Optional[Dict[str, Any]] = None,
    ):
        self.model = model
        self._db = db
        self._state = state if state is not None else _initial_state()

    # ── Internal ─────────────────────────────────────────────────────

    def _clone(self, **changes: Any) -> QuerySet:
        """Copy state (containers included) and apply ``changes``."""
        state = dict(self._state)
        state["filters"] = dict(state["filters"])
        state["excludes"] = dict(state["excludes"])
        state["annotations"] = dict(state["annotations"])
        state.update(changes)
        return QuerySet(self.model, self._db, state)

    @property
    def db(self) -> Optional[Database]:
        return self._db if self._db is not None else self.model._db

    def _require_db(self) -> Database:
        db = self.db
        if db is None:
            raise DatabaseConnectionFault(
                url="<unbound>",
                reason=f"No database bound to {self.model.__name__}. Call ModelRegistry.bind(db).",
            )
        return db

    @property
    def dialect(self) -> str:
        db = self.db
        return db.dialect if db is not None else "sqlite"

    @property
    def _table(self) -> str:
        return quote_identifier(self.model._meta.table_name)

    def _field_for(self, name: str) -> Optional[Field]:
        if name == "pk":
            return self.model._meta.pk
        return self.model._meta.get_field(name)

    def _column(self, name: str) -> str:
        """Map a field name, column name or alias to a quoted identifier."""
        field = self._field_for(name)
        if field is not None and field.column_name:
            return quote_identifier(field.column_name)
        return quote_identifier(check_identifier(name))

    def _db_value(self, field: Optional[Field], value: Any) -> Any:
        if field is None:
            return value
        return field.to_db(value, self.dialect)

    @staticmethod
    def _merge(criteria: Optional[Mapping[str, Any]], lookups: Mapping[str, Any]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        if criteria:
            merged.update(criteria)
        merged.update(lookups)
        return merged

    def _condition(self, key: str, value: Any) -> Tuple[str, List[Any]]:
        """Compile one ``name[__lookup]`` criterion to SQL and params."""
        name, _, lookup = key.rpartition("__")
        if not name or lookup not in LOOKUPS:
            name, lookup = key, "exact"

        field = self._field_for(name)
        column = self._column(name)

        if lookup == "isnull":
            return (f"{column} IS NULL" if value else f"{column} IS NOT NULL"), []

        if lookup == "range":
            try:
                low, high = value
            except (TypeError, ValueError):
                raise QueryFault(
                    model=self.model.__name__,
                    operation="filter",
                    reason=f"'{key}' expects a (low, high) pair",
                ) from None
            return (
                f"{column} BETWEEN ? AND ?",
                [self._db_value(field, low), self._db_value(field, high)],
            )

        if lookup == "in" or (lookup == "exact" and isinstance(value, (list, tuple, set, frozenset))):
            if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
                raise QueryFault(
                    model=self.model.__name__,
                    operation="filter",
                    reason=f"'{key}' expects a list of values",
                )
            items = list(value)
            if not items:
                return _NEVER, []
            placeholders = ", ".join("?" for _ in items)
            return f"{column} IN ({placeholders})", [self._db_value(field, v) for v in items]

        if lookup == "exact":
            if value is None:
                return f"{column} IS NULL", []
            return f"{column} = ?", [self._db_value(field, value)]

        if lookup == "ne":
            if value is None:
                return f"{column} IS NOT NULL", []
            return f"{column} <> ?", [self._db_value(field, value)]

        return f"{column} {_COMPARISONS[lookup]} ?", [self._db_value(field, value)]

    def _where(self) -> Tuple[str, List[Any]]:
        parts: List[str] = []
        params: List[Any] = []
        for key, value in self._state["filters"].items():
            clause, clause_params = self._condition(key, value)
            parts.append(clause)
            params.extend(clause_params)
        for key, value in self._state["excludes"].items():
            clause, clause_params = self._condition(key, value)
            parts.append(f"NOT ({clause})")
            params.extend(clause_params)
        if not parts:
            return "", []
        return " WHERE " + " AND ".join(parts), params

    def _effective_ordering(self) -> Tuple[str, ...]:
        if self._state["ordering"] is not None:
            return self._state["ordering"]
        return self.model._meta.ordering

    def _order_sql(self) -> str:
        ordering = self._effective_ordering()
        if not ordering:
            return ""
        parts = []
        for entry in ordering:
            if entry.startswith("-"):
                parts.append(f"{self._column(entry[1:])} DESC")
            else:
                parts.append(f"{self._column(entry)} ASC")
        return " ORDER BY " + ", ".join(parts)

    def _limit_sql(self) -> str:
        limit = self._state["limit"]
        offset = self._state["offset"]
        sql = ""
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        if offset is not None:
            if limit is None and self.dialect == "sqlite":
                sql += " LIMIT -1"
            sql += f" OFFSET {int(offset)}"
        return sql

    def _annotation_sql(self, alias: str, spec: Tuple[str, str]) -> str:
        fn, column = spec
        target = "*" if column == "*" else self._column(column)
        return f"{fn}({target}) AS {quote_identifier(alias)}"

    def _select_list(self) -> str:
        state = self._state
        if state["projection"] is not None:
            base = [self._column(c) for c in self._projected_columns()]
        elif state["group_by"]:
            base = [self._column(c) for c in state["group_by"]]
        elif state["only"] is not None or state["defer"] is not None:
            base = [quote_identifier(c) for c in self._loaded_columns()]
        elif state["annotations"]:
            base = [f"{self._table}.*"]
        else:
            base = ["*"]
        annotations = [
            self._annotation_sql(alias, spec) for alias, spec in state["annotations"].items()
        ]
        return ", ".join(base + annotations)

    def _projected_columns(self) -> Tuple[str, ...]:
        columns = self._state["columns"]
        if columns:
            return columns
        if self._state["annotations"] and self._state["group_by"]:
            return tuple(self._state["group_by"])
        return tuple(self.model._meta.column_names)

    def _loaded_columns(self) -> List[str]:
        """Columns selected under only()/defer(); the primary key is always kept."""
        only = self._state["only"]
        deferred = self._state["defer"] or ()
        return [
            field.column_name
            for field in self.model._meta.concrete_fields
            if field.primary_key
            or ((only is None or field.name in only) and field.name not in deferred)
        ]

    def _compile_single(self, windowed: bool = True) -> Tuple[str, List[Any]]:
        state = self._state
        where, params = self._where()
        distinct = "DISTINCT " if state["distinct"] else ""
        sql = f"SELECT {distinct}{self._select_list()} FROM {self._table}{where}"
        if state["group_by"]:
            sql += " GROUP BY " + ", ".join(self._column(c) for c in state["group_by"])
        if windowed:
            sql += self._order_sql()
            sql += self._limit_sql()
        return sql, params

    def compile(self) -> Tuple[str, List[Any]]:
        """
        Return the SELECT statement and its parameters.

        For a compound set the ordering and the LIMIT/OFFSET window apply
        to the combined rows, not to the left operand.
        """
        compound = self._state["compound"]
        if compound is None:
            return self._compile_single()
        op, other, include_duplicates = compound
        sql, params = self._compile_single(windowed=False)
        other_sql, other_params = other.compile()
        keyword = _COMPOUND_OPS[op] + (" ALL" if include_duplicates else "")
        combined = f"SELECT * FROM ({sql}) AS _lhs {keyword} SELECT * FROM ({other_sql}) AS _rhs"
        return (
            f"SELECT * FROM ({combined}) AS _compound{self._order_sql()}{self._limit_sql()}",
            params + other_params,
        )

    def _needs_subquery(self) -> bool:
        state = self._state
        return bool(
            state["distinct"]
            or state["group_by"]
            or state["compound"] is not None
            or state["limit"] is not None
            or state["offset"] is not None
        )

    def _materialize(self, rows: List[Dict[str, Any]]) -> List[Any]:
        state = self._state
        projection = state["projection"]
        if projection is None and not state["group_by"]:
            results = []
            for row in rows:
                instance = self.model.from_row(row)
                for alias in state["annotations"]:
                    setattr(instance, alias, row.get(alias))
                results.append(instance)
            return results

        converted = [self._convert_row(row) for row in rows]
        if projection == "values_list":
            if state["flat"]:
                return [next(iter(row.values()), None) for row in converted]
            return [tuple(row.values()) for row in converted]
        return converted

    def _convert_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        converted: Dict[str, Any] = {}
        for key, value in row.items():
            field = self.model._meta.get_field(key)
            converted[key] = field.to_python(value) if field is not None else value
        return converted

    def _reject_sliced(self, operation: str) -> None:
        state = self._state
        if (
            state["compound"] is not None
            or state["limit"] is not None
            or state["offset"] is not None
            or state["group_by"]
        ):
            raise QueryFault(
                model=self.model.__name__,
                operation=operation,
                reason="Cannot run on a limited, grouped or compound queryset",
            )

    # ── Chain methods (return new QuerySet) ──────────────────────────

    def filter(self, criteria: Optional[Mapping[str, Any]] = None, **lookups: Any) -> QuerySet:
        """
        Narrow the set. Later criteria for the same key replace earlier ones.

        Usage:
            .filter(name="alice")
            .filter({"age__gte": 18, "role__in": ["admin", "staff"]})
        """
        filters = dict(self._state["filters"])
        filters.update(self._merge(criteria, lookups))
        return self._clone(filters=filters)

    def exclude(self, criteria: Optional[Mapping[str, Any]] = None, **lookups: Any) -> QuerySet:
        """Drop rows matching the criteria (each compiled as ``NOT (...)``)."""
        excludes = dict(self._state["excludes"])
        excludes.update(self._merge(criteria, lookups))
        return self._clone(excludes=excludes)

    def order_by(self, *columns: str) -> QuerySet:
        """Order by columns; a leading ``-`` sorts descending."""
        for column in columns:
            check_identifier(column.lstrip("-"))
        return self._clone(ordering=tuple(columns))

    def reverse(self) -> QuerySet:
        ordering = self._effective_ordering() or ("pk",)
        flipped = tuple(c[1:] if c.startswith("-") else f"-{c}" for c in ordering)
        return self._clone(ordering=flipped)

    def limit(self, n: int) -> QuerySet:
        if n is not None and int(n) < 0:
            raise QueryFault(model=self.model.__name__, operation="limit", reason="must not be negative")
        return self._clone(limit=None if n is None else int(n))

    def offset(self, n: int) -> QuerySet:
        if n is not None and int(n) < 0:
            raise QueryFault(model=self.model.__name__, operation="offset", reason="must not be negative")
        return self._clone(offset=None if n is None else int(n))

    def distinct(self, flag: bool = True) -> QuerySet:
        return self._clone(distinct=bool(flag))

    def values(self, *columns: str) -> QuerySet:
        """Return dicts of the named columns (all columns when none given)."""
        for column in columns:
            check_identifier(column)
        return self._clone(projection="values", columns=tuple(columns), flat=False)

    def values_list(self, *columns: str, flat: bool = False) -> QuerySet:
        """Return tuples, or scalars with ``flat=True`` (exactly one column)."""
        if flat and len(columns) != 1:
            raise QueryFault(
                model=self.model.__name__,
                operation="values_list",
                reason="flat=True requires exactly one column",
            )
        for column in columns:
            check_identifier(column)
        return self._clone(projection="values_list", columns=tuple(columns), flat=flat)

    def annotate(self, mapping: Optional[Mapping[str, Any]] = None, **specs: Any) -> QuerySet:
        """
        Add aggregate columns.

        Each spec is ``{"fn": "COUNT", "field": "id"}`` or ``("COUNT", "id")``.
        """
        annotations = dict(self._state["annotations"])
        for alias, spec in self._merge(mapping, specs).items():
            check_identifier(alias)
            annotations[alias] = self._parse_aggregate(alias, spec)
        return self._clone(annotations=annotations)

    def only(self, *fields: str) -> QuerySet:
        """
        Load instances with just these fields (plus the primary key).

        The other attributes read as ``None`` and are left out of
        ``save()``. ``only()`` with no arguments loads every field again.
        """
        return self._clone(only=self._field_names(fields, "only") or None)

    def defer(self, *fields: str) -> QuerySet:
        """Load instances without these fields; the inverse of ``only()``."""
        return self._clone(defer=self._field_names(fields, "defer") or None)

    def _field_names(self, names: Iterable[str], operation: str) -> Tuple[str, ...]:
        resolved = []
        for name in names:
            field = self._field_for(name)
            if field is None or field.is_many_to_many:
                raise QueryFault(
                    model=self.model.__name__,
                    operation=operation,
                    reason=f"Unknown field '{name}'",
                )
            resolved.append(field.name)
        return tuple(resolved)

    def group_by(self, *columns: str) -> QuerySet:
        for column in columns:
            check_identifier(column)
        return self._clone(group_by=tuple(columns))

    def union(self, other: QuerySet, all: bool = False) -> QuerySet:
        return self._compound("union", other, all)

    def intersect(self, other: QuerySet, all: bool = False) -> QuerySet:
        return self._compound("intersect", other, all)

    def difference(self, other: QuerySet, all: bool = False) -> QuerySet:
        return self._compound("difference", other, all)

    except_ = difference

    def none(self) -> QuerySet:
        """A queryset that yields nothing without touching the database."""
        return self._clone(none=True)

    def _compound(self, op: str, other: QuerySet, include_duplicates: bool) -> QuerySet:
        if not isinstance(other, QuerySet):
            raise QueryFault(
                model=self.model.__name__,
                operation=op,
                reason=f"Expected a QuerySet, got {type(other).__name__}",
            )
        return self._clone(compound=(op, other, bool(include_duplicates)))

    def _parse_aggregate(self, alias: str, spec: Any) -> Tuple[str, str]:
        if isinstance(spec, Mapping):
            fn, column = spec.get("fn"), spec.get("field", "*")
        elif isinstance(spec, (tuple, list)) and len(spec) == 2:
            fn, column = spec
        else:
            raise QueryFault(
                model=self.model.__name__,
                operation="annotate",
                reason=f"Invalid aggregate for '{alias}': {spec!r}",
            )
        fn = str(fn or "").upper()
        if fn not in AGGREGATE_FUNCTIONS:
            raise QueryFault(
                model=self.model.__name__,
                operation="annotate",
                reason=f"Unsupported aggregate {fn!r}. Must be one of: {sorted(AGGREGATE_FUNCTIONS)}",
            )
        if column != "*":
            check_identifier(column)
        elif fn != "COUNT":
            raise QueryFault(
                model=self.model.__name__,
                operation="annotate",
                reason=f"{fn} requires a column",
            )
        return fn, column

    # ── Terminal methods (async, execute query) ──────────────────────

    async def all(self) -> List[Any]:
        """Execute and return instances, or dicts/tuples/scalars for projections."""
        if self._state["none"]:
            return []
        sql, params = self.compile()
        rows = await self._require_db().fetch_all(sql, params)
        return self._materialize(rows)

    def __aiter__(self) -> AsyncIterator[Any]:
        """
        Async iteration over queryset results.

        Usage:
            async for user in User.objects.filter(active=True):
                print(user.name)
        """
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        for item in await self.all():
            yield item

    async def get(self, criteria: Optional[Mapping[str, Any]] = None, **lookups: Any) -> Optional[Model]:
        """
        Return the single matching row, ``None`` when there is none.

        Raises:
            Model.MultipleObjectsReturned: more than one row matched.
        """
        qs = self.filter(criteria, **lookups) if (criteria or lookups) else self
        rows = await qs._clone(limit=2).all()
        if not rows:
            return None
        if len(rows) > 1:
            raise self.model.MultipleObjectsReturned(
                self.model.__name__, dict(qs._state["filters"])
            )
        return rows[0]

    async def first(self) -> Optional[Model]:
        """First row by the current ordering, or by pk ascending."""
        qs = self if self._effective_ordering() else self.order_by("pk")
        rows = await qs._clone(limit=1).all()
        return rows[0] if rows else None

    async def last(self) -> Optional[Model]:
        """Last row: reverses the ordering, or orders by pk descending."""
        rows = await self.reverse()._clone(limit=1).all()
        return rows[0] if rows else None

    async def earliest(self, column: str) -> Model:
        result = await self.order_by(column).first()
        if result is None:
            raise self.model.DoesNotExist(self.model.__name__, dict(self._state["filters"]))
        return result

    async def latest(self, column: str) -> Model:
        result = await self.order_by(f"-{column}").first()
        if result is None:
            raise self.model.DoesNotExist(self.model.__name__, dict(self._state["filters"]))
        return result

    async def exists(self) -> bool:
        """Check for any matching row with ``SELECT 1 ... LIMIT 1``."""
        if self._state["none"]:
            return False
        if self._needs_subquery():
            inner, params = self.compile()
            sql = f"SELECT 1 FROM ({inner}) AS _exists LIMIT 1"
        else:
            where, params = self._where()
            sql = f"SELECT 1 FROM {self._table}{where} LIMIT 1"
        row = await self._require_db().fetch_one(sql, params)
        return row is not None

    async def count(self) -> int:
        """Return count of matching rows."""
        if self._state["none"]:
            return 0
        if self._needs_subquery():
            inner, params = self.compile()
            sql = f"SELECT COUNT(*) FROM ({inner}) AS _count"
        else:
            where, params = self._where()
            sql = f"SELECT COUNT(*) FROM {self._table}{where}"
        value = await self._require_db().fetch_val(sql, params)
        return int(value or 0)

    async def aggregate(self, mapping: Optional[Mapping[str, Any]] = None, **specs: Any) -> Dict[str, Any]:
        """
        Aggregate over the whole set.

        Usage:
            await Order.objects.aggregate(total=("SUM", "amount"), n=("COUNT", "*"))
        """
        specs = self._merge(mapping, specs)
        if not specs:
            return {}
        parsed = {}
        for alias, spec in specs.items():
            check_identifier(alias)
            parsed[alias] = self._parse_aggregate(alias, spec)
        if self._state["none"]:
            return {alias: (0 if fn == "COUNT" else None) for alias, (fn, _) in parsed.items()}

        columns = ", ".join(self._annotation_sql(alias, spec) for alias, spec in parsed.items())
        if self._needs_subquery() or self._state["annotations"]:
            inner, params = self.compile()
            sql = f"SELECT {columns} FROM ({inner}) AS _agg"
        else:
            where, params = self._where()
            sql = f"SELECT {columns} FROM {self._table}{where}"
        row = await self._require_db().fetch_one(sql, params)
        return dict(row) if row else {alias: None for alias in parsed}

    async def in_bulk(self, ids: Iterable[Any]) -> Dict[Any, Model]:
        """Map primary key -> instance for the given keys."""
        ids = list(ids)
        if not ids:
            return {}
        objs = await self.filter(pk__in=ids).all()
        return {obj.pk: obj for obj in objs}

    async def iterator(self, batch_size: int = 100) -> AsyncIterator[Any]:
        """
        Stream results in LIMIT/OFFSET windows.

        Honours an existing limit/offset; orders by pk when unordered.
        """
        if batch_size < 1:
            raise QueryFault(model=self.model.__name__, operation="iterator", reason="batch_size must be positive")
        if self._state["none"]:
            return
        base = self if self._effective_ordering() else self.order_by("pk")
        position = self._state["offset"] or 0
        remaining = self._state["limit"]
        while True:
            size = batch_size if remaining is None else min(batch_size, remaining)
            if size <= 0:
                return
            page = await base._clone(limit=size, offset=position).all()
            for item in page:
                yield item
            if len(page) < batch_size:
                return
            position += len(page)
            if remaining is not None:
                remaining -= len(page)

    # ── Writes ───────────────────────────────────────────────────────

    def _resolve_payload(self, payload: Mapping[str, Any], operation: str) -> Dict[str, Any]:
        """Key the payload by field name, accepting field or column names."""
        resolved: Dict[str, Any] = {}
        for key, value in payload.items():
            field = self._field_for(key)
            if field is None or field.is_many_to_many:
                raise QueryFault(
                    model=self.model.__name__,
                    operation=operation,
                    reason=f"Unknown field '{key}'",
                )
            resolved[field.name] = value
        return resolved

    async def create(self, data: Optional[Mapping[str, Any]] = None, **values: Any) -> Model:
        """
        Insert one row and return it as re-read from the database.

        Omitted columns get their default (callable defaults are called);
        ``auto_now``/``auto_now_add`` fields are stamped; every value is
        validated before the INSERT.
        """
        db = self._require_db()
        dialect = db.dialect
        meta = self.model._meta
        payload = self._resolve_payload(self._merge(data, values), "create")

        columns: List[str] = []
        params: List[Any] = []
        pk_value = None
        for field in meta.concrete_fields:
            value = payload.get(field.name)
            if field.primary_key and field.is_auto and value is None:
                continue
            value = field.pre_save(value, is_create=True)
            if value is None and field.has_default():
                value = field.get_default()
            value = field.validate(value)
            if field.primary_key:
                pk_value = value
            columns.append(quote_identifier(field.column_name))
            params.append(field.to_db(value, dialect))

        if columns:
            placeholders = ", ".join("?" for _ in columns)
            sql = f"INSERT INTO {self._table} ({', '.join(columns)}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {self._table} DEFAULT VALUES"

        if db.capabilities.supports_returning:
            sql += f" RETURNING {quote_identifier(meta.pk.column_name)}"
            new_pk = await db.fetch_val(sql, params)
        else:
            result = await db.execute(sql, params)
            new_pk = pk_value if pk_value is not None else result.lastrowid

        instance = await QuerySet(self.model, self._db).get({meta.pk.name: meta.pk.to_python(new_pk)})
        if instance is None:
            raise QueryFault(
                model=self.model.__name__,
                operation="create",
                reason=f"Inserted row with pk={new_pk!r} could not be read back",
            )
        logger.debug(f"Created {self.model.__name__} pk={instance.pk!r}")
        return instance

    async def bulk_create(self, rows: Iterable[Mapping[str, Any]]) -> List[Model]:
        """Create rows one after another; not atomic."""
        return [await self.create(row) for row in rows]

    async def update(
        self,
        criteria: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        **values: Any,
    ) -> int:
        """
        Update matching rows. Returns the affected row count.

        ``auto_now`` fields are re-stamped on every update.
        """
        qs = self.filter(criteria) if criteria else self
        if qs._state["none"]:
            return 0
        qs._reject_sliced("update")

        db = qs._require_db()
        dialect = db.dialect
        payload = qs._resolve_payload(qs._merge(data, values), "update")

        assignments: List[str] = []
        params: List[Any] = []
        for field in self.model._meta.concrete_fields:
            if field.auto_now:
                value = field.pre_save(None, is_create=False)
            elif field.name in payload:
                value = field.validate(payload[field.name])
            else:
                continue
            assignments.append(f"{quote_identifier(field.column_name)} = ?")
            params.append(field.to_db(value, dialect))

        if not assignments:
            return 0

        where, where_params = qs._where()
        sql = f"UPDATE {qs._table} SET {', '.join(assignments)}{where}"
        result = await db.execute(sql, params + where_params)
        logger.debug(f"Updated {result.rowcount} {self.model.__name__} row(s)")
        return result.rowcount

    async def bulk_update(self, objs: Iterable[Any], fields: Iterable[str]) -> int:
        """
        Write ``fields`` of each object back to its row, one UPDATE per object.

        ``objs`` are model instances or mappings keyed by field name.
        Objects without a primary key are skipped. Not atomic. Returns the
        total number of rows changed.
        """
        names = self._field_names(fields, "bulk_update")
        if not names:
            raise QueryFault(
                model=self.model.__name__,
                operation="bulk_update",
                reason="fields must name at least one field",
            )
        pk_name = self.model._meta.pk.name
        if pk_name in names:
            raise QueryFault(
                model=self.model.__name__,
                operation="bulk_update",
                reason="the primary key cannot be updated",
            )

        changed = 0
        for obj in objs:
            if isinstance(obj, Mapping):
                pk = obj.get(pk_name, obj.get("pk"))
                data = {name: obj[name] for name in names if name in obj}
            else:
                pk = obj.pk
                data = {name: getattr(obj, name) for name in names}
            if pk is None or not data:
                continue
            changed += await QuerySet(self.model, self._db).filter(pk=pk).update(data=data)
        logger.debug(f"Bulk-updated {changed} {self.model.__name__} row(s)")
        return changed

    async def delete(self, criteria: Optional[Mapping[str, Any]] = None) -> int:
        """
        Delete matching rows. Returns the deleted row count.

        Raises:
            UnsafeOperationFault: the WHERE clause would be empty.
        """
        qs = self.filter(criteria) if criteria else self
        if qs._state["none"]:
            return 0
        qs._reject_sliced("delete")
        where, params = qs._where()
        if not where:
            raise UnsafeOperationFault(
                self.model.__name__,
                "delete",
                "no filter criteria; this would delete every row",
            )
        result = await qs._require_db().execute(f"DELETE FROM {qs._table}{where}", params)
        logger.debug(f"Deleted {result.rowcount} {self.model.__name__} row(s)")
        return result.rowcount

    async def get_or_create(
        self, lookup: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None
    ) -> Tuple[Model, bool]:
        """
        Return ``(instance, created)``.

        Check-then-insert, so concurrent callers can both create; rely on
        a unique constraint where that matters.
        """
        existing = await self.filter(lookup).first()
        if existing is not None:
            return existing, False
        payload = {k: v for k, v in lookup.items() if "__" not in k}
        payload.update(defaults or {})
        return await self.create(payload), True

    async def update_or_create(
        self, lookup: Mapping[str, Any], data: Optional[Mapping[str, Any]] = None
    ) -> Tuple[Model, bool]:
        """Update the first match with ``data`` or create it. Returns ``(instance, created)``."""
        existing = await self.filter(lookup).first()
        if existing is not None:
            by_pk = QuerySet(self.model, self._db).filter(pk=existing.pk)
            if data:
                await by_pk.update(data=data)
            return (await by_pk.get()) or existing, False
        payload = {k: v for k, v in lookup.items() if "__" not in k}
        payload.update(data or {})
        return await self.create(payload), True

    def __repr__(self) -> str:
        if self._state["none"]:
            return f"<QuerySet: {self.model.__name__}.none()>"
        sql, params = self.compile()
        return f"<QuerySet: {sql} {params}>"
