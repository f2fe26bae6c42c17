"""
Quarry Model Fields - one field record, a closed set of kinds.

Every column is described by a single ``Field`` whose ``kind`` is a member
of ``FieldKind``. SQL rendering, validation and value conversion are looked
up per kind in dispatch tables, so there is no field class hierarchy:

    class User(Model):
        table = "users"

        username = CharField(max_length=150, unique=True)
        role = CharField(max_length=20, default="user", choices=["user", "admin"])
        is_active = BooleanField(default=True)
        created_at = DateTimeField(auto_now_add=True)
        updated_at = DateTimeField(auto_now=True)

    class Post(Model):
        table = "posts"

        title = CharField(max_length=200)
        author = ForeignKey("User", on_delete="CASCADE", related_name="posts")
        tags = ManyToManyField("Tag")

Callable defaults (``default=now``, ``default=new_uuid``) are computed at
insert time by the query layer and never rendered into a ``DEFAULT`` clause.
"""

from __future__ import annotations

import copy
import datetime
import decimal
import json
import re
import uuid
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
    Sequence,
    Tuple,
    Type,
    TYPE_CHECKING,
)

from ..faults.domains import FieldValidationFault, ModelNotFoundFault, ModelRegistrationFault
from .sql import check_identifier, quote_identifier

if TYPE_CHECKING:
    from .base import Model

__all__ = [
    "FieldKind",
    "Field",
    "UNSET",
    "ON_DELETE_POLICIES",
    "now",
    "new_uuid",
    # Constructors
    "AutoField",
    "BigAutoField",
    "IntegerField",
    "SmallIntegerField",
    "BigIntegerField",
    "FloatField",
    "DecimalField",
    "CharField",
    "TextField",
    "EmailField",
    "SlugField",
    "URLField",
    "UUIDField",
    "BooleanField",
    "DateField",
    "TimeField",
    "DateTimeField",
    "DurationField",
    "BinaryField",
    "JSONField",
    "ForeignKey",
    "OneToOneField",
    "ManyToManyField",
]


# ── Sentinel ─────────────────────────────────────────────────────────────────

class _Unset:
    """Sentinel for distinguishing 'not set' from None."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "<UNSET>"

    def __bool__(self):
        return False


UNSET = _Unset()


# ── Deferred defaults ────────────────────────────────────────────────────────

def now() -> datetime.datetime:
    """Current UTC time. Use as ``default=now``."""
    return datetime.datetime.now(datetime.timezone.utc)


def new_uuid() -> uuid.UUID:
    """Random UUID4. Use as ``default=new_uuid``."""
    return uuid.uuid4()


# ── Kinds ────────────────────────────────────────────────────────────────────


class FieldKind(str, Enum):
    AUTO = "auto"
    BIG_AUTO = "big_auto"
    INTEGER = "integer"
    SMALL_INTEGER = "small_integer"
    BIG_INTEGER = "big_integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    CHAR = "char"
    TEXT = "text"
    EMAIL = "email"
    SLUG = "slug"
    URL = "url"
    UUID = "uuid"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    DURATION = "duration"
    BINARY = "binary"
    JSON = "json"
    FOREIGN_KEY = "foreign_key"
    ONE_TO_ONE = "one_to_one"
    MANY_TO_MANY = "many_to_many"


AUTO_KINDS = frozenset({FieldKind.AUTO, FieldKind.BIG_AUTO})
INTEGER_KINDS = frozenset({
    FieldKind.AUTO,
    FieldKind.BIG_AUTO,
    FieldKind.INTEGER,
    FieldKind.SMALL_INTEGER,
    FieldKind.BIG_INTEGER,
})
BOUNDED_TEXT_KINDS = frozenset({FieldKind.CHAR, FieldKind.EMAIL, FieldKind.SLUG, FieldKind.URL})
TEMPORAL_KINDS = frozenset({FieldKind.DATE, FieldKind.TIME, FieldKind.DATETIME})
FK_KINDS = frozenset({FieldKind.FOREIGN_KEY, FieldKind.ONE_TO_ONE})
RELATION_KINDS = FK_KINDS | {FieldKind.MANY_TO_MANY}

ON_DELETE_POLICIES = frozenset({"CASCADE", "SET NULL", "SET DEFAULT", "RESTRICT", "NO ACTION"})


# ── SQL type dispatch ────────────────────────────────────────────────────────

def _fk_sql_type(field: Field, dialect: str) -> str:
    target_pk = field.related_model._meta.pk
    if target_pk.kind in INTEGER_KINDS:
        if dialect == "postgresql" and target_pk.kind in (FieldKind.BIG_AUTO, FieldKind.BIG_INTEGER):
            return "BIGINT"
        return "INTEGER"
    return target_pk.sql_type(dialect)


def _by_dialect(sqlite: str, postgresql: str) -> Callable[[Field, str], str]:
    def render(field: Field, dialect: str) -> str:
        return postgresql if dialect == "postgresql" else sqlite
    return render


def _bounded_text(field: Field, dialect: str) -> str:
    if dialect == "postgresql":
        return f"VARCHAR({field.max_length})"
    return "TEXT"


def _decimal_type(field: Field, dialect: str) -> str:
    if dialect == "postgresql":
        return f"NUMERIC({field.max_digits}, {field.decimal_places})"
    return "REAL"


_SQL_TYPES: Dict[FieldKind, Callable[[Field, str], str]] = {
    FieldKind.AUTO: _by_dialect("INTEGER", "SERIAL"),
    FieldKind.BIG_AUTO: _by_dialect("INTEGER", "BIGSERIAL"),
    FieldKind.INTEGER: _by_dialect("INTEGER", "INTEGER"),
    FieldKind.SMALL_INTEGER: _by_dialect("SMALLINT", "SMALLINT"),
    FieldKind.BIG_INTEGER: _by_dialect("BIGINT", "BIGINT"),
    FieldKind.FLOAT: _by_dialect("REAL", "DOUBLE PRECISION"),
    FieldKind.DECIMAL: _decimal_type,
    FieldKind.CHAR: _bounded_text,
    FieldKind.EMAIL: _bounded_text,
    FieldKind.SLUG: _bounded_text,
    FieldKind.URL: _bounded_text,
    FieldKind.TEXT: _by_dialect("TEXT", "TEXT"),
    FieldKind.UUID: _by_dialect("TEXT", "UUID"),
    FieldKind.BOOLEAN: _by_dialect("INTEGER", "BOOLEAN"),
    FieldKind.DATE: _by_dialect("TEXT", "DATE"),
    FieldKind.TIME: _by_dialect("TEXT", "TIME"),
    FieldKind.DATETIME: _by_dialect("TEXT", "TIMESTAMP WITH TIME ZONE"),
    FieldKind.DURATION: _by_dialect("INTEGER", "BIGINT"),
    FieldKind.BINARY: _by_dialect("BLOB", "BYTEA"),
    FieldKind.JSON: _by_dialect("TEXT", "JSONB"),
    FieldKind.FOREIGN_KEY: _fk_sql_type,
    FieldKind.ONE_TO_ONE: _fk_sql_type,
}


# ── Validation dispatch ──────────────────────────────────────────────────────
#
# Each checker returns the cleaned value or raises TypeError/ValueError with
# a message; Field.validate turns that into a FieldValidationFault.

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SLUG_RE = re.compile(r"^[-a-zA-Z0-9_]+$")
_URL_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://\S+$")


def _check_integer(field: Field, value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("Expected integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise TypeError(f"Expected integer, got {type(value).__name__}")


def _check_float(field: Field, value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("Expected number, got bool")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise TypeError(f"Expected number, got {type(value).__name__}") from None


def _check_decimal(field: Field, value: Any) -> decimal.Decimal:
    if isinstance(value, bool):
        raise TypeError("Expected decimal, got bool")
    try:
        result = decimal.Decimal(str(value))
    except decimal.InvalidOperation:
        raise ValueError(f"Invalid decimal value {value!r}") from None
    if field.max_digits is not None:
        digits = len(result.as_tuple().digits)
        if digits > field.max_digits:
            raise ValueError(f"Ensure there are no more than {field.max_digits} digits")
    return result


def _check_text(field: Field, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"Expected string, got {type(value).__name__}")
    return value


def _pattern_checker(pattern: re.Pattern, label: str) -> Callable[[Field, Any], str]:
    def check(field: Field, value: Any) -> str:
        value = _check_text(field, value)
        if not pattern.match(value):
            raise ValueError(f"Enter a valid {label}")
        return value
    return check


def _check_uuid(field: Field, value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValueError(f"Invalid UUID {value!r}") from None


def _check_boolean(field: Field, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value in (0, 1):
        return bool(value)
    raise TypeError(f"Expected boolean, got {type(value).__name__}")


def _check_date(field: Field, value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        return datetime.date.fromisoformat(value)
    raise TypeError(f"Expected date, got {type(value).__name__}")


def _check_time(field: Field, value: Any) -> datetime.time:
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, str):
        return datetime.time.fromisoformat(value)
    raise TypeError(f"Expected time, got {type(value).__name__}")


def _check_datetime(field: Field, value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value)
    raise TypeError(f"Expected datetime, got {type(value).__name__}")


def _check_duration(field: Field, value: Any) -> datetime.timedelta:
    if isinstance(value, datetime.timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.timedelta(seconds=value)
    raise TypeError(f"Expected timedelta, got {type(value).__name__}")


def _check_binary(field: Field, value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"Expected bytes, got {type(value).__name__}")


def _check_json(field: Field, value: Any) -> Any:
    json.dumps(value)
    return value


def _check_fk(field: Field, value: Any) -> Any:
    if hasattr(value, "_meta") and hasattr(value, "pk"):
        value = value.pk
        if value is None:
            raise ValueError("Related instance has not been saved")
    return value


_CHECKS: Dict[FieldKind, Callable[[Field, Any], Any]] = {
    FieldKind.AUTO: _check_integer,
    FieldKind.BIG_AUTO: _check_integer,
    FieldKind.INTEGER: _check_integer,
    FieldKind.SMALL_INTEGER: _check_integer,
    FieldKind.BIG_INTEGER: _check_integer,
    FieldKind.FLOAT: _check_float,
    FieldKind.DECIMAL: _check_decimal,
    FieldKind.CHAR: _check_text,
    FieldKind.TEXT: _check_text,
    FieldKind.EMAIL: _pattern_checker(_EMAIL_RE, "email address"),
    FieldKind.SLUG: _pattern_checker(_SLUG_RE, "slug"),
    FieldKind.URL: _pattern_checker(_URL_RE, "URL"),
    FieldKind.UUID: _check_uuid,
    FieldKind.BOOLEAN: _check_boolean,
    FieldKind.DATE: _check_date,
    FieldKind.TIME: _check_time,
    FieldKind.DATETIME: _check_datetime,
    FieldKind.DURATION: _check_duration,
    FieldKind.BINARY: _check_binary,
    FieldKind.JSON: _check_json,
    FieldKind.FOREIGN_KEY: _check_fk,
    FieldKind.ONE_TO_ONE: _check_fk,
}


# ── Conversion dispatch ──────────────────────────────────────────────────────

def _temporal_to_db(field: Field, value: Any, dialect: str) -> Any:
    if dialect == "postgresql":
        return value
    return value.isoformat() if hasattr(value, "isoformat") else value


def _temporal_to_python(parse: Callable[[str], Any]) -> Callable[[Field, Any], Any]:
    def convert(field: Field, value: Any) -> Any:
        if isinstance(value, str):
            return parse(value)
        return value
    return convert


def _date_to_python(field: Field, value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, str):
        return datetime.date.fromisoformat(value)
    return value


_TO_DB: Dict[FieldKind, Callable[[Field, Any, str], Any]] = {
    FieldKind.BOOLEAN: lambda f, v, d: bool(v) if d == "postgresql" else int(bool(v)),
    FieldKind.DATE: _temporal_to_db,
    FieldKind.TIME: _temporal_to_db,
    FieldKind.DATETIME: _temporal_to_db,
    FieldKind.DURATION: lambda f, v, d: (
        v // datetime.timedelta(microseconds=1) if isinstance(v, datetime.timedelta) else int(v)
    ),
    FieldKind.UUID: lambda f, v, d: (
        (v if isinstance(v, uuid.UUID) else uuid.UUID(str(v))) if d == "postgresql" else str(v)
    ),
    FieldKind.DECIMAL: lambda f, v, d: (
        decimal.Decimal(str(v)) if d == "postgresql" else float(v)
    ),
    FieldKind.JSON: lambda f, v, d: json.dumps(v),
    FieldKind.BINARY: lambda f, v, d: bytes(v),
    FieldKind.FOREIGN_KEY: lambda f, v, d: _check_fk(f, v),
    FieldKind.ONE_TO_ONE: lambda f, v, d: _check_fk(f, v),
}

_TO_PYTHON: Dict[FieldKind, Callable[[Field, Any], Any]] = {
    FieldKind.BOOLEAN: lambda f, v: bool(v),
    FieldKind.DATE: _date_to_python,
    FieldKind.TIME: _temporal_to_python(datetime.time.fromisoformat),
    FieldKind.DATETIME: _temporal_to_python(datetime.datetime.fromisoformat),
    FieldKind.DURATION: lambda f, v: (
        v if isinstance(v, datetime.timedelta) else datetime.timedelta(microseconds=int(v))
    ),
    FieldKind.UUID: lambda f, v: v if isinstance(v, uuid.UUID) else uuid.UUID(str(v)),
    FieldKind.DECIMAL: lambda f, v: decimal.Decimal(str(v)),
    FieldKind.JSON: lambda f, v: json.loads(v) if isinstance(v, (str, bytes)) else v,
    FieldKind.BINARY: lambda f, v: bytes(v),
}


def _sql_literal(field: Field, value: Any, dialect: str) -> str:
    """Render a static default as a SQL literal."""
    if field.kind is FieldKind.JSON:
        value = json.dumps(value)
    elif isinstance(value, bool):
        if dialect == "postgresql":
            return "TRUE" if value else "FALSE"
        return "1" if value else "0"
    elif isinstance(value, (int, float, decimal.Decimal)):
        return str(value)
    elif isinstance(value, datetime.timedelta):
        return str(value // datetime.timedelta(microseconds=1))
    elif isinstance(value, (datetime.date, datetime.time)):
        value = value.isoformat()
    text = str(value).replace("'", "''")
    return f"'{text}'"


# ── Field ────────────────────────────────────────────────────────────────────


class Field:
    """
    Column descriptor.

    Core parameters:
        kind         - FieldKind member
        null         - Allow NULL in database (default False)
        unique       - Add UNIQUE constraint
        primary_key  - Mark as primary key (implicitly NOT NULL)
        default      - Literal value, or callable computed at insert time
        choices      - Closed set of allowed values (values or (value, label) pairs)
        max_length   - Bound for text kinds
        db_column    - Override column name

    Kind-specific parameters:
        max_digits, decimal_places  - DECIMAL
        auto_now, auto_now_add      - DATE / TIME / DATETIME
        to, on_delete, related_name - relations
        through                     - explicit join table for MANY_TO_MANY
    """

    _creation_counter = 0

    def __init__(
        self,
        kind: FieldKind,
        *,
        null: bool = False,
        unique: bool = False,
        primary_key: bool = False,
        default: Any = UNSET,
        choices: Optional[Sequence[Any]] = None,
        max_length: Optional[int] = None,
        max_digits: Optional[int] = None,
        decimal_places: Optional[int] = None,
        auto_now: bool = False,
        auto_now_add: bool = False,
        to: Any = None,
        on_delete: str = "CASCADE",
        related_name: Optional[str] = None,
        through: Optional[str] = None,
        db_column: Optional[str] = None,
    ):
        self.kind = FieldKind(kind)
        self.null = null
        self.unique = unique
        self.primary_key = primary_key
        self.default = default
        self.choices: Optional[Tuple[Any, ...]] = _normalize_choices(choices)
        self.max_length = max_length
        self.max_digits = max_digits
        self.decimal_places = decimal_places
        self.auto_now = auto_now
        self.auto_now_add = auto_now_add
        self.to = to
        self.on_delete = on_delete.upper()
        self.related_name = related_name
        self.through = through
        self.db_column = db_column

        self.name: Optional[str] = None
        self.model: Optional[Type[Model]] = None

        self._check_options()

        self._order = Field._creation_counter
        Field._creation_counter += 1

    def _check_options(self) -> None:
        if self.kind in BOUNDED_TEXT_KINDS and (self.max_length is None or self.max_length < 1):
            raise ValueError(f"{self.kind.value} field requires a positive max_length")
        if self.kind is FieldKind.DECIMAL and (self.max_digits is None or self.decimal_places is None):
            raise ValueError("decimal field requires max_digits and decimal_places")
        if (self.auto_now or self.auto_now_add) and self.kind not in TEMPORAL_KINDS:
            raise ValueError("auto_now / auto_now_add only apply to date and time fields")
        if self.kind in RELATION_KINDS:
            if self.to is None:
                raise ValueError(f"{self.kind.value} field requires a target model")
            if self.on_delete not in ON_DELETE_POLICIES:
                raise ValueError(
                    f"Invalid on_delete {self.on_delete!r}. "
                    f"Must be one of: {sorted(ON_DELETE_POLICIES)}"
                )
        if self.kind is FieldKind.MANY_TO_MANY and self.primary_key:
            raise ValueError("A many-to-many field cannot be a primary key")
        if self.through is not None:
            check_identifier(self.through)
        if self.db_column is not None:
            check_identifier(self.db_column)

    def __set_name__(self, owner: Any, name: str) -> None:
        self.name = name

    # ── Identity ─────────────────────────────────────────────────────

    @property
    def column_name(self) -> Optional[str]:
        """Database column for this field; ``None`` for many-to-many."""
        if self.kind is FieldKind.MANY_TO_MANY:
            return None
        if self.db_column:
            return self.db_column
        if self.kind in FK_KINDS:
            return f"{self.name}_id"
        return self.name

    @property
    def is_relation(self) -> bool:
        return self.kind in RELATION_KINDS

    @property
    def is_many_to_many(self) -> bool:
        return self.kind is FieldKind.MANY_TO_MANY

    @property
    def is_auto(self) -> bool:
        return self.kind in AUTO_KINDS

    @property
    def is_unique(self) -> bool:
        return self.unique or self.kind is FieldKind.ONE_TO_ONE

    @property
    def related_model(self) -> Type[Model]:
        """Resolve ``to`` (class, model name, or ``"self"``) to a model class."""
        target = self.to
        if isinstance(target, str):
            if target == "self":
                return self.model
            from .registry import ModelRegistry
            resolved = ModelRegistry.get(target)
            if resolved is None:
                raise ModelNotFoundFault(target)
            return resolved
        return target

    # ── Defaults ─────────────────────────────────────────────────────

    def has_default(self) -> bool:
        return self.default is not UNSET

    def get_default(self) -> Any:
        """Return the default value, calling it when it is deferred."""
        if self.default is UNSET:
            return None
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)

    def pre_save(self, current: Any, is_create: bool) -> Any:
        """
        Stamp auto timestamps.

        ``auto_now`` stamps on every write. ``auto_now_add`` stamps on create
        when no value was supplied.
        """
        if self.auto_now or (self.auto_now_add and is_create and current is None):
            stamp = now()
            if self.kind is FieldKind.DATE:
                return stamp.date()
            if self.kind is FieldKind.TIME:
                return stamp.time().replace(tzinfo=None)
            return stamp
        return current

    # ── Validation & conversion ──────────────────────────────────────

    def validate(self, value: Any) -> Any:
        """
        Validate and clean ``value``.

        Raises:
            FieldValidationFault: with ``constraint`` set to ``"null"``,
                ``"choices"``, ``"max_length"`` or ``"type"``.
        """
        if value is None:
            if self.null or self.primary_key:
                return None
            raise FieldValidationFault(self.name, "null", "Cannot be null", value)

        checker = _CHECKS.get(self.kind)
        if checker is not None:
            try:
                value = checker(self, value)
            except (TypeError, ValueError) as exc:
                raise FieldValidationFault(self.name, "type", str(exc), value) from exc

        if self.choices is not None and value not in self.choices:
            raise FieldValidationFault(
                self.name,
                "choices",
                f"Invalid choice {value!r}. Must be one of: {list(self.choices)}",
                value,
            )

        if self.max_length is not None and isinstance(value, str) and len(value) > self.max_length:
            raise FieldValidationFault(
                self.name,
                "max_length",
                f"Ensure this value has at most {self.max_length} characters (it has {len(value)})",
                value,
            )

        return value

    def to_db(self, value: Any, dialect: str = "sqlite") -> Any:
        """Convert Python value to a driver value for ``dialect``."""
        if value is None:
            return None
        convert = _TO_DB.get(self.kind)
        return convert(self, value, dialect) if convert else value

    def to_python(self, value: Any) -> Any:
        """Convert a driver value to a Python object."""
        if value is None:
            return None
        convert = _TO_PYTHON.get(self.kind)
        return convert(self, value) if convert else value

    # ── SQL rendering ────────────────────────────────────────────────

    def sql_type(self, dialect: str = "sqlite") -> Optional[str]:
        """Bare SQL type for this field, ``None`` for many-to-many."""
        render = _SQL_TYPES.get(self.kind)
        return render(self, dialect) if render else None

    def sql_definition(self, dialect: str = "sqlite", with_unique: bool = True) -> Optional[str]:
        """
        Column definition without the column name.

        This is the string stored in migration snapshots. ``with_unique=False``
        leaves out the UNIQUE constraint (SQLite cannot add one with
        ``ALTER TABLE ... ADD COLUMN``).
        """
        if self.kind is FieldKind.MANY_TO_MANY:
            return None

        if self.primary_key:
            if self.kind in AUTO_KINDS and dialect != "postgresql":
                return "INTEGER PRIMARY KEY AUTOINCREMENT"
            return f"{self.sql_type(dialect)} PRIMARY KEY"

        parts = [self.sql_type(dialect)]
        if not self.null:
            parts.append("NOT NULL")
        if with_unique and self.is_unique:
            parts.append("UNIQUE")
        if self.has_default() and not callable(self.default) and self.default is not None:
            parts.append(f"DEFAULT {_sql_literal(self, self.default, dialect)}")
        if self.kind in FK_KINDS:
            target = self.related_model
            parts.append(
                f"REFERENCES {quote_identifier(target._meta.table_name)}"
                f"({quote_identifier(target._meta.pk.column_name)}) "
                f"ON DELETE {self.on_delete}"
            )
        return " ".join(parts)

    def render_column_sql(self, dialect: str = "sqlite", with_unique: bool = True) -> Optional[str]:
        """Full column definition fragment, ``None`` for many-to-many."""
        definition = self.sql_definition(dialect, with_unique)
        if definition is None:
            return None
        return f"{quote_identifier(self.column_name)} {definition}"

    # ── Many-to-many join table ──────────────────────────────────────

    def join_table_name(self) -> str:
        self._require_many_to_many()
        if self.through:
            return self.through
        return f"{self.model._meta.table_name}_{self.related_model._meta.table_name}"

    def join_columns(self) -> Tuple[str, str]:
        """(source column, target column) in the join table."""
        self._require_many_to_many()
        src = self.model._meta.table_name
        dst = self.related_model._meta.table_name
        if src == dst:
            return f"from_{src}_id", f"to_{dst}_id"
        return f"{src}_id", f"{dst}_id"

    def join_table_definitions(self, dialect: str = "sqlite") -> Dict[str, str]:
        """Join table column -> definition, as stored in snapshots."""
        src_col, dst_col = self.join_columns()
        source = self.model
        target = self.related_model
        return {
            src_col: _join_column_sql(source, dialect),
            dst_col: _join_column_sql(target, dialect),
        }

    def join_table_sql(self, dialect: str = "sqlite") -> str:
        """CREATE TABLE statement for the join table."""
        src_col, dst_col = self.join_columns()
        columns = [
            f"{quote_identifier(col)} {definition}"
            for col, definition in self.join_table_definitions(dialect).items()
        ]
        columns.append(f"PRIMARY KEY ({quote_identifier(src_col)}, {quote_identifier(dst_col)})")
        return (
            f"CREATE TABLE {quote_identifier(self.join_table_name())} "
            f"({', '.join(columns)})"
        )

    def _require_many_to_many(self) -> None:
        if self.kind is not FieldKind.MANY_TO_MANY:
            raise ModelRegistrationFault(
                getattr(self.model, "__name__", "<unbound>"),
                f"Field '{self.name}' is not a many-to-many field",
            )

    def __repr__(self) -> str:
        owner = self.model.__name__ if self.model is not None else "<unbound>"
        return f"<Field {owner}.{self.name} kind={self.kind.value}>"


def _join_column_sql(model: Type[Model], dialect: str) -> str:
    pk = model._meta.pk
    if pk.kind not in INTEGER_KINDS:
        col_type = pk.sql_type(dialect)
    elif dialect == "postgresql" and pk.kind in (FieldKind.BIG_AUTO, FieldKind.BIG_INTEGER):
        col_type = "BIGINT"
    else:
        col_type = "INTEGER"
    return (
        f"{col_type} NOT NULL REFERENCES {quote_identifier(model._meta.table_name)}"
        f"({quote_identifier(pk.column_name)}) ON DELETE CASCADE"
    )


def _normalize_choices(choices: Optional[Sequence[Any]]) -> Optional[Tuple[Any, ...]]:
    if choices is None:
        return None
    values = []
    for choice in choices:
        if isinstance(choice, (tuple, list)) and len(choice) == 2:
            values.append(choice[0])
        else:
            values.append(choice)
    return tuple(values)


# ── Constructors ─────────────────────────────────────────────────────────────
#
# Named after the kind they build; each returns a plain Field.


def AutoField(**options: Any) -> Field:
    options.setdefault("primary_key", True)
    return Field(FieldKind.AUTO, **options)


def BigAutoField(**options: Any) -> Field:
    options.setdefault("primary_key", True)
    return Field(FieldKind.BIG_AUTO, **options)


def IntegerField(**options: Any) -> Field:
    return Field(FieldKind.INTEGER, **options)


def SmallIntegerField(**options: Any) -> Field:
    return Field(FieldKind.SMALL_INTEGER, **options)


def BigIntegerField(**options: Any) -> Field:
    return Field(FieldKind.BIG_INTEGER, **options)


def FloatField(**options: Any) -> Field:
    return Field(FieldKind.FLOAT, **options)


def DecimalField(max_digits: int = 10, decimal_places: int = 2, **options: Any) -> Field:
    return Field(FieldKind.DECIMAL, max_digits=max_digits, decimal_places=decimal_places, **options)


def CharField(max_length: int = 255, **options: Any) -> Field:
    return Field(FieldKind.CHAR, max_length=max_length, **options)


def TextField(**options: Any) -> Field:
    return Field(FieldKind.TEXT, **options)


def EmailField(max_length: int = 254, **options: Any) -> Field:
    return Field(FieldKind.EMAIL, max_length=max_length, **options)


def SlugField(max_length: int = 50, **options: Any) -> Field:
    return Field(FieldKind.SLUG, max_length=max_length, **options)


def URLField(max_length: int = 200, **options: Any) -> Field:
    return Field(FieldKind.URL, max_length=max_length, **options)


def UUIDField(**options: Any) -> Field:
    return Field(FieldKind.UUID, **options)


def BooleanField(**options: Any) -> Field:
    return Field(FieldKind.BOOLEAN, **options)


def DateField(**options: Any) -> Field:
    return Field(FieldKind.DATE, **options)


def TimeField(**options: Any) -> Field:
    return Field(FieldKind.TIME, **options)


def DateTimeField(**options: Any) -> Field:
    return Field(FieldKind.DATETIME, **options)


def DurationField(**options: Any) -> Field:
    return Field(FieldKind.DURATION, **options)


def BinaryField(**options: Any) -> Field:
    return Field(FieldKind.BINARY, **options)


def JSONField(**options: Any) -> Field:
    return Field(FieldKind.JSON, **options)


def ForeignKey(to: Any, on_delete: str = "CASCADE", **options: Any) -> Field:
    return Field(FieldKind.FOREIGN_KEY, to=to, on_delete=on_delete, **options)


def OneToOneField(to: Any, on_delete: str = "CASCADE", **options: Any) -> Field:
    return Field(FieldKind.ONE_TO_ONE, to=to, on_delete=on_delete, **options)


def ManyToManyField(to: Any, through: Optional[str] = None, **options: Any) -> Field:
    return Field(FieldKind.MANY_TO_MANY, to=to, through=through, **options)
