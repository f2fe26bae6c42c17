"""
Quarry Model System - metaclass-driven async models.

Usage:
    from quarry.models import Model
    from quarry.models.fields import (
        CharField, IntegerField, DateTimeField, ForeignKey, ManyToManyField,
    )

    class User(Model):
        table = "users"

        name = CharField(max_length=150)
        email = EmailField(unique=True)
        active = BooleanField(default=True)
        created_at = DateTimeField(auto_now_add=True)

        class Meta:
            ordering = ["-created_at"]

Public API:
    - Model: Base class for all models
    - Fields: Field, FieldKind and one constructor per kind
    - QuerySet / Manager: query building and execution
    - ModelRegistry: class-level model registry
    - Relations: RelationRegistry, register_relations
"""

from .base import Model
from .metaclass import ModelMeta
from .options import Options
from .registry import ModelRegistry
from .manager import Manager
from .query import QuerySet, LOOKUPS, AGGREGATE_FUNCTIONS
from .relations import (
    ManyRelated,
    RelationRegistry,
    default_registry,
    register_relations,
)
from .sql import check_identifier, quote_identifier

from .fields import (
    Field,
    FieldKind,
    UNSET,
    ON_DELETE_POLICIES,
    now,
    new_uuid,
    AutoField,
    BigAutoField,
    IntegerField,
    SmallIntegerField,
    BigIntegerField,
    FloatField,
    DecimalField,
    CharField,
    TextField,
    EmailField,
    SlugField,
    URLField,
    UUIDField,
    BooleanField,
    DateField,
    TimeField,
    DateTimeField,
    DurationField,
    BinaryField,
    JSONField,
    ForeignKey,
    OneToOneField,
    ManyToManyField,
)

__all__ = [
    # Core
    "Model",
    "ModelMeta",
    "Options",
    "ModelRegistry",
    "Manager",
    "QuerySet",
    "LOOKUPS",
    "AGGREGATE_FUNCTIONS",
    # Relations
    "ManyRelated",
    "RelationRegistry",
    "default_registry",
    "register_relations",
    # SQL helpers
    "check_identifier",
    "quote_identifier",
    # Fields
    "Field",
    "FieldKind",
    "UNSET",
    "ON_DELETE_POLICIES",
    "now",
    "new_uuid",
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
