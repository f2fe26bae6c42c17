"""
Quarry - async ORM for SQLite and PostgreSQL

Complete integration of:
- Database: explicit async connection handle (aiosqlite / asyncpg)
- Models: declarative fields, registry, managers
- QuerySet: chainable, immutable query builder with async terminals
- Relations: explicit accessor registry for FK, reverse FK and M2M
- Migrations: snapshot files and forward-only live-schema sync
- Faults: Structured error handling with fault domains
- Config: layered configuration (files, .env, environment)
"""

__version__ = "0.1.0"

# ============================================================================
# Database & Config
# ============================================================================

from .config import ConfigLoader, DatabaseConfig
from .db import Database, ExecuteResult

# ============================================================================
# Models
# ============================================================================

from .models import (
    Model,
    ModelRegistry,
    Manager,
    QuerySet,
    ManyRelated,
    RelationRegistry,
    register_relations,
    Field,
    FieldKind,
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

# ============================================================================
# Migrations
# ============================================================================

from .migrations import MigrationReport, makemigrations, migrate

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    ConfigInvalidFault,
    FieldValidationFault,
    ObjectDoesNotExistFault,
    MultipleObjectsReturnedFault,
    UnsafeOperationFault,
    UnsafeIdentifierFault,
    ModelNotFoundFault,
    ModelRegistrationFault,
    RelationConflictFault,
    MigrationFault,
    QueryFault,
    DatabaseConnectionFault,
    SchemaFault,
)

__all__ = [
    "__version__",
    # Database & config
    "ConfigLoader",
    "DatabaseConfig",
    "Database",
    "ExecuteResult",
    # Models
    "Model",
    "ModelRegistry",
    "Manager",
    "QuerySet",
    "ManyRelated",
    "RelationRegistry",
    "register_relations",
    "Field",
    "FieldKind",
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
    # Migrations
    "MigrationReport",
    "makemigrations",
    "migrate",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigInvalidFault",
    "FieldValidationFault",
    "ObjectDoesNotExistFault",
    "MultipleObjectsReturnedFault",
    "UnsafeOperationFault",
    "UnsafeIdentifierFault",
    "ModelNotFoundFault",
    "ModelRegistrationFault",
    "RelationConflictFault",
    "MigrationFault",
    "QueryFault",
    "DatabaseConnectionFault",
    "SchemaFault",
]
