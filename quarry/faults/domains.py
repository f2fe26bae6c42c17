"""
Quarry faults - domain-specific fault types.

Provides concrete fault classes for:
- CONFIG faults
- MODEL faults (fields, queries, relations, schema, migrations)
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# MODEL Faults (ORM / Database)
# ============================================================================

class ModelFault(Fault):
    """Base class for model and database faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        public: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=retryable,
            public=public,
            metadata=metadata,
        )


class FieldValidationFault(ModelFault):
    """A value violates a field constraint (null, choices, max_length, type)."""

    def __init__(self, field_name: str, constraint: str, reason: str, value: Any = None, **kwargs):
        self.field_name = field_name
        self.constraint = constraint
        self.value = value
        super().__init__(
            code="FIELD_VALIDATION_FAILED",
            message=f"Field '{field_name}': {reason}",
            severity=Severity.WARN,
            public=True,
            metadata={
                "field": field_name,
                "constraint": constraint,
                **kwargs.get("metadata", {}),
            },
        )


class ObjectDoesNotExistFault(ModelFault):
    """A lookup that requires a row found none."""

    def __init__(self, model_name: str, lookup: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code="OBJECT_NOT_FOUND",
            message=f"{model_name} matching {lookup or {}} does not exist",
            public=True,
            metadata={"model": model_name, "lookup": lookup or {}, **kwargs.get("metadata", {})},
        )


class MultipleObjectsReturnedFault(ModelFault):
    """get() matched more than one row."""

    def __init__(self, model_name: str, lookup: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code="MULTIPLE_OBJECTS_RETURNED",
            message=f"get() returned more than one {model_name} for {lookup or {}}",
            metadata={"model": model_name, "lookup": lookup or {}, **kwargs.get("metadata", {})},
        )


class UnsafeOperationFault(ModelFault):
    """An operation was refused because it would touch every row."""

    def __init__(self, model_name: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="UNSAFE_OPERATION",
            message=f"Refusing {operation} on '{model_name}': {reason}",
            metadata={"model": model_name, "operation": operation, **kwargs.get("metadata", {})},
        )


class UnsafeIdentifierFault(ModelFault):
    """An identifier failed the allow-list check."""

    def __init__(self, identifier: str, **kwargs):
        super().__init__(
            code="UNSAFE_IDENTIFIER",
            message=f"Identifier {identifier!r} may only contain letters, digits, underscore and dot",
            metadata={"identifier": identifier, **kwargs.get("metadata", {})},
        )


class ModelNotFoundFault(ModelFault):
    """Model not found in registry."""

    def __init__(self, model_name: str, **kwargs):
        super().__init__(
            code="MODEL_NOT_FOUND",
            message=f"Model '{model_name}' not found in ModelRegistry",
            metadata={"model": model_name, **kwargs.get("metadata", {})},
        )


class ModelRegistrationFault(ModelFault):
    """Model registration failed."""

    def __init__(self, model_name: str, reason: str, **kwargs):
        super().__init__(
            code="MODEL_REGISTRATION_FAILED",
            message=f"Failed to register model '{model_name}': {reason}",
            severity=Severity.FATAL,
            metadata={"model": model_name, "reason": reason, **kwargs.get("metadata", {})},
        )


class RelationConflictFault(ModelFault):
    """Two relations resolve to the same accessor name."""

    def __init__(self, conflicts: list[str], **kwargs):
        self.conflicts = conflicts
        super().__init__(
            code="RELATION_CONFLICT",
            message=f"Relation accessor conflicts: {'; '.join(conflicts)}",
            severity=Severity.FATAL,
            metadata={"conflicts": conflicts, **kwargs.get("metadata", {})},
        )


class MigrationFault(ModelFault):
    """Database migration failed."""

    def __init__(self, migration: str, reason: str, **kwargs):
        super().__init__(
            code="MIGRATION_FAILED",
            message=f"Migration '{migration}' failed: {reason}",
            metadata={"migration": migration, "reason": reason, **kwargs.get("metadata", {})},
        )


class QueryFault(ModelFault):
    """Query execution failed."""

    def __init__(self, model: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query on '{model}' ({operation}) failed: {reason}",
            retryable=True,
            metadata={"model": model, "operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


class DatabaseConnectionFault(ModelFault):
    """Database connection failed or is unavailable."""

    def __init__(self, url: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            retryable=True,
            metadata={"url": url, "reason": reason, **kwargs.get("metadata", {})},
        )


class SchemaFault(ModelFault):
    """Schema creation or validation failed."""

    def __init__(self, table: str, reason: str, **kwargs):
        super().__init__(
            code="SCHEMA_FAULT",
            message=f"Schema error for table '{table}': {reason}",
            severity=Severity.FATAL,
            metadata={"table": table, "reason": reason, **kwargs.get("metadata", {})},
        )
