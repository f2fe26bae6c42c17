"""
Quarry faults - typed fault signals raised by the ORM.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain classification
- Severity: Severity levels

Domain faults live in ``quarry.faults.domains`` and are re-exported here.
"""

from .core import Fault, FaultDomain, Severity

from .domains import (
    ConfigFault,
    ConfigInvalidFault,
    ModelFault,
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
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",
    # Config
    "ConfigFault",
    "ConfigInvalidFault",
    # Model
    "ModelFault",
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
