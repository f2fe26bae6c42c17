"""
Quarry Model Metaclass - field collection, auto-PK, options, registration.

Separates the metaclass logic from the Model base class.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Tuple

from ..faults.domains import (
    ModelRegistrationFault,
    MultipleObjectsReturnedFault,
    ObjectDoesNotExistFault,
)
from .fields import AutoField, Field
from .manager import Manager
from .options import Options
from .sql import check_identifier

__all__ = ["ModelMeta"]


class ModelMeta(type):
    """
    Metaclass for Quarry models.

    Handles:
    - Field collection and ordering (inherited fields are copied)
    - Auto-PK injection (``id = AutoField()``)
    - Options built from ``table = "..."`` and the inner ``Meta``
    - Per-model DoesNotExist / MultipleObjectsReturned
    - Default ``objects`` manager
    - Registration in ModelRegistry
    """

    def __new__(
        mcs,
        name: str,
        bases: Tuple[type, ...],
        namespace: Dict[str, Any],
        **kwargs,
    ) -> ModelMeta:
        # Don't process the base Model class itself
        parents = [b for b in bases if isinstance(b, ModelMeta)]
        if not parents:
            return super().__new__(mcs, name, bases, namespace)

        meta_class = namespace.pop("Meta", None)
        table_attr = namespace.pop("table", None)

        abstract = bool(getattr(meta_class, "abstract", False))
        table_name = (
            table_attr
            or getattr(meta_class, "table_name", None)
            or getattr(meta_class, "table", None)
            or name.lower()
        )
        check_identifier(table_name)
        ordering = list(getattr(meta_class, "ordering", []) or [])

        # Inherited fields first, copied so each model owns its descriptors
        fields: Dict[str, Field] = {}
        for parent in reversed(parents):
            parent_meta = getattr(parent, "_meta", None)
            if parent_meta is None:
                continue
            for fname, field in parent_meta.fields.items():
                fields[fname] = copy.copy(field)

        declared = sorted(
            ((key, value) for key, value in namespace.items() if isinstance(value, Field)),
            key=lambda item: item[1]._order,
        )
        for key, value in declared:
            fields[key] = value

        pk_fields = [fname for fname, f in fields.items() if f.primary_key]
        if len(pk_fields) > 1:
            raise ModelRegistrationFault(
                name, f"Multiple primary keys declared: {', '.join(pk_fields)}"
            )
        if not pk_fields and not abstract:
            if "id" in fields:
                raise ModelRegistrationFault(
                    name, "Field 'id' is not a primary key but no primary key was declared"
                )
            pk_field = AutoField()
            fields = {"id": pk_field, **fields}

        # Inherited copies and the injected pk become class attributes too
        for fname, field in fields.items():
            namespace[fname] = field

        cls = super().__new__(mcs, name, bases, namespace)

        pk = None
        for fname, field in fields.items():
            field.name = fname
            field.model = cls
            if field.primary_key:
                pk = field

        seen_columns: Dict[str, str] = {}
        for fname, field in fields.items():
            column = field.column_name
            if column is None:
                continue
            if column in seen_columns:
                raise ModelRegistrationFault(
                    name,
                    f"Fields '{seen_columns[column]}' and '{fname}' share column '{column}'",
                )
            seen_columns[column] = fname

        cls._meta = Options(
            model=cls,
            table_name=table_name,
            fields=fields,
            pk=pk,
            ordering=ordering,
            abstract=abstract,
        )
        cls._db = None

        cls.DoesNotExist = type(
            "DoesNotExist",
            (ObjectDoesNotExistFault,),
            {"__module__": cls.__module__, "__qualname__": f"{name}.DoesNotExist"},
        )
        cls.MultipleObjectsReturned = type(
            "MultipleObjectsReturned",
            (MultipleObjectsReturnedFault,),
            {"__module__": cls.__module__, "__qualname__": f"{name}.MultipleObjectsReturned"},
        )

        if not abstract:
            if not isinstance(namespace.get("objects"), Manager):
                cls.objects = Manager()
            from .registry import ModelRegistry
            ModelRegistry.register(cls)

        return cls
