"""
Quarry Model Options - immutable per-model metadata.

Built once by the metaclass from the class body and its inner ``Meta``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from .base import Model
    from .fields import Field


__all__ = ["Options"]


class Options:
    """
    Parsed model options.

    Attributes:
        table_name: Database table name
        fields: Ordered mapping attribute name -> Field (read-only)
        pk: Primary key field
        ordering: Default query ordering
        abstract: Whether model is abstract (no table, not registered)
        model: Owning model class
    """

    __slots__ = (
        "table_name",
        "fields",
        "pk",
        "ordering",
        "abstract",
        "model",
        "_frozen",
    )

    def __init__(
        self,
        model: Type[Model],
        table_name: str,
        fields: Dict[str, Field],
        pk: Optional[Field],
        ordering: Optional[List[str]] = None,
        abstract: bool = False,
    ):
        self.table_name = table_name
        self.fields: Mapping[str, Field] = MappingProxyType(dict(fields))
        self.pk = pk
        self.ordering: Tuple[str, ...] = tuple(ordering or ())
        self.abstract = abstract
        self.model = model
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"Options for '{self.table_name}' are read-only")
        object.__setattr__(self, name, value)

    @property
    def concrete_fields(self) -> List[Field]:
        """Fields backed by a column on this table."""
        return [f for f in self.fields.values() if not f.is_many_to_many]

    @property
    def many_to_many(self) -> List[Field]:
        return [f for f in self.fields.values() if f.is_many_to_many]

    @property
    def column_names(self) -> List[str]:
        return [f.column_name for f in self.concrete_fields]

    def get_field(self, name: str) -> Optional[Field]:
        """Look up a field by attribute name or column name."""
        field = self.fields.get(name)
        if field is not None:
            return field
        for candidate in self.concrete_fields:
            if candidate.column_name == name:
                return candidate
        return None

    def __repr__(self) -> str:
        return f"<Options: {self.table_name}>"
