"""
Quarry Model Registry - class-level registry for all Model subclasses.

Tracks concrete models, resolves string relation targets, and attaches a
database handle to every registered model.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from ..db.engine import Database
    from .base import Model

logger = logging.getLogger("quarry.models")

__all__ = ["ModelRegistry"]


class ModelRegistry:
    """Registry of concrete model classes by class name."""

    _models: Dict[str, Type[Model]] = {}
    _db: Optional[Database] = None

    @classmethod
    def register(cls, model_cls: Type[Model]) -> None:
        """Register a model class, replacing an earlier one with the same name."""
        name = model_cls.__name__
        existing = cls._models.get(name)
        if existing is not None and existing is not model_cls:
            logger.debug(f"Model {name} re-registered, replacing {existing!r}")
        cls._models[name] = model_cls
        if cls._db is not None:
            model_cls._db = cls._db

    @classmethod
    def get(cls, name: str) -> Optional[Type[Model]]:
        """Get model class by name."""
        return cls._models.get(name)

    @classmethod
    def all_models(cls) -> List[Type[Model]]:
        """All registered models, in registration order."""
        return list(cls._models.values())

    @classmethod
    def bind(cls, db: Database) -> None:
        """Attach ``db`` to every registered model (and to later ones)."""
        cls._db = db
        for model_cls in cls._models.values():
            model_cls._db = db

    @classmethod
    def get_database(cls) -> Optional[Database]:
        return cls._db

    @classmethod
    def reset(cls) -> None:
        """Clear registry (for testing)."""
        for model_cls in cls._models.values():
            model_cls._db = None
        cls._models.clear()
        cls._db = None

    @classmethod
    def check_relations(cls) -> List[str]:
        """Return a list of relation targets that do not resolve."""
        issues: List[str] = []
        for name, model_cls in cls._models.items():
            for field in model_cls._meta.fields.values():
                if not field.is_relation:
                    continue
                target = field.to
                if isinstance(target, str) and target != "self" and target not in cls._models:
                    issues.append(f"{name}.{field.name}: target '{target}' not registered")
        return issues
