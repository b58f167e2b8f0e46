"""Base repository with shared get-by-ID patterns.

Subclasses specify model_class, id_column and resource_name; the base
provides get_by_id (raising NotFoundError) and get_by_id_optional.

Override _base_query() to apply default filters.
"""

import uuid
from typing import TypeVar, Generic, Optional, Type
from sqlalchemy.orm import Session, Query

from ..database import Base
from ..exceptions import NotFoundError

ModelT = TypeVar("ModelT", bound=Base)

# 12 hex chars = 48 bits of randomness per id, plenty for per-tenant rows.
ID_HEX_LENGTH = 12


def new_id(prefix: str) -> str:
    """Random, prefixed primary key such as ``fld-3f2a9c0d1b7e``."""
    return f"{prefix}-{uuid.uuid4().hex[:ID_HEX_LENGTH]}"


class BaseRepository(Generic[ModelT]):
    """Shared repository logic for SQLAlchemy models.

    Class variables to set in subclasses:
        model_class:   The SQLAlchemy model (e.g., Folder)
        id_column:     Name of the primary-key column (default "id")
        resource_name: Used in NotFoundError messages (e.g., "folder")
    """

    model_class: Type[ModelT]
    id_column: str = "id"
    resource_name: str = "resource"

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self) -> Query:
        return self.db.query(self.model_class)

    def get_by_id(self, entity_id: str) -> ModelT:
        """Get entity by primary key. Raises NotFoundError if missing."""
        entity = self.get_by_id_optional(entity_id)
        if entity is None:
            raise NotFoundError(self.resource_name, entity_id)
        return entity

    def get_by_id_optional(self, entity_id: str) -> Optional[ModelT]:
        """Get entity by primary key, or None if not found."""
        if not entity_id:
            return None
        col = getattr(self.model_class, self.id_column)
        return self._base_query().filter(col == entity_id).first()

    def add(self, entity: ModelT) -> ModelT:
        self.db.add(entity)
        self.db.flush()
        return entity
