"""Base repository class with common CRUD operations.

Repositories never commit or roll back: the calling service owns the
transaction and the session context manager ends it.
"""

import logging
from typing import Any, Dict, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_core.database.models import Base
from scheduling_core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

# Type variable for the model type
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """
        Get a record by ID.

        Args:
            id: Record ID

        Returns:
            Model instance or None if not found
        """
        try:
            result = await self.session.execute(select(self.model).where(self.model.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model.__name__} by ID {id}: {e}")
            raise DatabaseError(f"Failed to retrieve {self.model.__name__}") from e

    async def create(self, **kwargs) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Model field values

        Returns:
            Created model instance
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            await self.session.refresh(instance)
            logger.debug(f"Created {self.model.__name__} with ID: {instance.id}")
            return instance
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to create {self.model.__name__}") from e

    async def apply(self, instance: ModelType, **kwargs) -> ModelType:
        """
        Set fields on a loaded instance and flush.

        Args:
            instance: Model instance attached to this session
            **kwargs: Fields to update

        Returns:
            The refreshed instance
        """
        try:
            for field, value in kwargs.items():
                if hasattr(instance, field):
                    setattr(instance, field, value)
            await self.session.flush()
            await self.session.refresh(instance)
            logger.debug(f"Updated {self.model.__name__} with ID: {instance.id}")
            return instance
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self.model.__name__} with ID {instance.id}: {e}")
            raise DatabaseError(f"Failed to update {self.model.__name__}") from e

    async def remove(self, instance: ModelType) -> None:
        """
        Delete a loaded instance.

        Args:
            instance: Model instance attached to this session
        """
        try:
            await self.session.delete(instance)
            await self.session.flush()
            logger.debug(f"Deleted {self.model.__name__} with ID: {instance.id}")
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {self.model.__name__} with ID {instance.id}: {e}")
            raise DatabaseError(f"Failed to delete {self.model.__name__}") from e

    async def upsert(
        self,
        conflict_columns: Sequence[str],
        values: Dict[str, Any],
        update_columns: Sequence[str],
    ) -> None:
        """
        Insert a row or update it in place when its natural key exists.

        Runs as one ``INSERT ... ON CONFLICT DO UPDATE`` statement, so
        concurrent first writes of the same key end with a single row.

        Args:
            conflict_columns: Columns of the unique natural key
            values: Column values of the row
            update_columns: Columns overwritten when the key already exists
        """
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql_insert
        elif dialect == "sqlite":
            insert = sqlite_insert
        else:
            raise DatabaseError(f"Upsert is not supported on {dialect}")

        stmt = insert(self.model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={column: stmt.excluded[column] for column in update_columns},
        )
        try:
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Error upserting {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to save {self.model.__name__}") from e
