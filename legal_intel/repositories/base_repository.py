from typing import Generic, TypeVar, Type, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from legal_intel.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common tenant-scoped CRUD operations.

    When constructed with a ``tenant_id`` every read is filtered to that tenant
    and every insert is stamped with it. Writes only flush; the surrounding
    UnitOfWork owns commit and rollback.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType], tenant_id: Optional[UUID] = None):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
            tenant_id: Tenant every query is scoped to
        """
        self.session = session
        self.model = model
        self.tenant_id = tenant_id
        self.logger = LOGGER

    def _scoped(self, query):
        if self.tenant_id is not None and hasattr(self.model, "tenant_id"):
            query = query.where(self.model.tenant_id == self.tenant_id)
        return query

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """Get a record by its ID within the repository's tenant.

        Args:
            id: The UUID of the record

        Returns:
            The record if found, None otherwise
        """
        try:
            query = self._scoped(select(self.model).where(self.model.id == id))
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} by ID {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def create(self, **kwargs) -> ModelType:
        """Create a new record.

        Args:
            **kwargs: Fields and values for the new record

        Returns:
            The created record
        """
        try:
            if self.tenant_id is not None and hasattr(self.model, "tenant_id"):
                kwargs.setdefault("tenant_id", self.tenant_id)
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def update(self, id: UUID, **kwargs) -> Optional[ModelType]:
        """Update an existing record.

        Args:
            id: The UUID of the record to update
            **kwargs: Fields and values to update

        Returns:
            The updated record if found, None otherwise
        """
        try:
            instance = await self.get_by_id(id)
            if not instance:
                return None

            for key, value in kwargs.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)

            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error updating {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise
