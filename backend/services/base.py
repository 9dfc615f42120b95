"""Base CRUD service.

Service classes inherit from this for the plain create/update/delete
paths and add their own domain queries on top.
"""

from typing import Any, Generic, Type, TypeVar
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic CRUD service for any SQLAlchemy model.

    Usage:
        class ConversationService(BaseService[Conversation]):
            def __init__(self, db: AsyncSession):
                super().__init__(Conversation, db)

    Services only flush; committing is the caller's job (the request
    session dependency commits on success and rolls back on error). The
    one exception is GenerationService, which ends the read transaction
    before waiting on the model.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ─── Create ────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Create a new record.

        Args:
            data: Dict of field values

        Returns:
            Created model instance
        """
        if "id" not in data:
            data["id"] = str(uuid4())

        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Update ────────────────────────────────────────────

    async def update_instance(self, instance: ModelType, data: dict[str, Any]) -> ModelType:
        """Assign fields on an already loaded instance and flush."""
        for key, value in data.items():
            if hasattr(instance, key):
                setattr(instance, key, value)

        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Delete ────────────────────────────────────────────

    async def hard_delete_instance(self, instance: ModelType) -> None:
        """Permanently delete a loaded record."""
        await self.db.delete(instance)
        await self.db.flush()
