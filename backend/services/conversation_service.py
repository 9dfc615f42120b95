"""Conversation store — persistence of AI builder conversations."""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConversationNotFoundError
from db.models.conversation import Conversation
from services.base import BaseService

logger = logging.getLogger(__name__)


class ConversationService(BaseService[Conversation]):
    """Load, write, list and delete conversations scoped to their owner.

    No retry or validation logic lives here; a conversation that exists but
    belongs to another user is reported exactly like a missing one.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(Conversation, db)

    async def load(self, conversation_id: str, user_id: str) -> Conversation:
        """Get a conversation owned by ``user_id``.

        Raises:
            ConversationNotFoundError: If absent or owned by someone else
        """
        result = await self.db.execute(
            select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.user_id == user_id,
            )
        )
        conversation = result.scalar_one_or_none()
        if conversation is None:
            raise ConversationNotFoundError()
        return conversation

    async def create_or_replace(
        self,
        user_id: str,
        messages: list[dict[str, Any]],
        workflow: Optional[dict[str, Any]],
        conversation: Optional[Conversation] = None,
    ) -> Conversation:
        """Write the full message history and workflow of a conversation.

        Creates a new conversation when ``conversation`` is None, otherwise
        overwrites the stored messages and workflow (last write wins).
        """
        # Fresh list so the JSON column is always seen as changed
        data = {"messages": list(messages), "workflow": workflow}

        if conversation is None:
            conversation = await self.create({"user_id": user_id, **data})
            logger.info(f"Conversation {conversation.id} created for user {user_id}")
            return conversation

        return await self.update_instance(conversation, data)

    async def list_by_user(self, user_id: str) -> Sequence[Conversation]:
        """All conversations of a user, newest first."""
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.created_at.desc())
        )
        return result.scalars().all()

    async def delete(self, conversation_id: str, user_id: str) -> None:
        """Delete a conversation together with its messages.

        Raises:
            ConversationNotFoundError: If absent or owned by someone else
        """
        conversation = await self.load(conversation_id, user_id)
        await self.hard_delete_instance(conversation)
        logger.info(f"Conversation {conversation_id} deleted by user {user_id}")
