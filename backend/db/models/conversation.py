"""AI conversation model."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Conversation(BaseModel):
    """A user's AI workflow-builder conversation.

    Attributes:
        id: Unique identifier (UUID string)
        user_id: Owning user
        messages: Ordered list of {"role", "content"} dicts, replayed to the model
        workflow: Last validated workflow document (None until first success)
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "conversations"

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    messages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    workflow: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    user: Mapped["User"] = relationship(
        "User", back_populates="conversations", lazy="noload"
    )
