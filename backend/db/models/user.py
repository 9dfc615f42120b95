"""User model for the workflow marketplace."""

from sqlalchemy import CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class User(BaseModel):
    """User model representing a marketplace customer.

    Attributes:
        id: Unique identifier (UUID string)
        email: User email address (unique)
        name: Display name
        credits: Spendable credit balance, never negative
        is_active: Whether user account is active
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )

    email: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(nullable=False, default="")
    credits: Mapped[int] = mapped_column(nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    conversations: Mapped[list["Conversation"]] = relationship(
        "Conversation",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
