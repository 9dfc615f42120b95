"""Database models for the workflow marketplace.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.user import User
from db.models.conversation import Conversation

__all__ = [
    "User",
    "Conversation",
]
