"""Custom exceptions for the workflow marketplace backend."""

from typing import Any, Dict


class MarketplaceException(Exception):
    """Base exception for the workflow marketplace backend."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Response payload for the exception handler."""
        return {"detail": self.message}


class NotFoundError(MarketplaceException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ConversationNotFoundError(NotFoundError):
    """Conversation is absent or owned by another user."""

    def __init__(self, message: str = "Conversation not found"):
        super().__init__(message)


class ValidationError(MarketplaceException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class InsufficientCreditsError(MarketplaceException):
    """The user's credit balance does not cover the requested amount."""

    def __init__(self, required: int, available: int):
        """Initialize InsufficientCreditsError with 400 status code.

        Args:
            required: Credits the operation costs
            available: Credits currently on the user's balance
        """
        self.required = required
        self.available = available
        super().__init__("Insufficient credits", 400)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "message": (
                f"This operation requires {self.required} credits, "
                f"you have {self.available}"
            ),
            "credits_required": self.required,
            "credits_available": self.available,
        }


class GenerationFailedError(MarketplaceException):
    """The language-model provider could not produce a usable response."""

    def __init__(self, message: str = "AI service temporarily unavailable"):
        """Initialize GenerationFailedError with 503 status code."""
        super().__init__(message, 503)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": "AI service temporarily unavailable", "error": self.message}


class EmptyConversationError(MarketplaceException):
    """Regeneration requested on a conversation without messages."""

    def __init__(self, message: str = "No messages in conversation"):
        super().__init__(message, 400)


class NoUserMessageError(MarketplaceException):
    """Regeneration requested on a conversation without a user message."""

    def __init__(self, message: str = "No user message found"):
        super().__init__(message, 400)
