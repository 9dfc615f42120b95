"""AI workflow builder schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.config import get_settings
from core.constants import MessageRole


class ChatMessage(BaseModel):
    """One turn of a builder conversation."""

    role: MessageRole = Field(description="Author of the message (user, assistant, system)")
    content: str = Field(description="Message text")


class ChatRequest(BaseModel):
    """Request to generate a workflow from a prompt."""

    message: str = Field(description="Natural-language description of the workflow")
    conversation_id: Optional[str] = Field(
        default=None, min_length=1, description="Continue this conversation"
    )

    @field_validator("message")
    @classmethod
    def strip_and_bound(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message is required")
        max_length = get_settings().AI_PROMPT_MAX_LENGTH
        if len(v) > max_length:
            raise ValueError(f"Message is too long (max {max_length} characters)")
        return v


class GenerationResponse(BaseModel):
    """Result of a workflow generation."""

    conversation_id: Optional[str] = Field(default=None, description="Conversation the workflow belongs to")
    workflow: Optional[Dict[str, Any]] = Field(default=None, description="Generated workflow document")
    valid: bool = Field(description="Whether the workflow passed validation")
    message: str = Field(description="Outcome summary")
    validation_errors: Optional[List[str]] = Field(default=None, description="Rules the workflow violates")
    credits_used: Optional[int] = Field(default=None, description="Credits charged for this generation")
    credits_remaining: Optional[int] = Field(default=None, description="Balance after the charge")
    attempts: int = Field(description="Model attempts made")


class ConversationResponse(BaseModel):
    """Stored builder conversation."""

    id: str = Field(description="Conversation ID")
    messages: List[ChatMessage] = Field(description="Ordered message history")
    workflow: Optional[Dict[str, Any]] = Field(default=None, description="Last generated workflow")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")

    class Config:
        from_attributes = True


class ConversationListResponse(BaseModel):
    """All conversations of the current user."""

    conversations: List[ConversationResponse] = Field(description="Conversations, newest first")


class CreditBalanceResponse(BaseModel):
    """Current balance and the price of one generation."""

    credits: int = Field(description="Spendable credits")
    generation_cost: int = Field(description="Credits charged per successful generation")
