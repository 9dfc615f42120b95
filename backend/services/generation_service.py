"""AI workflow generation — conversation-driven retry loop with credit charging.

One call to ``generate`` runs at most ``max_retries + 1`` model attempts:

    attempting -> succeeded
               -> retrying -> attempting (next attempt)
               -> exhausted_invalid      (model kept producing invalid workflows)
               -> failed                 (provider kept failing, or auth/config error)

The working message list is local to the call. Each attempt sees the full
list, and an invalid answer is appended together with a user message listing
the validation errors so the next attempt can correct itself. Nothing is
written until an attempt validates; then the conversation is written and the
generation cost is debited in the caller's transaction.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol

import structlog
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from core.constants import GenerationState, MessageRole, WORKFLOW_SYSTEM_PROMPT
from core.exceptions import (
    EmptyConversationError,
    GenerationFailedError,
    NoUserMessageError,
    ValidationError,
)
from core.schema_validation import validate_workflow
from db.models.conversation import Conversation
from integrations.claude_client import (
    ProviderAuthError,
    ProviderError,
    ProviderTimeoutError,
    extract_json_object,
)
from services.conversation_service import ConversationService
from services.credit_ledger import CreditLedger

logger = structlog.get_logger(__name__)


class CompletionProvider(Protocol):
    """Anything that can turn a conversation into one model completion."""

    async def complete(self, system: str, messages: List[Dict[str, str]]) -> Optional[str]:
        ...


class GenerationResult(BaseModel):
    """Outcome of a generation call that did not raise."""
    conversation_id: Optional[str] = None
    workflow: Optional[Dict[str, Any]] = None
    valid: bool
    message: str
    validation_errors: Optional[List[str]] = None
    credits_used: Optional[int] = None
    credits_remaining: Optional[int] = None
    attempts: int


def _message(role: MessageRole, content: str) -> Dict[str, str]:
    return {"role": role.value, "content": content}


def validation_feedback(errors: List[str]) -> str:
    """Corrective user turn sent back to the model after an invalid workflow."""
    return (
        f"The workflow has validation errors: {', '.join(errors)}. "
        "Please fix these issues and generate a valid workflow."
    )


class GenerationService:
    """Generate and regenerate workflows for a user's AI conversation."""

    def __init__(
        self,
        db: AsyncSession,
        provider: CompletionProvider,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.db = db
        self.provider = provider
        self.conversations = ConversationService(db)
        self.ledger = CreditLedger(db)
        self.credit_cost = settings.AI_GENERATION_CREDIT_COST
        self.max_retries = settings.AI_GENERATION_MAX_RETRIES
        self.timeout = settings.AI_GENERATION_TIMEOUT

    async def generate(
        self,
        user_id: str,
        prompt: str,
        conversation_id: Optional[str] = None,
    ) -> GenerationResult:
        """Generate a workflow from ``prompt``, continuing a conversation if given.

        The session must not hold uncommitted writes: its read transaction is
        committed before the first model call so no pooled connection sits
        idle in a transaction while the provider is working.

        Raises:
            ValidationError: Blank prompt
            ConversationNotFoundError: ``conversation_id`` is unknown or not the caller's
            GenerationFailedError: Provider failed on every attempt, or rejected our credentials
            InsufficientCreditsError: Balance dropped below the cost before the debit
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("Message is required")

        conversation: Optional[Conversation] = None
        history: List[Dict[str, str]] = []
        if conversation_id:
            conversation = await self.conversations.load(conversation_id, user_id)
            history = list(conversation.messages or [])

        messages = history + [_message(MessageRole.USER, prompt)]
        await self.db.commit()
        log = logger.bind(user_id=user_id, conversation_id=conversation_id)

        attempt = 0
        last_error: Optional[Exception] = None
        while attempt <= self.max_retries:
            attempt += 1
            log.info(
                "Workflow generation attempt",
                attempt=attempt,
                state=GenerationState.ATTEMPTING.value,
                history_length=len(messages),
            )

            try:
                raw = await self._complete(messages)
                workflow = extract_json_object(raw)
            except ProviderAuthError as e:
                log.error("AI provider rejected configuration", attempt=attempt,
                          state=GenerationState.FAILED.value, error=str(e))
                raise GenerationFailedError(str(e)) from e
            except (ProviderError, ValueError) as e:
                last_error = e
                log.warning(
                    "Transient generation failure",
                    attempt=attempt,
                    state=(GenerationState.RETRYING if attempt <= self.max_retries
                           else GenerationState.FAILED).value,
                    error=str(e),
                )
                continue

            validation = validate_workflow(workflow)
            if validation.valid:
                messages = messages + [_message(MessageRole.ASSISTANT, raw)]
                result = await self._commit(user_id, conversation, messages, workflow, attempt)
                log.info(
                    "Workflow generated",
                    attempt=attempt,
                    state=GenerationState.SUCCEEDED.value,
                    conversation_id=result.conversation_id,
                    credits_remaining=result.credits_remaining,
                )
                return result

            if attempt > self.max_retries:
                log.warning(
                    "Workflow still invalid after retries",
                    attempt=attempt,
                    state=GenerationState.EXHAUSTED_INVALID.value,
                    errors=validation.errors,
                )
                return GenerationResult(
                    conversation_id=conversation.id if conversation else None,
                    workflow=workflow,
                    valid=False,
                    message="Workflow validation failed after retries",
                    validation_errors=validation.errors,
                    attempts=attempt,
                )

            log.info(
                "Generated workflow invalid, retrying with feedback",
                attempt=attempt,
                state=GenerationState.RETRYING.value,
                errors=validation.errors,
            )
            messages = messages + [
                _message(MessageRole.ASSISTANT, raw),
                _message(MessageRole.USER, validation_feedback(validation.errors)),
            ]

        raise GenerationFailedError(
            f"Failed to generate workflow after {attempt} attempts: {last_error}"
        )

    async def regenerate(self, user_id: str, conversation_id: str) -> GenerationResult:
        """Re-run generation with the conversation's most recent user prompt.

        Raises:
            ConversationNotFoundError: Unknown or foreign conversation
            EmptyConversationError: Conversation has no messages
            NoUserMessageError: Conversation has no user message
        """
        conversation = await self.conversations.load(conversation_id, user_id)
        messages = conversation.messages or []
        if not messages:
            raise EmptyConversationError()

        last_user = next(
            (m for m in reversed(messages) if m.get("role") == MessageRole.USER.value),
            None,
        )
        if last_user is None:
            raise NoUserMessageError()

        return await self.generate(user_id, last_user.get("content", ""), conversation_id)

    async def _complete(self, messages: List[Dict[str, str]]) -> str:
        """One bounded model call; empty output counts as a failure."""
        try:
            text = await asyncio.wait_for(
                self.provider.complete(WORKFLOW_SYSTEM_PROMPT, messages),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(f"No response within {self.timeout}s") from e

        if not text or not text.strip():
            raise ProviderError("No response from AI")
        return text

    async def _commit(
        self,
        user_id: str,
        conversation: Optional[Conversation],
        messages: List[Dict[str, str]],
        workflow: Dict[str, Any],
        attempts: int,
    ) -> GenerationResult:
        # Debit strictly after the conversation write; a failed debit aborts both
        conversation = await self.conversations.create_or_replace(
            user_id, messages, workflow, conversation
        )
        remaining = await self.ledger.debit(user_id, self.credit_cost)

        return GenerationResult(
            conversation_id=conversation.id,
            workflow=workflow,
            valid=True,
            message="Workflow generated successfully",
            credits_used=self.credit_cost,
            credits_remaining=remaining,
            attempts=attempts,
        )
