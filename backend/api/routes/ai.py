"""
AI Workflow Builder API Routes.

Chat-driven workflow generation, conversation history, credit balance and
provider status. Generation is charged in credits, and only when the model
produced a workflow that passed validation.
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.ai import (
    ChatRequest,
    ConversationListResponse,
    ConversationResponse,
    CreditBalanceResponse,
    GenerationResponse,
)
from api.schemas.common import ErrorResponse
from app.config import get_settings
from app.dependencies import (
    get_current_active_user,
    get_db,
    get_generation_service,
    get_llm_provider,
)
from core.security import TokenPayload
from services.conversation_service import ConversationService
from services.credit_ledger import CreditLedger
from services.generation_service import GenerationResult, GenerationService

logger = logging.getLogger(__name__)

router = APIRouter()

GENERATION_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Insufficient credits or workflow still invalid"},
    404: {"model": ErrorResponse, "description": "Conversation not found"},
    503: {"model": ErrorResponse, "description": "AI service unavailable"},
}


def _generation_response(result: GenerationResult):
    """Invalid-after-retries is reported as 400 but keeps the full result payload."""
    body = GenerationResponse(**result.model_dump())
    if not result.valid:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())
    return body


# ─── Generation ──────────────────────────────────────────────────────

@router.post("/chat", response_model=GenerationResponse, responses=GENERATION_RESPONSES)
async def chat(
    request: ChatRequest,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
):
    """Send a message and get a generated workflow."""
    await CreditLedger(db).ensure_balance(current_user.sub, get_settings().AI_GENERATION_CREDIT_COST)

    result = await service.generate(
        user_id=current_user.sub,
        prompt=request.message,
        conversation_id=request.conversation_id,
    )
    return _generation_response(result)


@router.post(
    "/conversations/{conversation_id}/regenerate",
    response_model=GenerationResponse,
    responses=GENERATION_RESPONSES,
)
async def regenerate(
    conversation_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
):
    """Regenerate the workflow from the conversation's last user message."""
    await CreditLedger(db).ensure_balance(current_user.sub, get_settings().AI_GENERATION_CREDIT_COST)

    result = await service.regenerate(current_user.sub, conversation_id)
    return _generation_response(result)


# ─── Conversations ───────────────────────────────────────────────────

@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ConversationListResponse:
    """Get the current user's conversation history."""
    conversations = await ConversationService(db).list_by_user(current_user.sub)
    return ConversationListResponse(
        conversations=[ConversationResponse.model_validate(c) for c in conversations]
    )


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_conversation(
    conversation_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ConversationResponse:
    """Get one conversation with its messages and last workflow."""
    conversation = await ConversationService(db).load(conversation_id, current_user.sub)
    return ConversationResponse.model_validate(conversation)


@router.delete(
    "/conversations/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_conversation(
    conversation_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a conversation and all of its messages."""
    await ConversationService(db).delete(conversation_id, current_user.sub)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── Credits & status ────────────────────────────────────────────────

@router.get("/credits", response_model=CreditBalanceResponse)
async def get_credits(
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> CreditBalanceResponse:
    """Current credit balance and the cost of one generation."""
    balance = await CreditLedger(db).get_balance(current_user.sub)
    return CreditBalanceResponse(
        credits=balance,
        generation_cost=get_settings().AI_GENERATION_CREDIT_COST,
    )


@router.get("/status")
async def get_ai_status(
    current_user: TokenPayload = Depends(get_current_active_user),
    provider=Depends(get_llm_provider),
):
    """AI provider configuration state and token usage."""
    return await provider.get_status()
