"""
Completion Routes - metered completion endpoint
"""
from typing import Optional

from fastapi import APIRouter, Depends

from token_wallet.completion_service import CompletionService
from token_wallet.dependencies import get_completion_service
from token_wallet.models import CompletionRequest, CompletionResult, Session
from utils.auth import get_optional_session

completion_router = APIRouter(tags=["Completion"])


@completion_router.post("/completion", response_model=CompletionResult)
async def completion(
    request: CompletionRequest,
    session: Optional[Session] = Depends(get_optional_session),
    service: CompletionService = Depends(get_completion_service)
):
    """Run a completion (uses tokens; refunded if the provider fails)"""
    # The gate itself denies missing sessions, before any debit or upstream call
    return await service.execute(session, request.prompt)
