from fastapi import APIRouter, Depends, Query
from typing import Optional

from socialgraph.api.deps import get_current_account, get_suggestion_service
from socialgraph.schemas.account import Account
from socialgraph.schemas.suggestion import (
    GenerateSuggestionsRequest, GenerationResult, SuggestionActionResult, SuggestionContext,
    SuggestionSource, SuggestionsPage,
)
from socialgraph.services.suggestion import SuggestionService

router = APIRouter()


@router.get("", response_model=SuggestionsPage)
async def list_suggestions(
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    current_user: Account = Depends(get_current_account),
    service: SuggestionService = Depends(get_suggestion_service),
):
    """Active suggestions with fresh mutual-friend counts"""
    return await service.list_suggestions(current_user.email, cursor, limit)


@router.post("/generate", response_model=GenerationResult)
async def generate_suggestions(
    payload: GenerateSuggestionsRequest,
    current_user: Account = Depends(get_current_account),
    service: SuggestionService = Depends(get_suggestion_service),
):
    """Generate friends-of-friends suggestions for the caller"""
    context = SuggestionContext(
        user_email=current_user.email,
        max_suggestions=payload.max_suggestions,
        min_mutual_friends=payload.min_mutual_friends,
    )
    return await service.generate(context, sources=[SuggestionSource.MUTUAL_FRIENDS])


@router.post("/{suggestion_id}/dismiss", response_model=SuggestionActionResult)
async def dismiss_suggestion(
    suggestion_id: str,
    current_user: Account = Depends(get_current_account),
    service: SuggestionService = Depends(get_suggestion_service),
):
    return await service.dismiss(current_user.email, suggestion_id)
