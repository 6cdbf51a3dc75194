"""API routes for the caller's flashcard collection."""

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import unwrap_or_raise
from backend.api.schemas import (
    CreateFlashcardRequest,
    CreateFlashcardsBatchRequest,
    CreateFlashcardsBatchResponse,
    FlashcardResponse,
    FlashcardsListResponse,
    PaginationResponse,
    UpdateFlashcardRequest,
)
from backend.auth import get_current_user_id
from backend.cards.flashcards import BatchItem, FlashcardQuery, FlashcardService
from backend.config import settings
from backend.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/flashcards", tags=["flashcards"])


@router.get("", response_model=FlashcardsListResponse)
async def list_flashcards(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
    source: Literal["manual", "ai-full", "ai-edited"] | None = Query(None),
    search: str | None = Query(None, max_length=200),
    sort_by: Literal["createdAt", "updatedAt", "front"] = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> FlashcardsListResponse:
    """Page through flashcards, optionally filtered by source and a search term."""
    query = FlashcardQuery(
        page=page,
        page_size=page_size,
        source=source,
        search=search,
        sort=sort_by,
        order=sort_order,
    )
    listing = unwrap_or_raise(await FlashcardService(db).list_flashcards(user_id, query))
    return FlashcardsListResponse(
        data=[FlashcardResponse.model_validate(card) for card in listing.data],
        pagination=PaginationResponse.model_validate(listing.pagination),
    )


@router.post("", response_model=FlashcardResponse, status_code=status.HTTP_201_CREATED)
async def create_flashcard(
    request: CreateFlashcardRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> FlashcardResponse:
    card = unwrap_or_raise(await FlashcardService(db).create(user_id, request.front, request.back))
    return FlashcardResponse.model_validate(card)


@router.post(
    "/batch", response_model=CreateFlashcardsBatchResponse, status_code=status.HTTP_201_CREATED
)
async def accept_flashcards(
    request: CreateFlashcardsBatchRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> CreateFlashcardsBatchResponse:
    """Save accepted proposals from a generation in one transaction."""
    items = [BatchItem(front=i.front, back=i.back, source=i.source) for i in request.flashcards]
    outcome = unwrap_or_raise(
        await FlashcardService(db).accept_batch(user_id, request.generation_id, items)
    )
    return CreateFlashcardsBatchResponse(
        created=outcome.created,
        flashcards=[FlashcardResponse.model_validate(card) for card in outcome.flashcards],
    )


@router.get("/{flashcard_id}", response_model=FlashcardResponse)
async def get_flashcard(
    flashcard_id: int,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> FlashcardResponse:
    card = unwrap_or_raise(await FlashcardService(db).get(user_id, flashcard_id))
    return FlashcardResponse.model_validate(card)


@router.put("/{flashcard_id}", response_model=FlashcardResponse)
async def update_flashcard(
    flashcard_id: int,
    request: UpdateFlashcardRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> FlashcardResponse:
    card = unwrap_or_raise(
        await FlashcardService(db).update(user_id, flashcard_id, request.front, request.back)
    )
    return FlashcardResponse.model_validate(card)


@router.delete("/{flashcard_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_flashcard(
    flashcard_id: int,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> Response:
    unwrap_or_raise(await FlashcardService(db).delete(user_id, flashcard_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
