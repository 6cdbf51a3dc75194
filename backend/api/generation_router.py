"""API routes for AI flashcard generation and generation history."""

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_flashcard_provider, unwrap_or_raise
from backend.api.schemas import (
    FlashcardProposalResponse,
    FlashcardResponse,
    GenerateFlashcardsRequest,
    GenerationDetailResponse,
    GenerationListItemResponse,
    GenerationResponse,
    GenerationsListResponse,
    GenerationStatisticsResponse,
    PaginationResponse,
)
from backend.auth import get_current_user_id
from backend.cards.generation import GenerationQuery, GenerationService
from backend.config import settings
from backend.database import get_session
from backend.llm_client import FlashcardProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generations", tags=["generations"])


@router.post("", response_model=GenerationResponse, status_code=status.HTTP_201_CREATED)
async def generate_flashcards(
    request: GenerateFlashcardsRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    provider: FlashcardProvider = Depends(get_flashcard_provider),
) -> GenerationResponse:
    """Ask the provider for proposals and record the generation."""
    service = GenerationService(db, provider)
    outcome = unwrap_or_raise(await service.generate(user_id, request.source_text, request.model))
    generation = outcome.generation
    return GenerationResponse(
        id=generation.id,
        user_id=generation.user_id,
        model=generation.model,
        generated_count=generation.generated_count,
        accepted_unedited_count=generation.accepted_unedited_count,
        accepted_edited_count=generation.accepted_edited_count,
        source_text_hash=generation.source_text_hash,
        source_text_length=generation.source_text_length,
        generation_duration=generation.generation_duration,
        created_at=generation.created_at,
        updated_at=generation.updated_at,
        flashcards=[
            FlashcardProposalResponse(front=p.front, back=p.back) for p in outcome.proposals
        ],
    )


@router.get("", response_model=GenerationsListResponse)
async def list_generations(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
    sort_by: Literal["createdAt"] = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> GenerationsListResponse:
    """Page through the caller's generations with overall acceptance statistics."""
    service = GenerationService(db)
    result = await service.list_generations(
        user_id,
        GenerationQuery(page=page, page_size=page_size, sort=sort_by, order=sort_order),
    )
    listing = unwrap_or_raise(result)
    stats = listing.statistics
    return GenerationsListResponse(
        data=[GenerationListItemResponse.model_validate(g) for g in listing.data],
        pagination=PaginationResponse.model_validate(listing.pagination),
        statistics=GenerationStatisticsResponse(
            total_generations=stats.total_generations,
            total_generated=stats.total_generated,
            total_accepted=stats.total_accepted,
            overall_acceptance_rate=stats.overall_acceptance_rate,
        ),
    )


@router.get("/{generation_id}", response_model=GenerationDetailResponse)
async def get_generation(
    generation_id: int,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> GenerationDetailResponse:
    service = GenerationService(db)
    detail = unwrap_or_raise(await service.get_generation(user_id, generation_id))
    generation = detail.generation
    return GenerationDetailResponse(
        id=generation.id,
        user_id=generation.user_id,
        model=generation.model,
        generated_count=generation.generated_count,
        accepted_unedited_count=generation.accepted_unedited_count,
        accepted_edited_count=generation.accepted_edited_count,
        source_text_hash=generation.source_text_hash,
        source_text_length=generation.source_text_length,
        generation_duration=generation.generation_duration,
        created_at=generation.created_at,
        updated_at=generation.updated_at,
        flashcards=[FlashcardResponse.model_validate(f) for f in detail.flashcards],
    )
