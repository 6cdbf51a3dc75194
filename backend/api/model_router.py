"""API route listing the selectable generation models."""

from fastapi import APIRouter

from backend.api.schemas import ModelOptionResponse
from backend.llm_client import AVAILABLE_MODELS

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=list[ModelOptionResponse])
async def list_models() -> list[ModelOptionResponse]:
    return [ModelOptionResponse.model_validate(option) for option in AVAILABLE_MODELS]
