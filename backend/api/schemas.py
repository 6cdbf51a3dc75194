"""Pydantic schemas for API request/response models.

Every JSON body uses camelCase names on the wire; Python code uses the
snake_case attribute names.
"""

import re
import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from backend.config import settings

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]+$")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


# --- Common ---


class PaginationResponse(CamelModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int


# --- Auth ---


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=100)
    confirm_password: str

    @field_validator("email")
    @classmethod
    def email_length(cls, value: str) -> str:
        if len(value) > 255:
            raise ValueError("Email must not exceed 255 characters")
        return value

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not PASSWORD_PATTERN.match(value):
            raise ValueError("Password must contain uppercase, lowercase, number, and special character")
        return value

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Password and confirmation password must match")
        return self


class LoginRequest(CamelModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class DeleteAccountRequest(CamelModel):
    password: str = Field(min_length=1)
    confirmation: Literal["DELETE"]


class AuthResponse(CamelModel):
    user_id: uuid.UUID
    email: str
    token: str
    expires_at: datetime


# --- Flashcards ---


class FlashcardResponse(CamelModel):
    id: int
    front: str
    back: str
    source: str
    created_at: datetime
    updated_at: datetime
    generation_id: int | None = None


class CreateFlashcardRequest(CamelModel):
    front: NonBlankStr = Field(max_length=settings.front_max_length)
    back: NonBlankStr = Field(max_length=settings.back_max_length)


class UpdateFlashcardRequest(CreateFlashcardRequest):
    pass


class BatchFlashcardItem(CamelModel):
    front: NonBlankStr = Field(max_length=settings.front_max_length)
    back: NonBlankStr = Field(max_length=settings.back_max_length)
    source: Literal["ai-full", "ai-edited"]


class CreateFlashcardsBatchRequest(CamelModel):
    generation_id: int = Field(gt=0)
    flashcards: list[BatchFlashcardItem] = Field(min_length=1, max_length=settings.max_batch_size)


class CreateFlashcardsBatchResponse(CamelModel):
    created: int
    flashcards: list[FlashcardResponse]


class FlashcardsListResponse(CamelModel):
    data: list[FlashcardResponse]
    pagination: PaginationResponse


# --- Generations ---


class GenerateFlashcardsRequest(CamelModel):
    source_text: str = Field(
        min_length=settings.source_text_min_length,
        max_length=settings.source_text_max_length,
    )
    model: NonBlankStr = Field(default=settings.default_model, max_length=settings.model_max_length)


class FlashcardProposalResponse(CamelModel):
    front: str
    back: str


class GenerationResponse(CamelModel):
    """A fresh generation with the proposals awaiting review."""

    id: int
    user_id: uuid.UUID
    model: str
    generated_count: int
    accepted_unedited_count: int | None = None
    accepted_edited_count: int | None = None
    source_text_hash: str
    source_text_length: int
    generation_duration: int
    created_at: datetime
    updated_at: datetime
    flashcards: list[FlashcardProposalResponse]


class GenerationListItemResponse(CamelModel):
    id: int
    model: str
    generated_count: int
    accepted_unedited_count: int | None = None
    accepted_edited_count: int | None = None
    source_text_length: int
    generation_duration: int
    created_at: datetime
    acceptance_rate: float


class GenerationStatisticsResponse(CamelModel):
    total_generations: int
    total_generated: int
    total_accepted: int
    overall_acceptance_rate: float


class GenerationsListResponse(CamelModel):
    data: list[GenerationListItemResponse]
    pagination: PaginationResponse
    statistics: GenerationStatisticsResponse


class GenerationDetailResponse(CamelModel):
    id: int
    user_id: uuid.UUID
    model: str
    generated_count: int
    accepted_unedited_count: int | None = None
    accepted_edited_count: int | None = None
    source_text_hash: str
    source_text_length: int
    generation_duration: int
    created_at: datetime
    updated_at: datetime
    flashcards: list[FlashcardResponse]


# --- Models ---


class ModelOptionResponse(CamelModel):
    value: str
    display_name: str
    description: str
    is_recommended: bool
