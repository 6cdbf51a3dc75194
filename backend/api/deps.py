"""Shared router plumbing: provider injection and error-to-status mapping."""

from typing import TypeVar

from fastapi import HTTPException, status

from backend.cards.results import ErrorKind, Result
from backend.llm_client import FlashcardProvider, get_provider

T = TypeVar("T")

STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_USER: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EMPTY_BATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.OVER_ACCEPTED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def get_flashcard_provider() -> FlashcardProvider:
    """Dependency wrapper so tests can swap the provider via ``dependency_overrides``."""
    return get_provider()


def unwrap_or_raise(result: Result[T]) -> T:
    """Return the result's value or raise the matching ``HTTPException``.

    Kinds without an explicit mapping (provider, persistence, unexpected)
    become 500 with the service's user-facing message.
    """
    if result.error is not None:
        code = STATUS_FOR_KIND.get(result.error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        raise HTTPException(status_code=code, detail=result.error.message)
    return result.value  # type: ignore[return-value]
