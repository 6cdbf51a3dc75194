"""Page arithmetic shared by the list endpoints."""

import math
from dataclasses import dataclass
from typing import Generic, TypeVar

from backend.config import settings

T = TypeVar("T")


@dataclass(frozen=True)
class PaginationMetadata:
    current_page: int
    page_size: int
    total_items: int
    total_pages: int


def clamp_page_size(page_size: int | None) -> int:
    """Fall back to the default size and cap at the configured maximum."""
    if page_size is None or page_size < 1:
        return settings.default_page_size
    return min(page_size, settings.max_page_size)


def paginate(page: int, page_size: int, total_items: int) -> PaginationMetadata:
    """Build metadata for a 1-indexed page.

    ``total_pages`` is ``ceil(total_items / page_size)`` and 0 when there are
    no items. Pages past the end are allowed; they simply hold no data.
    """
    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
    return PaginationMetadata(
        current_page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
    )


def offset_for(page: int, page_size: int) -> int:
    return (max(page, 1) - 1) * page_size


@dataclass
class Page(Generic[T]):
    """One page of results plus its metadata."""

    data: list[T]
    pagination: PaginationMetadata
