"""Flashcard CRUD, listing and batch acceptance of AI proposals."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.cards.pagination import Page, clamp_page_size, offset_for, paginate
from backend.cards.results import ErrorKind, Result
from backend.cards.scoped import get_owned, is_valid_user_id
from backend.config import Settings, settings, utcnow
from backend.models.flashcard import Flashcard, FlashcardSource
from backend.models.generation import Generation

logger = logging.getLogger(__name__)

INVALID_USER_MESSAGE = "Invalid user ID"
NOT_FOUND_MESSAGE = "Flashcard not found"
GENERATION_NOT_FOUND_MESSAGE = "Generation not found"

SORT_COLUMNS = {
    "createdAt": Flashcard.created_at,
    "updatedAt": Flashcard.updated_at,
    "front": Flashcard.front,
}
SORT_ORDERS = ("asc", "desc")
ACCEPTED_SOURCES = (FlashcardSource.AI_FULL.value, FlashcardSource.AI_EDITED.value)


@dataclass
class BatchItem:
    """One accepted proposal: ``source`` is ``ai-full`` or ``ai-edited``."""

    front: str
    back: str
    source: str


@dataclass
class BatchOutcome:
    created: int
    flashcards: list[Flashcard]


@dataclass
class FlashcardQuery:
    page: int = 1
    page_size: int = settings.default_page_size
    source: str | None = None
    search: str | None = None
    sort: str = "createdAt"
    order: str = "desc"


class FlashcardService:
    """Per-request service over one database session."""

    def __init__(self, db: AsyncSession, config: Settings = settings) -> None:
        self.db = db
        self.config = config

    def _check_text(self, front: str, back: str) -> str | None:
        if not front or not front.strip():
            return "Front is required"
        if len(front.strip()) > self.config.front_max_length:
            return f"Front cannot exceed {self.config.front_max_length} characters"
        if not back or not back.strip():
            return "Back is required"
        if len(back.strip()) > self.config.back_max_length:
            return f"Back cannot exceed {self.config.back_max_length} characters"
        return None

    # --- Single cards ---

    async def create(self, user_id: uuid.UUID, front: str, back: str) -> Result[Flashcard]:
        """Create a manual flashcard with no generation."""
        if not is_valid_user_id(user_id):
            logger.warning("create called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)
        problem = self._check_text(front, back)
        if problem is not None:
            return Result.failure(ErrorKind.VALIDATION, problem)

        now = utcnow()
        card = Flashcard(
            front=front.strip(),
            back=back.strip(),
            source=FlashcardSource.MANUAL.value,
            user_id=user_id,
            generation_id=None,
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(card)
            await self.db.commit()
        except SQLAlchemyError:
            logger.error("Failed to create flashcard for user %s", user_id, exc_info=True)
            await self.db.rollback()
            return Result.failure(
                ErrorKind.PERSISTENCE, "An error occurred while creating the flashcard"
            )

        logger.info("Created flashcard %d for user %s", card.id, user_id)
        return Result.success(card)

    async def get(self, user_id: uuid.UUID, flashcard_id: int) -> Result[Flashcard]:
        if not is_valid_user_id(user_id):
            logger.warning("get called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)
        if flashcard_id <= 0:
            return Result.failure(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        card = await get_owned(self.db, Flashcard, flashcard_id, user_id)
        if card is None:
            return Result.failure(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)
        return Result.success(card)

    async def update(
        self, user_id: uuid.UUID, flashcard_id: int, front: str, back: str
    ) -> Result[Flashcard]:
        """Replace front and back text.

        An ``ai-full`` card becomes ``ai-edited``; any other source is kept.
        The generation link is never changed here.
        """
        if not is_valid_user_id(user_id):
            logger.warning("update called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)
        problem = self._check_text(front, back)
        if problem is not None:
            return Result.failure(ErrorKind.VALIDATION, problem)

        card = await get_owned(self.db, Flashcard, flashcard_id, user_id)
        if card is None:
            return Result.failure(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        card.front = front.strip()
        card.back = back.strip()
        card.updated_at = utcnow()
        if card.source == FlashcardSource.AI_FULL.value:
            card.source = FlashcardSource.AI_EDITED.value

        try:
            await self.db.commit()
        except SQLAlchemyError:
            logger.error(
                "Failed to update flashcard %d for user %s", flashcard_id, user_id, exc_info=True
            )
            await self.db.rollback()
            return Result.failure(
                ErrorKind.PERSISTENCE, "An error occurred while updating the flashcard"
            )

        logger.info(
            "Updated flashcard %d for user %s (source %s)", card.id, user_id, card.source
        )
        return Result.success(card)

    async def delete(self, user_id: uuid.UUID, flashcard_id: int) -> Result[bool]:
        if not is_valid_user_id(user_id):
            logger.warning("delete called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)

        card = await get_owned(self.db, Flashcard, flashcard_id, user_id)
        if card is None:
            return Result.failure(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        try:
            await self.db.delete(card)
            await self.db.commit()
        except SQLAlchemyError:
            logger.error(
                "Failed to delete flashcard %d for user %s", flashcard_id, user_id, exc_info=True
            )
            await self.db.rollback()
            return Result.failure(
                ErrorKind.PERSISTENCE, "An error occurred while deleting the flashcard"
            )

        logger.info("Deleted flashcard %d for user %s", flashcard_id, user_id)
        return Result.success(True)

    # --- Batch acceptance ---

    async def _increment_counters(
        self, user_id: uuid.UUID, generation_id: int, unedited: int, edited: int
    ) -> bool:
        """Atomically add to a generation's accepted counters.

        The row is only touched while the new total stays within
        ``generated_count``. Returns False when that guard rejects the update.
        """
        accepted_unedited = func.coalesce(Generation.accepted_unedited_count, 0)
        accepted_edited = func.coalesce(Generation.accepted_edited_count, 0)
        stmt = (
            update(Generation)
            .where(
                Generation.id == generation_id,
                Generation.user_id == user_id,
                accepted_unedited + accepted_edited + (unedited + edited)
                <= Generation.generated_count,
            )
            .values(
                accepted_unedited_count=accepted_unedited + unedited,
                accepted_edited_count=accepted_edited + edited,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def accept_batch(
        self, user_id: uuid.UUID, generation_id: int, items: list[BatchItem]
    ) -> Result[BatchOutcome]:
        """Save accepted proposals and bump the generation's counters together.

        Either every card is inserted and both counters move, or nothing
        changes at all.

        Args:
            user_id: The caller; must own the generation.
            generation_id: Generation the proposals came from.
            items: Accepted proposals, each ``ai-full`` or ``ai-edited``.

        Returns:
            The number of cards created and the cards themselves.
        """
        if not is_valid_user_id(user_id):
            logger.warning("accept_batch called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)
        if not items:
            logger.warning("accept_batch called with no flashcards for user %s", user_id)
            return Result.failure(ErrorKind.EMPTY_BATCH, "At least one flashcard is required")
        if len(items) > self.config.max_batch_size:
            return Result.failure(
                ErrorKind.EMPTY_BATCH,
                f"Cannot accept more than {self.config.max_batch_size} flashcards at once",
            )
        for item in items:
            if item.source not in ACCEPTED_SOURCES:
                return Result.failure(
                    ErrorKind.VALIDATION, "Source must be either 'ai-full' or 'ai-edited'"
                )
            problem = self._check_text(item.front, item.back)
            if problem is not None:
                return Result.failure(ErrorKind.VALIDATION, problem)

        generation = await get_owned(self.db, Generation, generation_id, user_id)
        if generation is None:
            return Result.failure(ErrorKind.NOT_FOUND, GENERATION_NOT_FOUND_MESSAGE)

        generated_count = generation.generated_count
        unedited = sum(1 for item in items if item.source == FlashcardSource.AI_FULL.value)
        edited = len(items) - unedited
        now = utcnow()
        cards = [
            Flashcard(
                front=item.front.strip(),
                back=item.back.strip(),
                source=item.source,
                user_id=user_id,
                generation_id=generation_id,
                created_at=now,
                updated_at=now,
            )
            for item in items
        ]

        try:
            self.db.add_all(cards)
            await self.db.flush()
            if not await self._increment_counters(user_id, generation_id, unedited, edited):
                await self.db.rollback()
                logger.warning(
                    "Rejected batch of %d for generation %d: would exceed %d generated",
                    len(items),
                    generation_id,
                    generated_count,
                )
                return Result.failure(
                    ErrorKind.OVER_ACCEPTED,
                    "Cannot accept more flashcards than were generated",
                )
            await self.db.commit()
        except SQLAlchemyError:
            logger.error(
                "Failed to save batch for generation %d, user %s",
                generation_id,
                user_id,
                exc_info=True,
            )
            await self.db.rollback()
            return Result.failure(
                ErrorKind.PERSISTENCE, "An error occurred while saving the flashcards"
            )
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Accepted %d flashcards for generation %d (unedited %d, edited %d)",
            len(cards),
            generation_id,
            unedited,
            edited,
        )
        return Result.success(BatchOutcome(created=len(cards), flashcards=cards))

    # --- Listing ---

    async def list_flashcards(
        self, user_id: uuid.UUID, query: FlashcardQuery | None = None
    ) -> Result[Page[Flashcard]]:
        """One page of the caller's flashcards, filtered and sorted."""
        if not is_valid_user_id(user_id):
            logger.warning("list_flashcards called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)

        query = query or FlashcardQuery()
        column = SORT_COLUMNS.get(query.sort)
        if column is None:
            return Result.failure(ErrorKind.VALIDATION, f"Invalid sort field: {query.sort}")
        order = query.order.lower()
        if order not in SORT_ORDERS:
            return Result.failure(ErrorKind.VALIDATION, "Order must be 'asc' or 'desc'")
        if query.source is not None and query.source not in {s.value for s in FlashcardSource}:
            return Result.failure(ErrorKind.VALIDATION, f"Invalid source: {query.source}")
        if query.page < 1:
            return Result.failure(ErrorKind.VALIDATION, "Page must be at least 1")
        page_size = clamp_page_size(query.page_size)

        conditions = [Flashcard.user_id == user_id]
        if query.source:
            conditions.append(Flashcard.source == query.source)
        if query.search and query.search.strip():
            term = query.search.strip().lower()
            conditions.append(
                or_(
                    func.lower(Flashcard.front).contains(term, autoescape=True),
                    func.lower(Flashcard.back).contains(term, autoescape=True),
                )
            )

        if order == "asc":
            ordering = (column.asc(), Flashcard.id.asc())
        else:
            ordering = (column.desc(), Flashcard.id.desc())

        try:
            total = (
                await self.db.execute(select(func.count(Flashcard.id)).where(*conditions))
            ).scalar() or 0
            cards = (
                await self.db.execute(
                    select(Flashcard)
                    .where(*conditions)
                    .order_by(*ordering)
                    .offset(offset_for(query.page, page_size))
                    .limit(page_size)
                )
            ).scalars().all()
        except SQLAlchemyError:
            logger.error("Error retrieving flashcards for user %s", user_id, exc_info=True)
            return Result.failure(
                ErrorKind.PERSISTENCE, "An error occurred while retrieving flashcards"
            )

        pagination = paginate(query.page, page_size, total)
        logger.info(
            "Retrieved %d flashcards for user %s (page %d/%d)",
            len(cards),
            user_id,
            query.page,
            pagination.total_pages,
        )
        return Result.success(Page(data=list(cards), pagination=pagination))
