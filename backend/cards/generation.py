"""Generation orchestration: validate, call the provider, persist, audit failures.

``GenerationService.generate`` is the only path that creates ``Generation``
rows. Provider failures never raise out of it; they come back as a failed
``Result`` after an error-log row has been written (best-effort, in its own
session). Cancellation is the exception: it propagates and nothing is written.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from backend.cards.audit import (
    AI_API_ERROR,
    AI_GENERATION_ERROR,
    AI_INVALID_RESPONSE,
    record_generation_error,
)
from backend.cards.fingerprint import fingerprint
from backend.cards.pagination import Page, clamp_page_size, offset_for, paginate
from backend.cards.results import ErrorKind, Result
from backend.cards.scoped import get_owned, is_valid_user_id
from backend.config import Settings, settings
from backend.database import async_session
from backend.llm_client import (
    FlashcardProposal,
    FlashcardProvider,
    MalformedResponse,
    ProviderUnavailable,
    get_provider,
)
from backend.models.flashcard import Flashcard
from backend.models.generation import Generation

logger = logging.getLogger(__name__)

INVALID_USER_MESSAGE = "Invalid user ID"
NOT_FOUND_MESSAGE = "Generation not found"
TIMEOUT_MESSAGE = "AI service request timed out. Please try again."
UNAVAILABLE_MESSAGE = "Failed to generate flashcards. Please try again later."
MALFORMED_MESSAGE = "Failed to parse AI response. Please try again."
UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again later."
NO_PROPOSALS_MESSAGE = "AI service did not generate any flashcards"
SAVE_FAILED_MESSAGE = "An error occurred while saving generation data"

SORT_FIELDS = ("createdAt",)
SORT_ORDERS = ("asc", "desc")


@dataclass
class GenerationOutcome:
    """A persisted generation plus the proposals the user has yet to review."""

    generation: Generation
    proposals: list[FlashcardProposal]


@dataclass
class GenerationQuery:
    page: int = 1
    page_size: int = settings.default_page_size
    sort: str = "createdAt"
    order: str = "desc"


@dataclass(frozen=True)
class GenerationStatistics:
    """Totals over every generation a user owns, independent of paging."""

    total_generations: int = 0
    total_generated: int = 0
    total_accepted: int = 0

    @property
    def overall_acceptance_rate(self) -> float:
        if self.total_generated <= 0:
            return 0.0
        return self.total_accepted / self.total_generated * 100


@dataclass
class GenerationPage(Page[Generation]):
    statistics: GenerationStatistics = field(default_factory=GenerationStatistics)


@dataclass
class GenerationDetail:
    generation: Generation
    flashcards: list[Flashcard]


class GenerationService:
    """Per-request service over one database session.

    Without an explicit provider the shared configured one is used.
    """

    def __init__(
        self,
        db: AsyncSession,
        provider: FlashcardProvider | None = None,
        config: Settings = settings,
        session_factory: Callable[[], AsyncSession] = async_session,
    ) -> None:
        self.db = db
        self.provider = provider
        self.config = config
        self.session_factory = session_factory

    def _validate(self, source_text: str, model: str) -> str | None:
        length = len(source_text or "")
        if length < self.config.source_text_min_length:
            return f"Source text must be at least {self.config.source_text_min_length} characters long"
        if length > self.config.source_text_max_length:
            return f"Source text cannot exceed {self.config.source_text_max_length} characters"
        if not model or not model.strip():
            return "Model is required"
        if len(model) > self.config.model_max_length:
            return f"Model name cannot exceed {self.config.model_max_length} characters"
        return None

    async def _call_provider(
        self, source_text: str, model: str
    ) -> tuple[list[FlashcardProposal], int]:
        """Call the provider, retrying only while it is unavailable.

        Returns the proposals and the milliseconds spent inside provider
        calls, summed over attempts. Backoff sleeps are not counted.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ProviderUnavailable),
            stop=stop_after_attempt(max(1, self.config.generation_max_attempts)),
            wait=wait_exponential(multiplier=self.config.generation_retry_backoff),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        provider = self.provider or get_provider()
        elapsed = 0.0

        async def attempt() -> list[FlashcardProposal]:
            nonlocal elapsed
            started = time.monotonic()
            try:
                return await provider.generate(source_text, model)
            finally:
                elapsed += time.monotonic() - started

        proposals = await retrying(attempt)
        return proposals, int(elapsed * 1000)

    async def _record_error(
        self,
        user_id: uuid.UUID,
        model: str,
        source_text_hash: str,
        source_text_length: int,
        error_code: str,
        error_message: str,
    ) -> None:
        await record_generation_error(
            user_id,
            model,
            source_text_hash,
            source_text_length,
            error_code,
            error_message,
            session_factory=self.session_factory,
        )

    async def generate(
        self, user_id: uuid.UUID, source_text: str, model: str
    ) -> Result[GenerationOutcome]:
        """Generate proposals for ``source_text`` and record the generation.

        Args:
            user_id: The caller.
            source_text: Text to derive flashcards from.
            model: Provider model identifier.

        Returns:
            The persisted generation (accepted counters still NULL) with its
            proposals, or a failure whose message is safe to show the user.
        """
        if not is_valid_user_id(user_id):
            logger.warning("generate called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)

        problem = self._validate(source_text, model)
        if problem is not None:
            return Result.failure(ErrorKind.VALIDATION, problem)

        source_text_hash = fingerprint(source_text)
        source_text_length = len(source_text)

        logger.info(
            "Generating flashcards for user %s with model %s, text length %d",
            user_id,
            model,
            source_text_length,
        )
        try:
            proposals, duration_ms = await self._call_provider(source_text, model)
        except ProviderUnavailable as e:
            logger.error(
                "Provider unavailable for user %s, model %s: %s", user_id, model, e, exc_info=True
            )
            await self._record_error(
                user_id, model, source_text_hash, source_text_length,
                AI_API_ERROR, f"HTTP error: {e}",
            )
            message = TIMEOUT_MESSAGE if e.timed_out else UNAVAILABLE_MESSAGE
            return Result.failure(ErrorKind.PROVIDER, message)
        except MalformedResponse as e:
            logger.error(
                "Invalid provider response for user %s, model %s: %s", user_id, model, e, exc_info=True
            )
            await self._record_error(
                user_id, model, source_text_hash, source_text_length,
                AI_INVALID_RESPONSE, f"Invalid response: {e}",
            )
            return Result.failure(ErrorKind.PROVIDER, MALFORMED_MESSAGE)
        except Exception as e:
            logger.error(
                "Unexpected error during generation for user %s, model %s", user_id, model, exc_info=True
            )
            await self._record_error(
                user_id, model, source_text_hash, source_text_length,
                AI_GENERATION_ERROR, f"Unexpected error: {e}",
            )
            return Result.failure(ErrorKind.UNEXPECTED, UNEXPECTED_MESSAGE)

        if not proposals:
            # Not an audited failure: the provider answered, just with nothing
            logger.warning("Provider returned no flashcards for user %s", user_id)
            return Result.failure(ErrorKind.NO_PROPOSALS, NO_PROPOSALS_MESSAGE)

        generation = Generation(
            user_id=user_id,
            model=model,
            generated_count=len(proposals),
            accepted_unedited_count=None,
            accepted_edited_count=None,
            source_text_hash=source_text_hash,
            source_text_length=source_text_length,
            generation_duration=duration_ms,
        )
        try:
            self.db.add(generation)
            await self.db.commit()
        except SQLAlchemyError:
            logger.error("Failed to save generation for user %s", user_id, exc_info=True)
            await self.db.rollback()
            return Result.failure(ErrorKind.PERSISTENCE, SAVE_FAILED_MESSAGE)

        logger.info(
            "Generated %d flashcards for user %s in %dms (generation %d)",
            len(proposals),
            user_id,
            duration_ms,
            generation.id,
        )
        return Result.success(GenerationOutcome(generation=generation, proposals=proposals))

    async def list_generations(
        self, user_id: uuid.UUID, query: GenerationQuery | None = None
    ) -> Result[GenerationPage]:
        """One page of the caller's generations plus unpaginated statistics."""
        if not is_valid_user_id(user_id):
            logger.warning("list_generations called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)

        query = query or GenerationQuery()
        if query.sort not in SORT_FIELDS:
            return Result.failure(ErrorKind.VALIDATION, f"Invalid sort field: {query.sort}")
        if query.order.lower() not in SORT_ORDERS:
            return Result.failure(ErrorKind.VALIDATION, "Order must be 'asc' or 'desc'")
        if query.page < 1:
            return Result.failure(ErrorKind.VALIDATION, "Page must be at least 1")
        page_size = clamp_page_size(query.page_size)

        owned = Generation.user_id == user_id
        accepted = func.coalesce(Generation.accepted_unedited_count, 0) + func.coalesce(
            Generation.accepted_edited_count, 0
        )
        if query.order.lower() == "asc":
            ordering = (Generation.created_at.asc(), Generation.id.asc())
        else:
            ordering = (Generation.created_at.desc(), Generation.id.desc())

        try:
            stats_row = (
                await self.db.execute(
                    select(
                        func.count(Generation.id),
                        func.coalesce(func.sum(Generation.generated_count), 0),
                        func.coalesce(func.sum(accepted), 0),
                    ).where(owned)
                )
            ).one()
            items = (
                await self.db.execute(
                    select(Generation)
                    .where(owned)
                    .order_by(*ordering)
                    .offset(offset_for(query.page, page_size))
                    .limit(page_size)
                )
            ).scalars().all()
        except SQLAlchemyError:
            logger.error("Error retrieving generations for user %s", user_id, exc_info=True)
            return Result.failure(
                ErrorKind.PERSISTENCE, "An error occurred while retrieving generations"
            )

        total, total_generated, total_accepted = stats_row
        pagination = paginate(query.page, page_size, total)
        logger.info(
            "Retrieved %d generations for user %s (page %d/%d)",
            len(items),
            user_id,
            query.page,
            pagination.total_pages,
        )
        return Result.success(
            GenerationPage(
                data=list(items),
                pagination=pagination,
                statistics=GenerationStatistics(
                    total_generations=total,
                    total_generated=int(total_generated),
                    total_accepted=int(total_accepted),
                ),
            )
        )

    async def get_generation(
        self, user_id: uuid.UUID, generation_id: int
    ) -> Result[GenerationDetail]:
        """A generation with its flashcards, oldest card first."""
        if not is_valid_user_id(user_id):
            logger.warning("get_generation called with empty user id")
            return Result.failure(ErrorKind.INVALID_USER, INVALID_USER_MESSAGE)
        if generation_id <= 0:
            return Result.failure(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        generation = await get_owned(
            self.db, Generation, generation_id, user_id, selectinload(Generation.flashcards)
        )
        if generation is None:
            return Result.failure(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        flashcards = sorted(generation.flashcards, key=lambda f: (f.created_at, f.id))
        logger.info(
            "Retrieved generation %d with %d flashcards for user %s",
            generation_id,
            len(flashcards),
            user_id,
        )
        return Result.success(GenerationDetail(generation=generation, flashcards=flashcards))
