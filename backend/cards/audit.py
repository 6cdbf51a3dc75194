"""Best-effort persistence of failed generation attempts."""

import logging
import uuid
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import async_session
from backend.models.generation_error_log import GenerationErrorLog

logger = logging.getLogger(__name__)

# Error codes stored in generation_error_logs.error_code
AI_API_ERROR = "AI_API_ERROR"
AI_INVALID_RESPONSE = "AI_INVALID_RESPONSE"
AI_GENERATION_ERROR = "AI_GENERATION_ERROR"


async def record_generation_error(
    user_id: uuid.UUID,
    model: str,
    source_text_hash: str,
    source_text_length: int,
    error_code: str,
    error_message: str,
    session_factory: Callable[[], AsyncSession] = async_session,
) -> None:
    """Append a ``GenerationErrorLog`` row in a session of its own.

    Never raises: a failure to write the audit row is logged and dropped so it
    cannot mask the error being recorded. Cancellation still propagates.
    """
    try:
        async with session_factory() as session:
            session.add(
                GenerationErrorLog(
                    user_id=user_id,
                    model=model,
                    source_text_hash=source_text_hash,
                    source_text_length=source_text_length,
                    error_code=error_code,
                    error_message=error_message,
                )
            )
            await session.commit()
        logger.info("Logged generation error %s for user %s", error_code, user_id)
    except Exception:
        logger.error(
            "Failed to log generation error %s for user %s", error_code, user_id, exc_info=True
        )
