"""Row-level scoping: every per-entity lookup goes through ``get_owned``."""

import logging
import uuid
from typing import Any, TypeVar

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.base import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

EMPTY_USER_ID = uuid.UUID(int=0)


def is_valid_user_id(user_id: uuid.UUID | None) -> bool:
    """A user id is usable when present and not the all-zero UUID."""
    return user_id is not None and user_id != EMPTY_USER_ID


async def get_owned(
    db: AsyncSession,
    model: type[ModelT],
    entity_id: int,
    user_id: uuid.UUID,
    *options: Any,
) -> ModelT | None:
    """Fetch ``model`` row ``entity_id`` only if it belongs to ``user_id``.

    A missing row and another user's row are indistinguishable to the caller;
    both return None and are logged at warning level. Rows already in the
    session are refreshed from the database.

    Args:
        db: Database session.
        model: ORM class with ``id`` and ``user_id`` columns.
        entity_id: Primary key to look up.
        user_id: The caller; only their rows are visible.
        *options: Loader options (e.g. ``selectinload``) for the query.
    """
    stmt = (
        select(model)
        .where(and_(model.id == entity_id, model.user_id == user_id))  # type: ignore[attr-defined]
        .execution_options(populate_existing=True)
    )
    if options:
        stmt = stmt.options(*options)
    result = await db.execute(stmt)
    entity = result.scalar_one_or_none()
    if entity is None:
        logger.warning(
            "%s %s not found or not owned by user %s",
            model.__name__,
            entity_id,
            user_id,
        )
    return entity
