import uuid
from enum import Enum

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import settings
from backend.models.base import Base, TimestampMixin


class FlashcardSource(str, Enum):
    """Provenance of a flashcard."""

    MANUAL = "manual"         # Written by the user
    AI_FULL = "ai-full"       # Accepted from a generation unchanged
    AI_EDITED = "ai-edited"   # Accepted after editing, or edited later


class Flashcard(Base, TimestampMixin):
    __tablename__ = "flashcards"
    __table_args__ = (
        CheckConstraint(
            "source IN ('manual', 'ai-full', 'ai-edited')",
            name="ck_flashcards_source",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    front: Mapped[str] = mapped_column(String(settings.front_max_length), nullable=False)
    back: Mapped[str] = mapped_column(String(settings.back_max_length), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # FlashcardSource value
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    generation_id: Mapped[int | None] = mapped_column(
        ForeignKey("generations.id", ondelete="SET NULL"), nullable=True, index=True
    )

    user: Mapped["User"] = relationship(back_populates="flashcards")  # type: ignore[name-defined] # noqa: F821
    generation: Mapped["Generation | None"] = relationship(back_populates="flashcards")  # type: ignore[name-defined] # noqa: F821
