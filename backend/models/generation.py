"""Record of one AI generation request and its acceptance statistics."""

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import settings
from backend.models.base import Base, TimestampMixin


class Generation(Base, TimestampMixin):
    """One successful provider call.

    ``generated_count`` is set once at creation. The accepted counters start
    as NULL and are only ever incremented by batch acceptance.
    """

    __tablename__ = "generations"
    __table_args__ = (
        CheckConstraint(
            f"source_text_length BETWEEN {settings.source_text_min_length} "
            f"AND {settings.source_text_max_length}",
            name="ck_generations_source_text_length",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    model: Mapped[str] = mapped_column(String(settings.model_max_length), nullable=False)
    generated_count: Mapped[int] = mapped_column(Integer, nullable=False)
    accepted_unedited_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    accepted_edited_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_text_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    source_text_length: Mapped[int] = mapped_column(Integer, nullable=False)
    generation_duration: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds

    user: Mapped["User"] = relationship(back_populates="generations")  # type: ignore[name-defined] # noqa: F821
    flashcards: Mapped[list["Flashcard"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="generation", passive_deletes=True
    )

    @property
    def acceptance_rate(self) -> float:
        """Percentage of generated proposals that were accepted (edited or not)."""
        if self.generated_count <= 0:
            return 0.0
        accepted = (self.accepted_unedited_count or 0) + (self.accepted_edited_count or 0)
        return accepted / self.generated_count * 100
