import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import settings, utcnow
from backend.models.base import Base


class GenerationErrorLog(Base):
    """Append-only audit row for a failed generation attempt."""

    __tablename__ = "generation_error_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    model: Mapped[str] = mapped_column(String(settings.model_max_length), nullable=False)
    source_text_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    source_text_length: Mapped[int] = mapped_column(Integer, nullable=False)
    error_code: Mapped[str] = mapped_column(String(100), nullable=False)  # AI_API_ERROR, ...
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped["User"] = relationship(back_populates="generation_error_logs")  # type: ignore[name-defined] # noqa: F821
