import uuid

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)  # lower-cased
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Rows are removed by the database cascade, never loaded for deletion
    flashcards: Mapped[list["Flashcard"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="user", passive_deletes=True
    )
    generations: Mapped[list["Generation"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="user", passive_deletes=True
    )
    generation_error_logs: Mapped[list["GenerationErrorLog"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="user", passive_deletes=True
    )
