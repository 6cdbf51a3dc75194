"""Shared fixtures: a throwaway SQLite database and a scriptable provider."""

import os
import tempfile
import uuid
from collections.abc import AsyncIterator, Callable

# Configure before anything imports backend.config
_tmpdir = tempfile.mkdtemp(prefix="cardforge-tests-")
os.environ["CARDFORGE_DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmpdir}/test.db"
os.environ["CARDFORGE_GENERATION_RETRY_BACKOFF"] = "0"
os.environ["CARDFORGE_GENERATION_MAX_ATTEMPTS"] = "2"
os.environ["CARDFORGE_LLM_PROVIDER"] = "openrouter"
os.environ["CARDFORGE_OPENROUTER_API_KEY"] = ""
os.environ["CARDFORGE_ENVIRONMENT"] = "production"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from backend.auth import hash_password  # noqa: E402
from backend.database import async_session, engine  # noqa: E402
from backend.llm_client import FlashcardProposal, FlashcardProvider  # noqa: E402
from backend.models import Base, Generation, User  # noqa: E402

SOURCE_TEXT = (
    "Photosynthesis is the process by which green plants convert light energy into "
    "chemical energy stored in glucose. "
) * 12  # ~1300 characters, inside the accepted range


class StubProvider(FlashcardProvider):
    """Replays scripted outcomes: each entry is a proposal list or an exception."""

    name = "stub"

    def __init__(self, *outcomes: list[FlashcardProposal] | BaseException) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []

    async def generate(self, source_text: str, model: str) -> list[FlashcardProposal]:
        self.calls.append((source_text, model))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_proposals(count: int) -> list[FlashcardProposal]:
    return [FlashcardProposal(front=f"Question {i}", back=f"Answer {i}") for i in range(1, count + 1)]


@pytest.fixture
def source_text() -> str:
    return SOURCE_TEXT


@pytest.fixture
def stub_provider() -> type[StubProvider]:
    return StubProvider


@pytest.fixture
def proposals() -> Callable[[int], list[FlashcardProposal]]:
    return make_proposals


@pytest_asyncio.fixture
async def schema() -> AsyncIterator[None]:
    """Rebuild every table for each test and release pooled connections afterwards."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def db(schema: None) -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def _create_user(db: AsyncSession, email: str) -> User:
    user = User(email=email, password_hash=hash_password("Passw0rd!"))
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    return await _create_user(db, "alice@example.com")


@pytest_asyncio.fixture
async def other_user(db: AsyncSession) -> User:
    return await _create_user(db, "bob@example.com")


@pytest_asyncio.fixture
async def make_generation(db: AsyncSession):  # type: ignore[no-untyped-def]
    """Factory for generations inserted directly, bypassing the provider."""

    async def _make(
        user_id: uuid.UUID,
        generated_count: int = 5,
        accepted_unedited_count: int | None = None,
        accepted_edited_count: int | None = None,
        model: str = "openai/gpt-4o-mini",
    ) -> Generation:
        generation = Generation(
            user_id=user_id,
            model=model,
            generated_count=generated_count,
            accepted_unedited_count=accepted_unedited_count,
            accepted_edited_count=accepted_edited_count,
            source_text_hash="A" * 64,
            source_text_length=len(SOURCE_TEXT),
            generation_duration=1200,
        )
        db.add(generation)
        await db.commit()
        return generation

    return _make
