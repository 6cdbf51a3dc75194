"""Tests for flashcard CRUD and batch acceptance of generated proposals."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from backend.cards.flashcards import BatchItem, FlashcardService
from backend.cards.results import ErrorKind
from backend.cards.scoped import EMPTY_USER_ID
from backend.database import async_session
from backend.models import Flashcard, Generation


# --- Helpers ---


def _make_items(unedited: int = 0, edited: int = 0) -> list[BatchItem]:
    items = [BatchItem(front=f"  Front {i}  ", back=f" Back {i} ", source="ai-full") for i in range(unedited)]
    items += [BatchItem(front=f"Edited {i}", back=f"Edited back {i}", source="ai-edited") for i in range(edited)]
    return items


async def _card_count(db) -> int:  # type: ignore[no-untyped-def]
    return (await db.execute(select(func.count(Flashcard.id)))).scalar_one()


class _FailingCounterService(FlashcardService):
    """Fails at the counter update, after the cards have been flushed."""

    async def _increment_counters(self, user_id, generation_id, unedited, edited) -> bool:  # type: ignore[no-untyped-def]
        raise OperationalError("UPDATE generations", {}, Exception("disk I/O error"))


# --- Create / get ---


class TestCreate:
    @pytest.mark.asyncio
    async def test_manual_card_is_trimmed(self, db, user) -> None:
        result = await FlashcardService(db).create(user.id, "  What is ATP?  ", "\tEnergy currency\n")
        card = result.value
        assert card.front == "What is ATP?"
        assert card.back == "Energy currency"
        assert card.source == "manual"
        assert card.generation_id is None
        assert card.user_id == user.id

    @pytest.mark.asyncio
    async def test_blank_front_rejected(self, db, user) -> None:
        result = await FlashcardService(db).create(user.id, "   ", "back")
        assert result.error.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_overlong_back_rejected(self, db, user) -> None:
        result = await FlashcardService(db).create(user.id, "front", "b" * 501)
        assert result.error.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_empty_user(self, db) -> None:
        result = await FlashcardService(db).create(EMPTY_USER_ID, "front", "back")
        assert result.error.kind == ErrorKind.INVALID_USER

    @pytest.mark.asyncio
    async def test_get_is_scoped(self, db, user, other_user) -> None:
        service = FlashcardService(db)
        card = (await service.create(other_user.id, "front", "back")).value
        assert (await service.get(other_user.id, card.id)).ok
        hidden = await service.get(user.id, card.id)
        assert hidden.error.kind == ErrorKind.NOT_FOUND
        assert hidden.error.message == "Flashcard not found"


# --- Batch acceptance ---


class TestAcceptBatch:
    @pytest.mark.asyncio
    async def test_counts_sources_into_counters(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=10)
        result = await FlashcardService(db).accept_batch(
            user.id, generation.id, _make_items(unedited=3, edited=2)
        )

        assert result.ok
        assert result.value.created == 5
        await db.refresh(generation)
        assert generation.accepted_unedited_count == 3
        assert generation.accepted_edited_count == 2
        assert generation.acceptance_rate == 50.0

    @pytest.mark.asyncio
    async def test_cards_are_trimmed_linked_and_share_timestamp(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=5)
        result = await FlashcardService(db).accept_batch(user.id, generation.id, _make_items(unedited=3))

        cards = result.value.flashcards
        assert [c.front for c in cards] == ["Front 0", "Front 1", "Front 2"]
        assert all(c.back.startswith("Back") for c in cards)
        assert {c.generation_id for c in cards} == {generation.id}
        assert {c.user_id for c in cards} == {user.id}
        assert {c.source for c in cards} == {"ai-full"}
        assert len({c.created_at for c in cards}) == 1

    @pytest.mark.asyncio
    async def test_counters_accumulate_across_batches(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=10)
        service = FlashcardService(db)
        await service.accept_batch(user.id, generation.id, _make_items(unedited=2))
        await service.accept_batch(user.id, generation.id, _make_items(unedited=1, edited=3))

        await db.refresh(generation)
        assert generation.accepted_unedited_count == 3
        assert generation.accepted_edited_count == 3

    @pytest.mark.asyncio
    async def test_empty_batch(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id)
        result = await FlashcardService(db).accept_batch(user.id, generation.id, [])
        assert result.error.kind == ErrorKind.EMPTY_BATCH
        await db.refresh(generation)
        assert generation.accepted_unedited_count is None

    @pytest.mark.asyncio
    async def test_oversized_batch(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=60)
        result = await FlashcardService(db).accept_batch(user.id, generation.id, _make_items(unedited=51))
        assert result.error.kind == ErrorKind.EMPTY_BATCH
        assert await _card_count(db) == 0

    @pytest.mark.asyncio
    async def test_manual_source_rejected(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id)
        items = [BatchItem(front="f", back="b", source="manual")]
        result = await FlashcardService(db).accept_batch(user.id, generation.id, items)
        assert result.error.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_foreign_generation_changes_nothing(self, db, user, other_user, make_generation) -> None:
        generation = await make_generation(other_user.id)
        result = await FlashcardService(db).accept_batch(user.id, generation.id, _make_items(unedited=2))

        assert result.error.kind == ErrorKind.NOT_FOUND
        assert await _card_count(db) == 0
        await db.refresh(generation)
        assert generation.accepted_unedited_count is None
        assert generation.accepted_edited_count is None

    @pytest.mark.asyncio
    async def test_over_accept_is_rejected_whole(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=3, accepted_unedited_count=2)
        result = await FlashcardService(db).accept_batch(user.id, generation.id, _make_items(unedited=2))

        assert result.error.kind == ErrorKind.OVER_ACCEPTED
        assert await _card_count(db) == 0
        await db.refresh(generation)
        assert generation.accepted_unedited_count == 2
        assert generation.accepted_edited_count is None

    @pytest.mark.asyncio
    async def test_accepting_exactly_all_is_allowed(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=4)
        result = await FlashcardService(db).accept_batch(
            user.id, generation.id, _make_items(unedited=2, edited=2)
        )
        assert result.ok
        await db.refresh(generation)
        assert generation.acceptance_rate == 100.0

    @pytest.mark.asyncio
    async def test_counter_failure_rolls_back_cards(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=5)
        result = await _FailingCounterService(db).accept_batch(
            user.id, generation.id, _make_items(unedited=2, edited=1)
        )

        assert result.error.kind == ErrorKind.PERSISTENCE
        assert await _card_count(db) == 0
        await db.refresh(generation)
        assert generation.accepted_unedited_count is None
        assert generation.accepted_edited_count is None

    @pytest.mark.asyncio
    async def test_separate_sessions_both_counted(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id, generated_count=10)

        for items in (_make_items(unedited=2), _make_items(unedited=1, edited=2)):
            async with async_session() as session:
                result = await FlashcardService(session).accept_batch(user.id, generation.id, items)
            assert result.ok

        await db.refresh(generation)
        assert generation.accepted_unedited_count == 3
        assert generation.accepted_edited_count == 2
        assert await _card_count(db) == 5

# --- Update / delete ---


class TestUpdate:
    @pytest.mark.asyncio
    async def test_ai_full_becomes_ai_edited(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id)
        service = FlashcardService(db)
        card = (await service.accept_batch(user.id, generation.id, _make_items(unedited=1))).value.flashcards[0]
        created_at = card.created_at

        updated = (await service.update(user.id, card.id, " New front ", " New back ")).value
        assert updated.front == "New front"
        assert updated.back == "New back"
        assert updated.source == "ai-edited"
        assert updated.generation_id == generation.id
        assert updated.created_at == created_at
        assert updated.updated_at >= created_at

    @pytest.mark.asyncio
    async def test_second_edit_keeps_ai_edited(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id)
        service = FlashcardService(db)
        card = (await service.accept_batch(user.id, generation.id, _make_items(unedited=1))).value.flashcards[0]
        await service.update(user.id, card.id, "one", "one")
        again = (await service.update(user.id, card.id, "two", "two")).value
        assert again.source == "ai-edited"

    @pytest.mark.asyncio
    async def test_manual_stays_manual(self, db, user) -> None:
        service = FlashcardService(db)
        card = (await service.create(user.id, "front", "back")).value
        updated = (await service.update(user.id, card.id, "front 2", "back 2")).value
        assert updated.source == "manual"
        assert updated.generation_id is None

    @pytest.mark.asyncio
    async def test_update_does_not_touch_counters(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id)
        service = FlashcardService(db)
        card = (await service.accept_batch(user.id, generation.id, _make_items(unedited=1))).value.flashcards[0]
        await service.update(user.id, card.id, "edited", "edited")
        await db.refresh(generation)
        assert generation.accepted_unedited_count == 1
        assert generation.accepted_edited_count == 0

    @pytest.mark.asyncio
    async def test_foreign_card_is_not_found(self, db, user, other_user) -> None:
        service = FlashcardService(db)
        card = (await service.create(other_user.id, "front", "back")).value
        result = await service.update(user.id, card.id, "hijack", "hijack")
        assert result.error.kind == ErrorKind.NOT_FOUND
        await db.refresh(card)
        assert card.front == "front"


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_own_card(self, db, user) -> None:
        service = FlashcardService(db)
        card = (await service.create(user.id, "front", "back")).value
        assert (await service.delete(user.id, card.id)).ok
        assert (await service.get(user.id, card.id)).error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_foreign_card_is_not_found(self, db, user, other_user) -> None:
        service = FlashcardService(db)
        card = (await service.create(other_user.id, "front", "back")).value
        result = await service.delete(user.id, card.id)
        assert result.error.message == "Flashcard not found"
        assert await _card_count(db) == 1

    @pytest.mark.asyncio
    async def test_deleting_generation_unlinks_cards(self, db, user, make_generation) -> None:
        generation = await make_generation(user.id)
        service = FlashcardService(db)
        card = (await service.accept_batch(user.id, generation.id, _make_items(unedited=1))).value.flashcards[0]

        await db.delete(await db.get(Generation, generation.id))
        await db.commit()

        await db.refresh(card)
        assert card.generation_id is None
        assert card.source == "ai-full"
