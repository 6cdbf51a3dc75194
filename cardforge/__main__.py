"""CLI interface for cardforge.

Usage:
    python -m cardforge generate notes.txt           Generate proposals from a text file
    python -m cardforge generate notes.txt --accept  ...and save them all as flashcards
    python -m cardforge cards --search photo         List your flashcards
    python -m cardforge stats                        Show generation statistics
    python -m cardforge models                       List selectable models
"""

import argparse
import asyncio
import logging
import secrets
import uuid
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

from sqlalchemy import select

from backend.auth import hash_password
from backend.cards.flashcards import BatchItem, FlashcardQuery, FlashcardService
from backend.cards.generation import GenerationQuery, GenerationService
from backend.config import settings
from backend.database import async_session, init_db
from backend.llm_client import AVAILABLE_MODELS, close_provider, model_display_name
from backend.models.flashcard import FlashcardSource
from backend.models.user import User

LOCAL_USER_EMAIL = "local@cardforge.invalid"


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


async def ensure_user() -> uuid.UUID:
    """Ensure there's a local default user and return its ID."""
    async with async_session() as db:
        result = await db.execute(select(User).where(User.email == LOCAL_USER_EMAIL))
        user = result.scalar_one_or_none()
        if user:
            return user.id

        # Nobody logs in as the local user, so its password is never known
        user = User(email=LOCAL_USER_EMAIL, password_hash=hash_password(secrets.token_urlsafe(24)))
        db.add(user)
        await db.commit()
        return user.id


async def cmd_generate(args: argparse.Namespace) -> None:
    """Generate flashcard proposals from a text file."""
    await ensure_db()
    user_id = await ensure_user()
    source_text = Path(args.file).read_text(encoding="utf-8")

    async with async_session() as db:
        result = await GenerationService(db).generate(user_id, source_text, args.model)
        if not result.ok:
            print(f"\n  Generation failed: {result.error.message}")
            return

        outcome = result.value
        generation = outcome.generation
        print(f"\n  Generation #{generation.id} ({model_display_name(generation.model)})")
        print(f"  {generation.generated_count} proposals in {generation.generation_duration}ms\n")
        for i, proposal in enumerate(outcome.proposals, 1):
            print(f"  {i:>2}. {proposal.front}")
            print(f"      {proposal.back}")

        if not args.accept:
            return

        items = [
            BatchItem(front=p.front, back=p.back, source=FlashcardSource.AI_FULL.value)
            for p in outcome.proposals
        ]
        accepted = await FlashcardService(db).accept_batch(user_id, generation.id, items)
        if accepted.ok:
            print(f"\n  Saved {accepted.value.created} flashcards.")
        else:
            print(f"\n  Could not save flashcards: {accepted.error.message}")


async def cmd_cards(args: argparse.Namespace) -> None:
    """List flashcards, newest first."""
    await ensure_db()
    user_id = await ensure_user()
    query = FlashcardQuery(page=args.page, source=args.source, search=args.search)

    async with async_session() as db:
        result = await FlashcardService(db).list_flashcards(user_id, query)
    if not result.ok:
        print(f"\n  {result.error.message}")
        return

    listing = result.value
    if not listing.data:
        print("\n  No flashcards found.")
        return

    meta = listing.pagination
    print(f"\n  Flashcards (page {meta.current_page}/{meta.total_pages}, {meta.total_items} total)\n")
    for card in listing.data:
        print(f"  [{card.id}] ({card.source}) {card.front}")
        print(f"      {card.back}")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show generation and acceptance statistics."""
    await ensure_db()
    user_id = await ensure_user()

    async with async_session() as db:
        result = await GenerationService(db).list_generations(
            user_id, GenerationQuery(page_size=5)
        )
    if not result.ok:
        print(f"\n  {result.error.message}")
        return

    stats = result.value.statistics
    print("\n  Generation Statistics")
    print("  " + "-" * 30)
    print(f"  Generations:       {stats.total_generations}")
    print(f"  Cards proposed:    {stats.total_generated}")
    print(f"  Cards accepted:    {stats.total_accepted}")
    print(f"  Acceptance rate:   {stats.overall_acceptance_rate:.1f}%")

    if result.value.data:
        print("\n  Recent generations:")
        for generation in result.value.data:
            print(
                f"    #{generation.id} {generation.created_at:%Y-%m-%d %H:%M}  "
                f"{generation.generated_count} proposed, {generation.acceptance_rate:.0f}% accepted"
            )


def cmd_models(args: argparse.Namespace) -> None:
    """List selectable models (sync, no DB needed)."""
    print()
    for option in AVAILABLE_MODELS:
        marker = "*" if option.value == settings.default_model else " "
        print(f"  {marker} {option.value:<28} {option.description}")
    print()


async def _run(coro: Coroutine[Any, Any, None]) -> None:
    try:
        await coro
    finally:
        await close_provider()


def main() -> None:
    """Entry point for the cardforge CLI application."""
    parser = argparse.ArgumentParser(
        prog="cardforge",
        description="AI-assisted flashcard generation",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # generate
    generate_parser = subparsers.add_parser("generate", help="Generate flashcards from a text file")
    generate_parser.add_argument("file", help="UTF-8 text file to generate from")
    generate_parser.add_argument("-m", "--model", default=settings.default_model, help="Model identifier")
    generate_parser.add_argument("--accept", action="store_true", help="Save every proposal unedited")

    # cards
    cards_parser = subparsers.add_parser("cards", help="List your flashcards")
    cards_parser.add_argument("-s", "--search", default=None, help="Case-insensitive text filter")
    cards_parser.add_argument(
        "--source", choices=[s.value for s in FlashcardSource], default=None, help="Filter by source"
    )
    cards_parser.add_argument("-p", "--page", type=int, default=1, help="Page number")

    # stats
    subparsers.add_parser("stats", help="Show generation statistics")

    # models
    subparsers.add_parser("models", help="List selectable models")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    # models is synchronous, all others are async.
    if args.command == "models":
        cmd_models(args)
        return

    cmd_map = {
        "generate": cmd_generate,
        "cards": cmd_cards,
        "stats": cmd_stats,
    }
    asyncio.run(_run(cmd_map[args.command](args)))


if __name__ == "__main__":
    main()
