from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import click

from . import db
from .catalog import load_default_catalog
from .config import DEBUG_MODE, SchedulerSettings, configure_logging
from .errors import SchedulerError
from .selector import get_card_queue, get_next_card, get_progress_summary, record_card_completion
from .session import LearnerSession
from .structured import Card, CompletionResult, Learner

T = TypeVar("T")


def _run(operation: Callable[[], Awaitable[T]]) -> T:
    """Run one async operation, then release the engine's connections."""
    async def runner() -> T:
        try:
            return await operation()
        finally:
            await db.engine.dispose()

    try:
        return asyncio.run(runner())
    except SchedulerError as e:
        raise click.ClickException(str(e)) from e


def _open_session(learner_id: str) -> LearnerSession:
    return LearnerSession.open(
        learner_id,
        db.SqlProgressStore(),
        load_default_catalog(),
        settings=SchedulerSettings.from_env(),
    )


def _describe(card: Card) -> str:
    return f"{card.display_text}  [{card.kind.value}, lesson {card.lesson}]"


@click.group()
@click.option("--debug", is_flag=True, default=DEBUG_MODE, help="Verbose logging")
def cli(debug: bool) -> None:
    """Early reader card scheduler."""
    configure_logging(debug)


@cli.command("init-db")
def init_db() -> None:
    """Create the progress database tables."""
    _run(db.init_db)
    click.echo(f"Database initialized at {db.engine.url.database}.")


@cli.command("add-learner")
@click.argument("learner_id")
@click.option("--name", default=None, help="Display name")
@click.option("--lesson", default=1, type=click.IntRange(1, 100), help="Starting lesson")
def add_learner(learner_id: str, name: str | None, lesson: int) -> None:
    """Register a learner."""
    store = db.SqlProgressStore()

    async def create() -> Learner:
        return await store.create_learner(Learner(id=learner_id, name=name, current_lesson=lesson))

    learner = _run(create)
    click.echo(f"Learner '{learner.id}' at lesson {learner.current_lesson}.")


@cli.command("next-card")
@click.argument("learner_id")
@click.option("--exclude", default=None, help="Word shown just before; it will not be repeated")
@click.option(
    "--new-shown",
    default=0,
    type=click.IntRange(min=0),
    help="New phonemes already introduced this sitting; they count against the new card cap",
)
def next_card(learner_id: str, exclude: str | None, new_shown: int) -> None:
    """Pick the next card for a learner.

    Each call is its own session, so pass --new-shown to carry the new card
    count across calls made during one sitting.
    """
    session = _open_session(learner_id)
    session.new_cards_introduced = new_shown
    card = _run(lambda: get_next_card(session, exclude))
    if card is None:
        click.echo("Nothing to practice right now.")
        return
    click.echo(_describe(card))


@cli.command("queue")
@click.argument("learner_id")
def queue(learner_id: str) -> None:
    """Build a full session queue for a learner."""
    session = _open_session(learner_id)
    result = _run(lambda: get_card_queue(session))
    level = "?" if result.current_level is None else result.current_level
    click.echo(f"Lesson {level}: {len(result.cards)} cards")
    for i, card in enumerate(result.cards, start=1):
        click.echo(f"{i:2d}. {_describe(card)}")
    if not result.cards:
        click.echo("Nothing to practice right now.")


@cli.command("record")
@click.argument("learner_id")
@click.argument("word")
@click.option("--success/--failure", default=True, help="Whether the card was read correctly")
@click.option("--attempts", default=1, type=click.IntRange(min=1), help="Tries before the result")
@click.option("--score", default=1.0, type=click.FloatRange(0.0, 1.0), help="Pronunciation match score")
@click.option("--needed-help", is_flag=True, help="The learner needed a hint")
def record(learner_id: str, word: str, success: bool, attempts: int, score: float, needed_help: bool) -> None:
    """Record the outcome of reading a card."""
    session = _open_session(learner_id)
    outcome = CompletionResult(success=success, attempts=attempts, match_score=score, needed_help=needed_help)
    progress = _run(lambda: record_card_completion(session, word, outcome))
    click.echo(
        f"'{word}': step {progress.learning_step}, next review in {progress.interval_days} day(s) "
        f"({progress.next_review_at:%Y-%m-%d %H:%M} UTC)"
    )


@cli.command("progress")
@click.argument("learner_id")
def progress(learner_id: str) -> None:
    """Show a learner's progress."""
    session = _open_session(learner_id)
    summary: dict[str, Any] = _run(lambda: get_progress_summary(session))
    click.echo(f"Learner: {summary['learner_id']}")
    click.echo(f"Lesson: {summary['current_lesson']}")
    click.echo(f"Cards completed: {summary['total_cards_completed']}")
    click.echo(f"Cards seen: {summary['cards_seen']} ({summary['learning']} learning, {summary['graduated']} graduated)")
    click.echo(f"Due now: {summary['due_now']}")
    click.echo(f"Phonemes introduced: {summary['phonemes_introduced']}")


def main() -> None:
    cli()
