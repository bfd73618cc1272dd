"""
Card selection for one learner session.

get_next_card walks a fixed priority ladder and returns the first card any
level can offer that is not `exclude_word`:

  1. high-priority due reviews
  2. new phoneme introduction (capped per session)
  3. learning-phase cards whose spacing is satisfied
  4. medium-priority due reviews
  5. unlocked words and sentences the learner has never seen
  6. low-priority due reviews
  7. any remaining due review
  8. practice: the weakest card the learner has already seen

A storage failure in one level is logged and that level counts as empty.
If the learner row cannot be read, only new phoneme introduction is skipped.
"""
from __future__ import annotations

import dataclasses
import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from loguru import logger

from .errors import CardNotFoundError, LearnerNotFoundError, StorageError
from .learning import is_ready_to_show, schedule_attempt
from .scheduler import map_pronunciation_to_quality
from .session import LearnerSession
from .structured import Card, CardPriority, CardProgress, CardQueueResult, CompletionResult, Learner
from .unlock import get_unlocked_cards


async def _require_learner(session: LearnerSession) -> Learner:
    learner = await session.store.get_learner(session.learner_id)
    if learner is None:
        raise LearnerNotFoundError(session.learner_id)
    session.known_lesson = learner.current_lesson
    return learner


async def _lookup_learner(session: LearnerSession) -> Optional[Learner]:
    """The learner row, or None when the store cannot be read right now."""
    try:
        return await _require_learner(session)
    except StorageError as e:
        logger.warning(f"Learner lookup failed for {session.learner_id}; skipping new phonemes: {e}")
        return None


def _due_order(progress: CardProgress) -> tuple:
    return (progress.next_review_at, progress.ease_factor, progress.word)


def _learning_order(progress: CardProgress) -> tuple:
    return (progress.learning_step, -progress.cards_since_last_seen, progress.word)


def _practice_order(progress: CardProgress) -> tuple:
    seen = progress.last_seen_at
    return (progress.successes, seen is not None, seen or datetime.datetime.min.replace(tzinfo=datetime.UTC), progress.word)


def _first_card(
    session: LearnerSession, rows: Iterable[CardProgress], exclude_word: Optional[str]
) -> Optional[Card]:
    for progress in rows:
        if progress.word == exclude_word:
            logger.debug(f"Skipping {progress.word!r}: shown immediately before")
            continue
        card = session.catalog.find_by_text(progress.word)
        if card is None:
            logger.warning(f"Progress row for {progress.word!r} has no catalog card; skipping")
            continue
        return card
    return None


async def _due_reviews(
    session: LearnerSession, priority: Optional[CardPriority], exclude_word: Optional[str]
) -> Optional[Card]:
    now = session.clock()
    if priority is None:
        rows = await session.store.get_due_review_cards(session.learner_id, now)
    else:
        rows = await session.store.get_due_review_cards_by_priority(session.learner_id, priority, now)
    rows = sorted((p for p in rows if p.is_graduated and p.is_due(now)), key=_due_order)
    return _first_card(session, rows, exclude_word)


async def _ensure_progress(session: LearnerSession, word: str) -> None:
    existing = await session.store.get_card_progress(session.learner_id, word)
    if existing is None:
        await session.store.create_or_update_card_progress(
            CardProgress(learner_id=session.learner_id, word=word, next_review_at=session.clock())
        )


async def _introduce_phoneme(
    session: LearnerSession, learner: Optional[Learner], exclude_word: Optional[str]
) -> Optional[Card]:
    if learner is None:
        return None
    if session.new_card_budget <= 0:
        logger.debug(f"New card cap reached for learner {session.learner_id}")
        return None
    pending = await session.curriculum.get_unintroduced_phonemes_for_lesson(
        session.learner_id, learner.current_lesson
    )
    for entry in pending:
        card = session.catalog.phoneme_card(entry.symbol)
        if card is None:
            logger.warning(f"Phoneme {entry.symbol!r} has no card in the catalog; skipping")
            continue
        if card.plain_text == exclude_word:
            continue
        # The progress row goes first: a phoneme marked introduced without
        # one would never be offered again.
        try:
            await _ensure_progress(session, card.plain_text)
            await session.curriculum.mark_phoneme_as_introduced(session.learner_id, entry.symbol)
        except StorageError as e:
            logger.warning(f"Could not introduce phoneme {entry.symbol!r} for {session.learner_id}: {e}")
            continue
        session.new_cards_introduced += 1
        return card
    return None


async def _learning_cards(session: LearnerSession, exclude_word: Optional[str]) -> Optional[Card]:
    rows = await session.store.get_learning_cards(session.learner_id)
    spacing = session.settings.learning_min_intervening
    ready = []
    for progress in rows:
        if progress.is_graduated:
            continue
        if is_ready_to_show(progress, spacing):
            ready.append(progress)
        else:
            logger.debug(
                f"Learning card {progress.word!r} waits: {progress.cards_since_last_seen}/{spacing} cards since last seen"
            )
    return _first_card(session, sorted(ready, key=_learning_order), exclude_word)


async def _unlocked_new_cards(session: LearnerSession, exclude_word: Optional[str]) -> Optional[Card]:
    introduced = await session.store.get_introduced_phonemes(session.learner_id)
    seen = {p.word for p in await session.store.get_all_cards_for_learner(session.learner_id)}
    candidates = [
        card for card in get_unlocked_cards(session.catalog, introduced)
        if not card.is_sound and card.plain_text not in seen and card.plain_text != exclude_word
    ]
    if not candidates:
        return None
    card = sorted(candidates, key=lambda c: c.lesson)[0]
    await _ensure_progress(session, card.plain_text)
    return card


async def _practice(session: LearnerSession, exclude_word: Optional[str]) -> Optional[Card]:
    now = session.clock()
    rows = await session.store.get_all_cards_for_learner(session.learner_id)
    spacing = session.settings.learning_min_intervening
    eligible = [
        p for p in rows
        if (p.is_graduated and not p.is_due(now)) or (not p.is_graduated and is_ready_to_show(p, spacing))
    ]
    return _first_card(session, sorted(eligible, key=_practice_order), exclude_word)


async def _guarded(level: str, session: LearnerSession, step: Callable[[], Awaitable[Optional[Card]]]) -> Optional[Card]:
    try:
        return await step()
    except StorageError as e:
        logger.warning(f"{level} unavailable for learner {session.learner_id}: {e}")
        return None


async def _after_selection(session: LearnerSession, card: Card) -> None:
    word = card.plain_text
    store = session.store
    try:
        await store.increment_cards_since_last_seen(session.learner_id, word)
        await store.reset_cards_since_last_seen(session.learner_id, word)
        progress = await store.get_card_progress(session.learner_id, word)
        if progress is not None:
            await store.create_or_update_card_progress(dataclasses.replace(progress, last_seen_at=session.clock()))
    except StorageError as e:
        logger.warning(f"Could not update view counters after {word!r}: {e}")
    session.last_word = word


async def _select(session: LearnerSession, exclude_word: Optional[str]) -> Optional[Card]:
    exclude = exclude_word or None
    learner = await _lookup_learner(session)

    levels: List[tuple] = [
        ("high priority reviews", lambda: _due_reviews(session, CardPriority.HIGH, exclude)),
        ("new phoneme", lambda: _introduce_phoneme(session, learner, exclude)),
        ("learning cards", lambda: _learning_cards(session, exclude)),
        ("medium priority reviews", lambda: _due_reviews(session, CardPriority.MEDIUM, exclude)),
        ("unlocked new cards", lambda: _unlocked_new_cards(session, exclude)),
        ("low priority reviews", lambda: _due_reviews(session, CardPriority.LOW, exclude)),
        ("due reviews", lambda: _due_reviews(session, None, exclude)),
        ("practice", lambda: _practice(session, exclude)),
    ]
    for level, step in levels:
        card = await _guarded(level, session, step)
        if card is not None:
            logger.debug(f"Learner {session.learner_id}: {card.plain_text!r} from {level}")
            await _after_selection(session, card)
            return card

    logger.debug(f"Learner {session.learner_id}: nothing left to show (excluding {exclude!r})")
    return None


async def get_next_card(session: LearnerSession, exclude_word: Optional[str] = None) -> Optional[Card]:
    """The next card to show, never `exclude_word`. None means nothing is eligible."""
    async with session.lock:
        return await _select(session, exclude_word)


async def get_card_queue(session: LearnerSession) -> CardQueueResult:
    """Build up to `cards_per_session` cards, no card twice in a row.

    `current_level` is the last lesson read for the learner, None if it never was.
    """
    limit = session.settings.cards_per_session
    cards: List[Card] = []
    async with session.lock:
        previous = session.last_word
        for _ in range(limit):
            card = await _select(session, previous)
            if card is None:
                break
            cards.append(card)
            previous = card.plain_text
    logger.info(f"Built queue of {len(cards)} cards for learner {session.learner_id}")
    return CardQueueResult(cards=cards, has_more=len(cards) >= limit, current_level=session.known_lesson)


async def record_card_completion(session: LearnerSession, word: str, result: CompletionResult) -> CardProgress:
    """Apply one attempt's outcome to the card's schedule and the learner's totals."""
    async with session.lock:
        await _require_learner(session)
        if session.catalog.find_by_text(word) is None:
            raise CardNotFoundError(word)

        now = session.clock()
        store = session.store
        progress = await store.get_card_progress(session.learner_id, word)
        if progress is None:
            logger.warning(f"No progress for {word!r}; starting it at step 0")
            progress = CardProgress(learner_id=session.learner_id, word=word, next_review_at=now)

        quality = map_pronunciation_to_quality(result.match_score, result.attempts, result.needed_help)
        updated = schedule_attempt(progress, result.success, quality, now)
        updated = dataclasses.replace(
            updated,
            attempts=progress.attempts + 1,
            successes=progress.successes + (1 if result.success else 0),
            last_seen_at=now,
            hint_used=result.needed_help,
            last_quality=quality,
        )
        saved = await store.create_or_update_card_progress(updated)
        logger.debug(
            f"Recorded {word!r} for {session.learner_id}: quality={quality} step={saved.learning_step} "
            f"interval={saved.interval_days}d"
        )

        if result.success:
            await store.increment_learner_cards_completed(session.learner_id)
        if session.settings.auto_advance_lessons:
            await session.curriculum.advance_lesson_if_ready(session.learner_id)
        return saved


async def get_progress_summary(session: LearnerSession) -> Dict[str, Any]:
    """Counts describing where the learner stands."""
    learner = await _require_learner(session)
    now = session.clock()
    rows = await session.store.get_all_cards_for_learner(session.learner_id)
    introduced = await session.store.get_introduced_phonemes(session.learner_id)
    return {
        "learner_id": learner.id,
        "current_lesson": learner.current_lesson,
        "total_cards_completed": learner.total_cards_completed,
        "cards_seen": len(rows),
        "learning": sum(1 for p in rows if not p.is_graduated),
        "graduated": sum(1 for p in rows if p.is_graduated),
        "due_now": sum(1 for p in rows if p.is_graduated and p.is_due(now)),
        "phonemes_introduced": len(introduced),
    }
