"""Shared fixtures: a small curriculum, an in-memory store and a frozen clock."""
import datetime
from typing import Callable, List

import pytest
import pytest_asyncio

from early_reader.catalog import Catalog
from early_reader.config import SchedulerSettings
from early_reader.memory_store import InMemoryProgressStore
from early_reader.session import LearnerSession
from early_reader.structured import (
    Card,
    CardProgress,
    DigraphCard,
    Learner,
    PhonemeCard,
    PhonemeEntry,
    SentenceCard,
    WordCard,
)

FROZEN_NOW = datetime.datetime(2024, 3, 1, 9, 0, tzinfo=datetime.UTC)
LEARNER = "learner-1"


def sound(symbol: str, lesson: int, digraph: bool = False) -> Card:
    cls = DigraphCard if digraph else PhonemeCard
    return cls(id=f"sound-{symbol}", display_text=symbol, plain_text=symbol, phonemes=(symbol,), lesson=lesson)


def word(text: str, lesson: int, phonemes: str) -> WordCard:
    return WordCard(id=f"word-{text}", display_text=text, plain_text=text, phonemes=tuple(phonemes.split()), lesson=lesson)


def build_test_catalog() -> Catalog:
    """m and a in lesson 1 so a new learner can read 'am' straight away."""
    phonemes = [
        PhonemeEntry("m", 1),
        PhonemeEntry("a", 1),
        PhonemeEntry("s", 2),
        PhonemeEntry("t", 4),
        PhonemeEntry("th", 6, is_digraph=True),
    ]
    cards: List[Card] = [
        sound("m", 1),
        sound("a", 1),
        sound("s", 2),
        sound("t", 4),
        sound("th", 6, digraph=True),
        word("am", 1, "a m"),
        word("ma", 1, "m a"),
        word("sam", 2, "s a m"),
        word("mat", 4, "m a t"),
        word("sat", 4, "s a t"),
        word("that", 6, "th a t"),
        SentenceCard(
            id="sentence-sam-sat",
            display_text="Sam sat.",
            plain_text="sam sat",
            phonemes=("s", "a", "m", "s", "a", "t"),
            lesson=4,
            words=("word-sam", "word-sat"),
        ),
    ]
    return Catalog(phonemes, cards)


@pytest.fixture
def catalog() -> Catalog:
    return build_test_catalog()


@pytest.fixture
def clock() -> Callable[[], datetime.datetime]:
    return lambda: FROZEN_NOW


@pytest.fixture
def settings() -> SchedulerSettings:
    return SchedulerSettings(auto_advance_lessons=False)


@pytest_asyncio.fixture
async def store() -> InMemoryProgressStore:
    store = InMemoryProgressStore()
    await store.create_learner(Learner(id=LEARNER))
    return store


@pytest.fixture
def session(store, catalog, settings, clock) -> LearnerSession:
    return LearnerSession.open(LEARNER, store, catalog, settings=settings, clock=clock)


def graduated(word_text: str, **fields) -> CardProgress:
    """A graduated progress row, due an hour before FROZEN_NOW unless overridden."""
    values = dict(
        learner_id=LEARNER,
        word=word_text,
        learning_step=3,
        interval_days=1,
        repetitions=1,
        last_quality=3,
        next_review_at=FROZEN_NOW - datetime.timedelta(hours=1),
        last_seen_at=FROZEN_NOW - datetime.timedelta(days=1),
        attempts=1,
        successes=1,
    )
    values.update(fields)
    return CardProgress(**values)


def learning(word_text: str, step: int = 0, since: int = 0, **fields) -> CardProgress:
    values = dict(
        learner_id=LEARNER,
        word=word_text,
        learning_step=step,
        cards_since_last_seen=since,
        next_review_at=FROZEN_NOW,
        last_seen_at=FROZEN_NOW - datetime.timedelta(minutes=5),
    )
    values.update(fields)
    return CardProgress(**values)


def make_session(store, catalog: Catalog, learner_id: str = LEARNER, **settings) -> LearnerSession:
    settings.setdefault("auto_advance_lessons", False)
    return LearnerSession.open(
        learner_id, store, catalog, settings=SchedulerSettings(**settings), clock=lambda: FROZEN_NOW
    )
