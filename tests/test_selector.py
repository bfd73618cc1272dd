"""
Tests for get_next_card: the priority ladder, exclusion of the previous card,
learning-phase spacing and degraded behaviour when the store fails.
"""
import datetime
from typing import List

import pytest

from early_reader.errors import LearnerNotFoundError, StorageError
from early_reader.memory_store import InMemoryProgressStore
from early_reader.selector import get_card_queue, get_next_card
from early_reader.structured import CardProgress, Learner

from conftest import FROZEN_NOW, LEARNER, graduated, learning, make_session

DAY = datetime.timedelta(days=1)


async def _seed(store: InMemoryProgressStore, *rows: CardProgress, phonemes: str = "") -> None:
    for row in rows:
        await store.create_or_update_card_progress(row)
    for symbol in phonemes.split():
        await store.mark_phoneme_introduced(LEARNER, symbol)


@pytest.mark.asyncio
async def test_new_learner_gets_first_phoneme(session, store) -> None:
    card = await get_next_card(session)
    assert card is not None
    assert card.id == "sound-m"
    assert await store.get_introduced_phonemes(LEARNER) == {"m"}
    progress = await store.get_card_progress(LEARNER, "m")
    assert progress.learning_step == 0
    assert progress.last_seen_at == FROZEN_NOW
    assert session.new_cards_introduced == 1


@pytest.mark.asyncio
async def test_excluded_phoneme_is_not_reoffered(session, store) -> None:
    card = await get_next_card(session, exclude_word="m")
    assert card.plain_text == "a"
    assert await store.get_introduced_phonemes(LEARNER) == {"a"}


@pytest.mark.asyncio
async def test_empty_exclude_word_is_ignored(session) -> None:
    card = await get_next_card(session, exclude_word="")
    assert card.plain_text == "m"


@pytest.mark.asyncio
async def test_exhaustion_returns_none(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(store, learning("am", step=2))
    assert (await get_next_card(session, exclude_word="am")) is None
    assert (await get_next_card(session)).plain_text == "am"


@pytest.mark.asyncio
async def test_nothing_at_all_returns_none(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    assert await get_next_card(session) is None


@pytest.mark.asyncio
async def test_learning_card_waits_for_two_other_cards(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(store, learning("am", step=0, since=1))
    assert await get_next_card(session) is None

    await store.create_or_update_card_progress(learning("am", step=0, since=2))
    card = await get_next_card(session)
    assert card.plain_text == "am"
    assert (await store.get_card_progress(LEARNER, "am")).cards_since_last_seen == 0


@pytest.mark.asyncio
async def test_high_priority_review_beats_new_phoneme(session, store) -> None:
    await _seed(store, graduated("am"))
    card = await get_next_card(session)
    assert card.plain_text == "am"
    assert await store.get_introduced_phonemes(LEARNER) == set()


@pytest.mark.asyncio
async def test_new_phoneme_beats_learning_cards(session, store) -> None:
    await _seed(store, learning("ma", step=2))
    card = await get_next_card(session)
    assert card.plain_text == "m"


@pytest.mark.asyncio
async def test_most_overdue_review_first(session, store) -> None:
    await _seed(
        store,
        graduated("am", next_review_at=FROZEN_NOW - DAY),
        graduated("ma", next_review_at=FROZEN_NOW - 2 * DAY),
    )
    assert (await get_next_card(session)).plain_text == "ma"


@pytest.mark.asyncio
async def test_equal_overdue_weaker_card_first(session, store) -> None:
    due = FROZEN_NOW - DAY
    await _seed(
        store,
        graduated("am", next_review_at=due, ease_factor=2.5),
        graduated("ma", next_review_at=due, ease_factor=2.0),
    )
    assert (await get_next_card(session)).plain_text == "ma"


@pytest.mark.asyncio
async def test_reviews_not_yet_due_are_not_offered_as_reviews(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(
        store,
        graduated("am", next_review_at=FROZEN_NOW + DAY, successes=5),
        learning("ma", step=2),
    )
    assert (await get_next_card(session)).plain_text == "ma"


@pytest.mark.asyncio
async def test_learning_cards_before_medium_reviews(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(store, graduated("am", hint_used=True), learning("ma", step=2))
    assert (await get_next_card(session)).plain_text == "ma"
    assert (await get_next_card(session, exclude_word="ma")).plain_text == "am"


@pytest.mark.asyncio
async def test_learning_cards_ordered_by_step_then_wait(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(
        store,
        learning("am", step=1, since=5),
        learning("ma", step=0, since=2),
        learning("sam", step=0, since=4),
    )
    assert (await get_next_card(session)).plain_text == "sam"


@pytest.mark.asyncio
async def test_unlocked_word_introduced_when_phonemes_known(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(
        store,
        graduated("m", next_review_at=FROZEN_NOW + DAY),
        graduated("a", next_review_at=FROZEN_NOW + DAY),
        phonemes="m a",
    )
    card = await get_next_card(session)
    assert card.plain_text == "am"
    progress = await store.get_card_progress(LEARNER, "am")
    assert progress.learning_step == 0
    assert progress.attempts == 0


@pytest.mark.asyncio
async def test_word_needing_unknown_phoneme_stays_locked(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(store, phonemes="s a")
    assert await get_next_card(session) is None


@pytest.mark.asyncio
async def test_new_words_before_low_priority_reviews(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(store, graduated("am", last_quality=5, interval_days=5), phonemes="m a")
    first = await get_next_card(session)
    assert first.plain_text == "ma"
    second = await get_next_card(session, exclude_word="ma")
    assert second.plain_text == "am"


@pytest.mark.asyncio
async def test_practice_picks_weakest_card(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    later = FROZEN_NOW + 2 * DAY
    await _seed(
        store,
        graduated("am", next_review_at=later, successes=3),
        graduated("ma", next_review_at=later, successes=1, last_seen_at=FROZEN_NOW - DAY),
        graduated("sam", next_review_at=later, successes=1, last_seen_at=FROZEN_NOW - 3 * DAY),
    )
    assert (await get_next_card(session)).plain_text == "sam"
    assert (await get_next_card(session, exclude_word="sam")).plain_text == "ma"


@pytest.mark.asyncio
async def test_practice_prefers_never_seen(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    later = FROZEN_NOW + 2 * DAY
    await _seed(
        store,
        graduated("ma", next_review_at=later, successes=0, last_seen_at=FROZEN_NOW - 30 * DAY),
        graduated("mat", next_review_at=later, successes=0, last_seen_at=None),
    )
    assert (await get_next_card(session)).plain_text == "mat"


@pytest.mark.asyncio
async def test_showing_a_card_updates_learning_counters(store, catalog) -> None:
    session = make_session(store, catalog, max_new_cards_per_session=0)
    await _seed(store, learning("am", step=0, since=0), learning("ma", step=2, since=3), graduated("sam", next_review_at=FROZEN_NOW + DAY))
    card = await get_next_card(session)
    assert card.plain_text == "ma"

    am = await store.get_card_progress(LEARNER, "am")
    ma = await store.get_card_progress(LEARNER, "ma")
    sam = await store.get_card_progress(LEARNER, "sam")
    assert am.cards_since_last_seen == 1
    assert ma.cards_since_last_seen == 0
    assert ma.last_seen_at == FROZEN_NOW
    assert sam.cards_since_last_seen == 0
    assert session.last_word == "ma"


@pytest.mark.asyncio
async def test_stale_progress_rows_are_skipped(session, store) -> None:
    await _seed(
        store,
        graduated("zebra", next_review_at=FROZEN_NOW - 2 * DAY),
        graduated("am", next_review_at=FROZEN_NOW - DAY),
    )
    assert (await get_next_card(session)).plain_text == "am"


@pytest.mark.asyncio
async def test_unknown_learner_raises(store, catalog) -> None:
    session = make_session(store, catalog, learner_id="ghost")
    with pytest.raises(LearnerNotFoundError):
        await get_next_card(session)


class FlakyStore(InMemoryProgressStore):
    """Fails the named coroutines with StorageError."""

    def __init__(self, failing: List[str]) -> None:
        super().__init__()
        self.failing = set(failing)

    def __getattribute__(self, name: str):
        if name != "failing" and not name.startswith("_") and name in object.__getattribute__(self, "failing"):
            async def fail(*args, **kwargs):
                raise StorageError(f"{name} is down")
            return fail
        return super().__getattribute__(name)


async def _flaky(catalog, *failing: str, **settings):
    store = FlakyStore(list(failing))
    await store.create_learner(Learner(id=LEARNER))
    return store, make_session(store, catalog, **settings)


@pytest.mark.asyncio
async def test_failed_level_falls_through(catalog) -> None:
    store, session = await _flaky(catalog, "get_learning_cards", max_new_cards_per_session=0)
    await _seed(store, learning("ma", step=2), graduated("am", hint_used=True))
    assert (await get_next_card(session)).plain_text == "am"


@pytest.mark.asyncio
async def test_due_sweep_serves_reviews_when_buckets_fail(catalog) -> None:
    store, session = await _flaky(catalog, "get_due_review_cards_by_priority", max_new_cards_per_session=0)
    await _seed(store, graduated("am"))
    assert (await get_next_card(session)).plain_text == "am"


@pytest.mark.asyncio
async def test_bookkeeping_failure_keeps_card(catalog) -> None:
    store, session = await _flaky(catalog, "increment_cards_since_last_seen")
    card = await get_next_card(session)
    assert card.plain_text == "m"


@pytest.mark.asyncio
async def test_learner_lookup_failure_still_serves_reviews(catalog) -> None:
    store, session = await _flaky(catalog, "get_learner")
    await _seed(store, graduated("am"))
    assert (await get_next_card(session)).plain_text == "am"
    assert await store.get_introduced_phonemes(LEARNER) == set()
    assert session.new_cards_introduced == 0


@pytest.mark.asyncio
async def test_queue_without_learner_row_has_no_level(catalog) -> None:
    store, session = await _flaky(catalog, "get_learner")
    await _seed(store, graduated("am"))
    result = await get_card_queue(session)
    assert [card.plain_text for card in result.cards] == ["am"]
    assert result.has_more is False
    assert result.current_level is None


class FirstWriteFailsStore(InMemoryProgressStore):
    """The first progress write raises StorageError; later ones succeed."""

    writes_to_fail = 1

    async def create_or_update_card_progress(self, progress: CardProgress) -> CardProgress:
        if self.writes_to_fail:
            self.writes_to_fail -= 1
            raise StorageError("progress write timed out")
        return await super().create_or_update_card_progress(progress)


@pytest.mark.asyncio
async def test_failed_progress_write_leaves_phoneme_unintroduced(catalog) -> None:
    store = FirstWriteFailsStore()
    await store.create_learner(Learner(id=LEARNER))
    session = make_session(store, catalog)

    card = await get_next_card(session)
    assert card.plain_text == "a"
    assert await store.get_introduced_phonemes(LEARNER) == {"a"}
    assert await store.get_card_progress(LEARNER, "m") is None
    assert session.new_cards_introduced == 1

    card = await get_next_card(session, exclude_word="a")
    assert card.plain_text == "m"
    assert await store.get_introduced_phonemes(LEARNER) == {"m", "a"}
    assert await store.get_card_progress(LEARNER, "m") is not None
    assert session.new_cards_introduced == 2


@pytest.mark.asyncio
async def test_practice_skips_due_reviews(catalog) -> None:
    store, session = await _flaky(
        catalog, "get_due_review_cards_by_priority", "get_due_review_cards", max_new_cards_per_session=0
    )
    await _seed(
        store,
        graduated("am", successes=0),
        graduated("ma", next_review_at=FROZEN_NOW + DAY, successes=4),
    )
    assert (await get_next_card(session)).plain_text == "ma"
    assert await get_next_card(session, exclude_word="ma") is None
