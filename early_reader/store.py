"""
Collaborator contracts for the scheduling engine.

The engine never persists anything itself; it talks to a ProgressStore and a
curriculum service. Any coroutine here may raise StorageError.
"""
from __future__ import annotations

import datetime
from typing import List, Optional, Protocol, Set, runtime_checkable

from .structured import CardPriority, CardProgress, Learner, PhonemeEntry


@runtime_checkable
class ProgressStore(Protocol):
    async def get_learner(self, learner_id: str) -> Optional[Learner]: ...

    async def create_learner(self, learner: Learner) -> Learner: ...

    async def update_learner_lesson(self, learner_id: str, lesson: int) -> None: ...

    async def increment_learner_cards_completed(self, learner_id: str) -> None: ...

    async def get_due_review_cards_by_priority(
        self, learner_id: str, priority: CardPriority, now: Optional[datetime.datetime] = None
    ) -> List[CardProgress]:
        """Graduated cards due at `now` (default: current time) that fall in `priority`."""
        ...

    async def get_due_review_cards(
        self, learner_id: str, now: Optional[datetime.datetime] = None
    ) -> List[CardProgress]:
        """Every graduated card that is due now."""
        ...

    async def get_learning_cards(self, learner_id: str) -> List[CardProgress]:
        """Cards still in the learning phase (step 0-2)."""
        ...

    async def get_all_cards_for_learner(self, learner_id: str) -> List[CardProgress]: ...

    async def get_card_progress(self, learner_id: str, word: str) -> Optional[CardProgress]: ...

    async def create_or_update_card_progress(self, progress: CardProgress) -> CardProgress: ...

    async def get_introduced_phonemes(self, learner_id: str) -> Set[str]: ...

    async def mark_phoneme_introduced(self, learner_id: str, symbol: str) -> None: ...

    async def increment_cards_since_last_seen(self, learner_id: str, exclude_word: str) -> None:
        """Bump the counter of every learning card except `exclude_word`."""
        ...

    async def reset_cards_since_last_seen(self, learner_id: str, word: str) -> None: ...


@runtime_checkable
class CurriculumServiceProtocol(Protocol):
    async def get_unintroduced_phonemes_for_lesson(self, learner_id: str, lesson: int) -> List[PhonemeEntry]: ...

    async def mark_phoneme_as_introduced(self, learner_id: str, symbol: str) -> None: ...

    async def is_lesson_complete(self, learner_id: str, lesson: int) -> bool: ...

    async def advance_lesson_if_ready(self, learner_id: str) -> int: ...
