"""Dictionary-backed ProgressStore used by tests and demos."""
from __future__ import annotations

import copy
import datetime
from typing import Dict, List, Optional, Set, Tuple

from .errors import LearnerNotFoundError
from .learning import GRADUATED_STEP
from .scheduler import card_priority
from .structured import CardPriority, CardProgress, Learner


class InMemoryProgressStore:
    """Keeps everything in dicts. Records are copied on the way in and out."""

    def __init__(self) -> None:
        self._learners: Dict[str, Learner] = {}
        self._progress: Dict[Tuple[str, str], CardProgress] = {}
        self._introduced: Dict[str, Set[str]] = {}

    async def get_learner(self, learner_id: str) -> Optional[Learner]:
        learner = self._learners.get(learner_id)
        return copy.copy(learner) if learner else None

    async def create_learner(self, learner: Learner) -> Learner:
        existing = self._learners.get(learner.id)
        if existing is not None:
            return copy.copy(existing)
        self._learners[learner.id] = copy.copy(learner)
        return copy.copy(learner)

    async def update_learner_lesson(self, learner_id: str, lesson: int) -> None:
        self._require_learner(learner_id).current_lesson = lesson

    async def increment_learner_cards_completed(self, learner_id: str) -> None:
        self._require_learner(learner_id).total_cards_completed += 1

    async def get_due_review_cards_by_priority(
        self, learner_id: str, priority: CardPriority, now: Optional[datetime.datetime] = None
    ) -> List[CardProgress]:
        due = await self.get_due_review_cards(learner_id, now)
        return [p for p in due if card_priority(p) is priority]

    async def get_due_review_cards(
        self, learner_id: str, now: Optional[datetime.datetime] = None
    ) -> List[CardProgress]:
        if now is None:
            now = datetime.datetime.now(datetime.UTC)
        return [
            copy.copy(p) for p in self._for_learner(learner_id)
            if p.learning_step >= GRADUATED_STEP and p.is_due(now)
        ]

    async def get_learning_cards(self, learner_id: str) -> List[CardProgress]:
        return [copy.copy(p) for p in self._for_learner(learner_id) if p.learning_step < GRADUATED_STEP]

    async def get_all_cards_for_learner(self, learner_id: str) -> List[CardProgress]:
        return [copy.copy(p) for p in self._for_learner(learner_id)]

    async def get_card_progress(self, learner_id: str, word: str) -> Optional[CardProgress]:
        progress = self._progress.get((learner_id, word))
        return copy.copy(progress) if progress else None

    async def create_or_update_card_progress(self, progress: CardProgress) -> CardProgress:
        self._progress[(progress.learner_id, progress.word)] = copy.copy(progress)
        return copy.copy(progress)

    async def get_introduced_phonemes(self, learner_id: str) -> Set[str]:
        return set(self._introduced.get(learner_id, set()))

    async def mark_phoneme_introduced(self, learner_id: str, symbol: str) -> None:
        self._introduced.setdefault(learner_id, set()).add(symbol)

    async def increment_cards_since_last_seen(self, learner_id: str, exclude_word: str) -> None:
        for progress in self._for_learner(learner_id):
            if progress.learning_step < GRADUATED_STEP and progress.word != exclude_word:
                progress.cards_since_last_seen += 1

    async def reset_cards_since_last_seen(self, learner_id: str, word: str) -> None:
        progress = self._progress.get((learner_id, word))
        if progress is not None:
            progress.cards_since_last_seen = 0

    def _for_learner(self, learner_id: str) -> List[CardProgress]:
        return [p for (owner, _word), p in self._progress.items() if owner == learner_id]

    def _require_learner(self, learner_id: str) -> Learner:
        learner = self._learners.get(learner_id)
        if learner is None:
            raise LearnerNotFoundError(learner_id)
        return learner
