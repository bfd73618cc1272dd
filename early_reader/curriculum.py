"""
Curriculum service: phoneme introduction and lesson progression for a learner,
backed by the catalog's phoneme table and a ProgressStore.
"""
from __future__ import annotations

from typing import List

from loguru import logger

from .catalog import MAX_LESSON, Catalog
from .errors import LearnerNotFoundError
from .store import ProgressStore
from .structured import PhonemeEntry


class CurriculumService:
    def __init__(self, catalog: Catalog, store: ProgressStore) -> None:
        self.catalog = catalog
        self.store = store

    async def get_unintroduced_phonemes_for_lesson(self, learner_id: str, lesson: int) -> List[PhonemeEntry]:
        """Phonemes taught up to `lesson` that the learner has not met yet, earliest lesson first."""
        introduced = await self.store.get_introduced_phonemes(learner_id)
        pending = [
            entry for entry in self.catalog.get_phonemes_up_to_lesson(lesson)
            if entry.symbol.lower() not in introduced
        ]
        # sorted() is stable, so table order breaks ties within a lesson
        return sorted(pending, key=lambda entry: entry.lesson)

    async def mark_phoneme_as_introduced(self, learner_id: str, symbol: str) -> None:
        await self.store.mark_phoneme_introduced(learner_id, symbol.lower())
        logger.info(f"Introduced phoneme {symbol!r} to learner {learner_id}")

    async def is_lesson_complete(self, learner_id: str, lesson: int) -> bool:
        """True once every phoneme taught up to `lesson` has been introduced."""
        pending = await self.get_unintroduced_phonemes_for_lesson(learner_id, lesson)
        return not pending

    async def advance_lesson_if_ready(self, learner_id: str) -> int:
        """Move the learner one lesson forward when the current one is complete.

        Returns the learner's lesson after the check.
        """
        learner = await self.store.get_learner(learner_id)
        if learner is None:
            raise LearnerNotFoundError(learner_id)
        lesson = learner.current_lesson
        if lesson >= MAX_LESSON:
            return lesson
        if not await self.is_lesson_complete(learner_id, lesson):
            return lesson
        await self.store.update_learner_lesson(learner_id, lesson + 1)
        logger.info(f"Learner {learner_id} advanced to lesson {lesson + 1}")
        return lesson + 1
