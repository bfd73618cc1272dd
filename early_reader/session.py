"""
Per-learner session context.

Everything the selector needs travels in a LearnerSession instead of module
globals: the store, curriculum service, catalog, settings, a clock, and the
counters that only live for one sitting. One session serves one learner; the
lock serializes scheduling calls on it.
"""
from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass, field
from typing import Callable, Optional

from .catalog import Catalog
from .config import SchedulerSettings
from .curriculum import CurriculumService
from .store import CurriculumServiceProtocol, ProgressStore


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


@dataclass
class LearnerSession:
    learner_id: str
    store: ProgressStore
    catalog: Catalog
    curriculum: CurriculumServiceProtocol
    settings: SchedulerSettings = field(default_factory=SchedulerSettings)
    clock: Callable[[], datetime.datetime] = utc_now
    new_cards_introduced: int = 0
    last_word: Optional[str] = None
    known_lesson: Optional[int] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def open(
        cls,
        learner_id: str,
        store: ProgressStore,
        catalog: Catalog,
        settings: Optional[SchedulerSettings] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> "LearnerSession":
        """Build a session with the default CurriculumService over `store`."""
        return cls(
            learner_id=learner_id,
            store=store,
            catalog=catalog,
            curriculum=CurriculumService(catalog, store),
            settings=settings or SchedulerSettings(),
            clock=clock or utc_now,
        )

    @property
    def new_card_budget(self) -> int:
        return max(0, self.settings.max_new_cards_per_session - self.new_cards_introduced)
