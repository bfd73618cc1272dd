"""Environment-driven configuration for the scheduler and its SQLite store."""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass

from loguru import logger

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"
DB_PATH: str = os.environ.get("EARLY_READER_DB", "early_reader.db")

CARDS_PER_SESSION = 10
MAX_NEW_CARDS_PER_SESSION = 2
LEARNING_MIN_INTERVENING_CARDS = 2


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class SchedulerSettings:
    """Tunables for one learner session.

    cards_per_session         – size cap for get_card_queue
    max_new_cards_per_session – phoneme introductions allowed per session
    learning_min_intervening  – other cards that must be shown before a
                                step 0/1 learning card may reappear
    auto_advance_lessons      – move the learner forward after attempts
                                once every phoneme of the lesson is known
    """

    cards_per_session: int = CARDS_PER_SESSION
    max_new_cards_per_session: int = MAX_NEW_CARDS_PER_SESSION
    learning_min_intervening: int = LEARNING_MIN_INTERVENING_CARDS
    auto_advance_lessons: bool = True

    def __post_init__(self) -> None:
        if self.cards_per_session < 1:
            raise ValueError("cards_per_session must be at least 1")
        if self.max_new_cards_per_session < 0:
            raise ValueError("max_new_cards_per_session cannot be negative")
        if self.learning_min_intervening < 0:
            raise ValueError("learning_min_intervening cannot be negative")

    @classmethod
    def from_env(cls) -> "SchedulerSettings":
        return cls(
            cards_per_session=_env_int("EARLY_READER_CARDS_PER_SESSION", CARDS_PER_SESSION),
            max_new_cards_per_session=_env_int("EARLY_READER_MAX_NEW_CARDS", MAX_NEW_CARDS_PER_SESSION),
            learning_min_intervening=_env_int("EARLY_READER_LEARNING_SPACING", LEARNING_MIN_INTERVENING_CARDS),
            auto_advance_lessons=os.environ.get("EARLY_READER_AUTO_ADVANCE", "1") == "1",
        )


def configure_logging(debug: bool = DEBUG_MODE) -> None:
    """Send loguru output to stderr, at DEBUG level when debug mode is on."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")
