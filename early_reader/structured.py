from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Tuple


class CardKind(str, Enum):
    PHONEME = "phoneme"
    DIGRAPH = "digraph"
    WORD = "word"
    SENTENCE = "sentence"


class CardPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PhonemeEntry:
    symbol: str
    lesson: int
    is_digraph: bool = False
    example_word: Optional[str] = None


@dataclass(frozen=True)
class Card:
    """Immutable catalog card. Use one of the concrete subclasses."""

    kind: ClassVar[CardKind]

    id: str
    display_text: str
    plain_text: str
    phonemes: Tuple[str, ...]
    lesson: int
    asset_refs: Tuple[str, ...] = ()

    @property
    def is_sound(self) -> bool:
        """True for single-sound cards (phonemes and digraphs)."""
        return self.kind in (CardKind.PHONEME, CardKind.DIGRAPH)


@dataclass(frozen=True)
class PhonemeCard(Card):
    kind: ClassVar[CardKind] = CardKind.PHONEME


@dataclass(frozen=True)
class DigraphCard(Card):
    kind: ClassVar[CardKind] = CardKind.DIGRAPH


@dataclass(frozen=True)
class WordCard(Card):
    kind: ClassVar[CardKind] = CardKind.WORD


@dataclass(frozen=True)
class SentenceCard(Card):
    kind: ClassVar[CardKind] = CardKind.SENTENCE
    words: Tuple[str, ...] = ()


CARD_TYPES = {
    CardKind.PHONEME: PhonemeCard,
    CardKind.DIGRAPH: DigraphCard,
    CardKind.WORD: WordCard,
    CardKind.SENTENCE: SentenceCard,
}


@dataclass
class Learner:
    id: str
    current_lesson: int = 1
    total_cards_completed: int = 0
    name: Optional[str] = None


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


@dataclass
class CardProgress:
    """Scheduling state for one learner x card pair.

    learning_step runs 0..2 while the card is in the learning phase and is 3
    once it has graduated to SM-2 scheduling.
    """

    learner_id: str
    word: str
    ease_factor: float = 2.5
    interval_days: int = 0
    repetitions: int = 0
    next_review_at: datetime.datetime = field(default_factory=_utcnow)
    attempts: int = 0
    successes: int = 0
    last_seen_at: Optional[datetime.datetime] = None
    hint_used: bool = False
    last_quality: Optional[int] = None
    learning_step: int = 0
    cards_since_last_seen: int = 0

    @property
    def is_graduated(self) -> bool:
        return self.learning_step >= 3

    def is_due(self, now: datetime.datetime) -> bool:
        return self.next_review_at <= now


@dataclass(frozen=True)
class CompletionResult:
    success: bool
    attempts: int
    match_score: float
    needed_help: bool = False


@dataclass
class CardQueueResult:
    cards: List[Card]
    has_more: bool
    current_level: Optional[int]
