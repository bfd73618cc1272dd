import datetime
import math
from typing import NamedTuple, Optional

from .structured import CardPriority, CardProgress

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5


class SM2Result(NamedTuple):
    next_interval: int
    next_ease_factor: float
    next_repetitions: int
    next_review_at: datetime.datetime


def calculate_sm2(
    quality: int,
    ease_factor: float,
    interval_days: int,
    repetitions: int,
    now: Optional[datetime.datetime] = None,
) -> SM2Result:
    """
    SM-2 (SuperMemo 2) scheduling, as used for graduated reading cards.

    Quality grades (0-5):
      0 – could not read the card after three tries
      1 – needed help
      2 – minor struggle
      3 – correct with hesitation
      4 – correct with minor hesitation
      5 – perfect on the first try

    Algorithm:
      1. quality < 3 (lapse): repetitions reset to 0, interval 1 day,
         ease factor left unchanged.
      2. Otherwise the ease factor is updated first and floored at 1.3, then
           repetitions == 0 → 1 day
           repetitions == 1 → 3 days
           repetitions >= 2 → previous interval × updated ease (rounded half up)
      3. next_review_at = now + interval days.

    `now` defaults to the current UTC time.
    """
    quality = max(0, min(5, quality))
    if now is None:
        now = datetime.datetime.now(datetime.UTC)

    if quality < 3:
        new_ef = ease_factor
        new_reps = 0
        new_interval = 1
    else:
        new_ef = ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
        if new_ef < MIN_EASE_FACTOR:
            new_ef = MIN_EASE_FACTOR

        if repetitions == 0:
            new_interval = 1
        elif repetitions == 1:
            new_interval = 3
        else:
            new_interval = math.floor(interval_days * new_ef + 0.5)
        new_reps = repetitions + 1

    next_review = now + datetime.timedelta(days=new_interval)
    return SM2Result(new_interval, new_ef, new_reps, next_review)


def map_pronunciation_to_quality(match_score: float, attempts: int, needed_help: bool) -> int:
    """Translate a pronunciation match (0-1) plus attempt history into an SM-2 quality."""
    if needed_help:
        return 1
    if attempts >= 3 and match_score < 0.7:
        return 0
    if match_score >= 0.9:
        return 5 if attempts == 1 else 4
    if match_score >= 0.7:
        return 4 if attempts == 2 else 3
    return 2


def calculate_card_priority(hint_used: bool, quality: int, interval_days: int) -> CardPriority:
    """
    Review priority bucket:
      medium – a hint was used or the last grade was a lapse (needs practice)
      low    – fluent (quality >= 4) with an interval of 3+ days (mastered)
      high   – everything else
    """
    if hint_used or quality <= 2:
        return CardPriority.MEDIUM
    if quality >= 4 and interval_days >= 3:
        return CardPriority.LOW
    return CardPriority.HIGH


def card_priority(progress: CardProgress) -> CardPriority:
    # Graduated cards always carry a grade; ungraded rows need attention.
    if progress.last_quality is None:
        return CardPriority.MEDIUM if progress.hint_used else CardPriority.HIGH
    return calculate_card_priority(progress.hint_used, progress.last_quality, progress.interval_days)
