"""
Learning phase for brand-new cards.

A new card starts at step 0 and needs three successful readings (steps
0 → 1 → 2 → 3) before it graduates to SM-2 scheduling. While learning, the
card is spaced by other cards rather than by days: at steps 0 and 1 at least
`min_intervening` other cards must be shown before it comes back.
"""
import dataclasses
import datetime

from .scheduler import calculate_sm2
from .structured import CardProgress

GRADUATED_STEP = 3


def is_ready_to_show(progress: CardProgress, min_intervening: int = 2) -> bool:
    """Whether a learning card has waited long enough to be shown again."""
    if progress.learning_step >= GRADUATED_STEP:
        return True
    if progress.learning_step <= 1:
        return progress.cards_since_last_seen >= min_intervening
    return True


def apply_learning_result(
    progress: CardProgress, success: bool, quality: int, now: datetime.datetime
) -> CardProgress:
    """Advance (or hold) a learning-phase card after one attempt.

    Reaching step 3 hands the card to SM-2, which gives it a day-based
    interval. Below step 3 the card stays due immediately and only the
    intervening-card counter decides when it is shown again.
    """
    step = progress.learning_step
    if success:
        step = min(step + 1, GRADUATED_STEP)

    if step >= GRADUATED_STEP:
        result = calculate_sm2(quality, progress.ease_factor, progress.interval_days, progress.repetitions, now=now)
        return dataclasses.replace(
            progress,
            learning_step=GRADUATED_STEP,
            interval_days=result.next_interval,
            ease_factor=result.next_ease_factor,
            repetitions=result.next_repetitions,
            next_review_at=result.next_review_at,
        )

    return dataclasses.replace(progress, learning_step=step, interval_days=0, next_review_at=now)


def apply_review_result(progress: CardProgress, quality: int, now: datetime.datetime) -> CardProgress:
    """Reschedule a graduated card with SM-2."""
    result = calculate_sm2(quality, progress.ease_factor, progress.interval_days, progress.repetitions, now=now)
    return dataclasses.replace(
        progress,
        interval_days=result.next_interval,
        ease_factor=result.next_ease_factor,
        repetitions=result.next_repetitions,
        next_review_at=result.next_review_at,
    )


def schedule_attempt(progress: CardProgress, success: bool, quality: int, now: datetime.datetime) -> CardProgress:
    if progress.learning_step < GRADUATED_STEP:
        return apply_learning_result(progress, success, quality, now)
    return apply_review_result(progress, quality, now)
