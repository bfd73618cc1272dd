"""
Card-level prerequisite rule.

A sound card (phoneme or digraph) is unlocked once its own symbol has been
introduced. Words and sentences need every one of their phonemes introduced.
"""
from typing import AbstractSet, Iterable, List

from .structured import Card


def is_card_unlocked(card: Card, introduced: AbstractSet[str]) -> bool:
    if card.is_sound:
        return card.plain_text.lower() in introduced
    return all(p.lower() in introduced for p in card.phonemes)


def get_unlocked_cards(cards: Iterable[Card], introduced: Iterable[str]) -> List[Card]:
    """Cards the learner may be shown, in the order `cards` yields them.

    `cards` is usually a Catalog.
    """
    known = {symbol.lower() for symbol in introduced}
    if not known:
        return []
    return [card for card in cards if is_card_unlocked(card, known)]
