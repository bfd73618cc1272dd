"""
Curriculum catalog: the immutable phoneme table plus every card that can be
shown, loaded from CSV and validated once at startup.
"""
from __future__ import annotations

import csv
import functools
from importlib import resources
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from loguru import logger

from .errors import CatalogError
from .structured import CARD_TYPES, Card, CardKind, PhonemeEntry, SentenceCard, WordCard

MIN_LESSON = 1
MAX_LESSON = 100

DIGRAPHS = ("th", "sh", "ch", "wh", "ar", "er", "oo", "ea", "ai", "ou", "qu", "ck")


def segment_word_into_phonemes(word: str) -> List[str]:
    """Split a word into DISTAR sounds.

    Greedy left-to-right: the 'ing' trigraph first, then two-letter digraphs,
    then single letters. A final 'e' after a consonant sound is silent.
    """
    phonemes: List[str] = []
    text = word.lower()
    i = 0
    while i < len(text):
        if text.startswith("ing", i):
            phonemes.append("ing")
            i += 3
            continue
        pair = text[i:i + 2]
        if len(pair) == 2 and pair in DIGRAPHS:
            phonemes.append(pair)
            i += 2
            continue
        char = text[i]
        if char == "e" and i == len(text) - 1 and phonemes and phonemes[-1] not in "aeiou":
            i += 1
            continue
        phonemes.append(char)
        i += 1
    return phonemes


def _default_assets(card_id: str) -> Tuple[str, ...]:
    return (f"assets/en-US/{card_id}/image.webp", f"assets/en-US/{card_id}/audio.mp3")


class Catalog:
    """Ordered, validated collection of cards and the phoneme introduction table."""

    def __init__(self, phonemes: Sequence[PhonemeEntry], cards: Sequence[Card], source: Optional[str] = None) -> None:
        self._phonemes: Tuple[PhonemeEntry, ...] = tuple(phonemes)
        self._cards: Tuple[Card, ...] = tuple(cards)
        problems = _validate(self._phonemes, self._cards)
        if problems:
            raise CatalogError(problems, source=source)

        self._by_id: Dict[str, Card] = {card.id: card for card in self._cards}
        self._by_text: Dict[str, Card] = {card.plain_text: card for card in self._cards}
        self._sound_cards: Dict[str, Card] = {card.plain_text: card for card in self._cards if card.is_sound}
        logger.debug(f"Catalog loaded: {len(self._phonemes)} phonemes, {len(self._cards)} cards")

    @classmethod
    def from_csv(cls, phonemes_path: str, cards_path: str) -> "Catalog":
        problems: List[str] = []
        with open(phonemes_path, "r", encoding="utf-8-sig") as f:
            phonemes = _parse_phoneme_rows(csv.DictReader(f), problems)
        with open(cards_path, "r", encoding="utf-8-sig") as f:
            cards = _parse_card_rows(csv.DictReader(f), problems)
        if problems:
            raise CatalogError(problems, source=cards_path)
        return cls(phonemes, cards, source=cards_path)

    @property
    def phonemes(self) -> Tuple[PhonemeEntry, ...]:
        return self._phonemes

    @property
    def cards(self) -> Tuple[Card, ...]:
        return self._cards

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)

    def __len__(self) -> int:
        return len(self._cards)

    def get_card(self, card_id: str) -> Optional[Card]:
        return self._by_id.get(card_id)

    def find_by_text(self, text: str) -> Optional[Card]:
        return self._by_text.get(text)

    def phoneme_card(self, symbol: str) -> Optional[Card]:
        """The phoneme or digraph card that teaches `symbol`."""
        return self._sound_cards.get(symbol)

    def cards_for_lesson(self, lesson: int) -> List[Card]:
        return [card for card in self._cards if card.lesson == lesson]

    def cards_up_to_lesson(self, lesson: int) -> List[Card]:
        return [card for card in self._cards if card.lesson <= lesson]

    def get_phonemes_up_to_lesson(self, lesson: int) -> List[PhonemeEntry]:
        return [entry for entry in self._phonemes if entry.lesson <= lesson]

    def get_phonemes_for_lesson(self, lesson: int) -> List[PhonemeEntry]:
        return [entry for entry in self._phonemes if entry.lesson == lesson]

    @property
    def max_lesson(self) -> int:
        return max((entry.lesson for entry in self._phonemes), default=MIN_LESSON)


def _validate(phonemes: Sequence[PhonemeEntry], cards: Sequence[Card]) -> List[str]:
    problems: List[str] = []

    symbols = set()
    previous_lesson = MIN_LESSON
    for entry in phonemes:
        if entry.symbol in symbols:
            problems.append(f"duplicate phoneme symbol {entry.symbol!r}")
        symbols.add(entry.symbol)
        if not MIN_LESSON <= entry.lesson <= MAX_LESSON:
            problems.append(f"phoneme {entry.symbol!r} has lesson {entry.lesson} outside 1..100")
        if entry.lesson < previous_lesson:
            problems.append(f"phoneme table is not in lesson order at {entry.symbol!r}")
        previous_lesson = max(previous_lesson, entry.lesson)

    ids = set()
    texts = set()
    word_ids = {card.id for card in cards if card.kind is CardKind.WORD}
    for card in cards:
        label = card.id or "<missing id>"
        if not card.id:
            problems.append("card without an id")
        elif card.id in ids:
            problems.append(f"duplicate card id {card.id!r}")
        ids.add(card.id)

        if card.plain_text in texts:
            problems.append(f"duplicate card text {card.plain_text!r} ({label})")
        texts.add(card.plain_text)

        if not MIN_LESSON <= card.lesson <= MAX_LESSON:
            problems.append(f"card {label} has lesson {card.lesson} outside 1..100")
        if not card.phonemes:
            problems.append(f"card {label} has no phonemes")
        unknown = [p for p in card.phonemes if p not in symbols]
        if unknown:
            problems.append(f"card {label} uses unknown phonemes {unknown}")

        if card.is_sound:
            if card.phonemes != (card.plain_text,):
                problems.append(f"sound card {label} must have exactly the phoneme {card.plain_text!r}")
        elif isinstance(card, SentenceCard):
            if not card.words:
                problems.append(f"sentence {label} has no words")
            missing = [w for w in card.words if w not in word_ids]
            if missing:
                problems.append(f"sentence {label} references unknown words {missing}")

    return problems


def _parse_phoneme_rows(reader: "csv.DictReader[str]", problems: List[str]) -> List[PhonemeEntry]:
    entries: List[PhonemeEntry] = []
    for line, row in enumerate(reader, start=2):
        try:
            entries.append(PhonemeEntry(
                symbol=row["symbol"].strip(),
                lesson=int(row["lesson"]),
                is_digraph=row.get("is_digraph", "0").strip() == "1",
                example_word=(row.get("example_word") or "").strip() or None,
            ))
        except (KeyError, ValueError) as e:
            problems.append(f"phonemes line {line}: {e}")
    return entries


def _parse_card_rows(reader: "csv.DictReader[str]", problems: List[str]) -> List[Card]:
    rows = list(enumerate(reader, start=2))
    cards: List[Card] = []
    words: Dict[str, WordCard] = {}

    # Sentences may leave phonemes blank; they are taken from their words,
    # so word rows are built first and file order restored after.
    ordered = sorted(rows, key=lambda item: (item[1].get("kind") or "").strip() == CardKind.SENTENCE.value)
    built: Dict[int, Card] = {}
    for line, row in ordered:
        try:
            kind = CardKind((row.get("kind") or "").strip())
            card_id = (row.get("id") or "").strip()
            phonemes = tuple((row.get("phonemes") or "").split())
            word_refs = tuple((row.get("words") or "").split())
            if kind is CardKind.SENTENCE and not phonemes:
                phonemes = tuple(p for ref in word_refs if ref in words for p in words[ref].phonemes)
            assets = tuple((row.get("assets") or "").split()) or _default_assets(card_id)
            fields = dict(
                id=card_id,
                display_text=(row.get("display") or "").strip(),
                plain_text=(row.get("plain_text") or "").strip(),
                phonemes=phonemes,
                lesson=int(row["lesson"]),
                asset_refs=assets,
            )
            if kind is CardKind.SENTENCE:
                card: Card = SentenceCard(words=word_refs, **fields)
            else:
                card = CARD_TYPES[kind](**fields)
            if isinstance(card, WordCard):
                words[card.id] = card
            built[line] = card
        except (KeyError, ValueError) as e:
            problems.append(f"cards line {line}: {e}")

    for line, _row in rows:
        if line in built:
            cards.append(built[line])
    return cards


def _data_path(name: str) -> str:
    return str(resources.files("early_reader") / "data" / name)


@functools.lru_cache(maxsize=1)
def load_default_catalog() -> Catalog:
    """The bundled DISTAR curriculum (en-US)."""
    return Catalog.from_csv(_data_path("phonemes.csv"), _data_path("cards.csv"))
