from __future__ import annotations
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

JOKER = '?'
EMPTY_SLOT = ''

@dataclass(frozen=True)
class HebrewLetter:
    letter: str
    points: int
    count: int

HEBREW_LETTERS: Tuple[HebrewLetter, ...] = (
    HebrewLetter('א', 1, 12),
    HebrewLetter('ב', 3, 2),
    HebrewLetter('ג', 3, 3),
    HebrewLetter('ד', 2, 4),
    HebrewLetter('ה', 1, 9),
    HebrewLetter('ו', 1, 13),
    HebrewLetter('ז', 10, 1),
    HebrewLetter('ח', 4, 2),
    HebrewLetter('ט', 4, 2),
    HebrewLetter('י', 1, 12),
    HebrewLetter('כ', 5, 2),
    HebrewLetter('ל', 1, 4),
    HebrewLetter('מ', 3, 3),
    HebrewLetter('נ', 1, 6),
    HebrewLetter('ס', 1, 3),
    HebrewLetter('ע', 1, 6),
    HebrewLetter('פ', 8, 1),
    HebrewLetter('צ', 10, 1),
    HebrewLetter('ק', 5, 1),
    HebrewLetter('ר', 1, 6),
    HebrewLetter('ש', 4, 2),
    HebrewLetter('ת', 1, 6),
    HebrewLetter('ך', 5, 1),
    HebrewLetter('ם', 3, 2),
    HebrewLetter('ן', 1, 2),
    HebrewLetter('ף', 8, 1),
    HebrewLetter('ץ', 10, 1),
    HebrewLetter(JOKER, 0, 2),
)

LETTER_POINTS: Dict[str, int] = {l.letter: l.points for l in HEBREW_LETTERS}

FINAL_TO_MEDIAL: Dict[str, str] = {'ך': 'כ', 'ם': 'מ', 'ן': 'נ', 'ף': 'פ', 'ץ': 'צ'}
MEDIAL_TO_FINAL: Dict[str, str] = {v: k for k, v in FINAL_TO_MEDIAL.items()}

HEBREW_RANGE = ('א', 'ת')


def letter_points(letter: str) -> int:
    return LETTER_POINTS.get(letter, 0)


def is_hebrew_letter(ch: str) -> bool:
    return len(ch) == 1 and HEBREW_RANGE[0] <= ch <= HEBREW_RANGE[1]


def to_final_form(letter: str) -> str:
    return MEDIAL_TO_FINAL.get(letter, letter)


def to_medial_form(letter: str) -> str:
    return FINAL_TO_MEDIAL.get(letter, letter)


def normalize_word_variants(word: str) -> List[str]:
    """Spellings under which a word may appear in a word list.

    The literal spelling, every final form replaced by its medial form, and
    the literal spelling with its last letter turned into a final form.
    """
    if not word:
        return []
    variants = [word]
    regularized = ''.join(to_medial_form(ch) for ch in word)
    if regularized not in variants:
        variants.append(regularized)
    last = word[-1]
    if last in MEDIAL_TO_FINAL:
        with_final = word[:-1] + MEDIAL_TO_FINAL[last]
        if with_final not in variants:
            variants.append(with_final)
    return variants


def create_letter_bag(
    include_jokers: bool = True,
    include_final_forms: bool = True,
    bag_size_multiplier: float = 1.0,
    rng: Optional[random.Random] = None,
) -> List[str]:
    bag: List[str] = []
    for entry in HEBREW_LETTERS:
        if not include_jokers and entry.letter == JOKER:
            continue
        if not include_final_forms and entry.letter in FINAL_TO_MEDIAL:
            continue
        scaled = max(0, round(entry.count * bag_size_multiplier))
        bag.extend([entry.letter] * scaled)
    (rng or random.Random()).shuffle(bag)
    return bag


def draw_tiles(bag: List[str], count: int) -> Tuple[List[str], List[str]]:
    """Split `count` tiles off the front of the bag: (drawn, remaining)."""
    count = max(0, count)
    return list(bag[:count]), list(bag[count:])


def rack_points(rack: List[str]) -> int:
    return sum(letter_points(letter) for letter in rack if letter)
