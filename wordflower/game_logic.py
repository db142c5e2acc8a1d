from __future__ import annotations
import random
from typing import Iterable, List, Sequence, Tuple

from .schemas import LetterConfiguration

MIN_WORD_LENGTH = 4
DEFAULT_ANSWER_CAP = 60


def _letter_set(center_letter: str, outer_letters: Iterable[str]) -> set:
    return {center_letter.lower(), *(l.lower() for l in outer_letters)}


def is_admissible(word: str, center_letter: str, outer_letters: Iterable[str]) -> bool:
    """Return True if `word` can be spelled with the puzzle letters.

    Letters may be reused any number of times. The word must contain the
    center letter and be at least MIN_WORD_LENGTH long.
    """
    if not word or len(word) < MIN_WORD_LENGTH:
        return False
    w = word.lower()
    center = center_letter.lower()
    if center not in w:
        return False
    allowed = _letter_set(center_letter, outer_letters)
    return all(ch in allowed for ch in w)


def is_pangram(word: str, center_letter: str, outer_letters: Iterable[str]) -> bool:
    """A pangram uses every one of the seven letters at least once."""
    if not word:
        return False
    return set(word.lower()) == _letter_set(center_letter, outer_letters)


def derive_answer_set(
    dictionary: Sequence[Tuple[str, float]],
    configuration: LetterConfiguration,
    cap: int = DEFAULT_ANSWER_CAP,
) -> List[str]:
    """Legal words of a configuration, most frequent first, at most `cap`.

    `dictionary` is a sequence of (word, frequency) pairs. Ties keep their
    dictionary order (sorted() is stable); repeated words keep the first
    occurrence.
    """
    center = configuration.centerLetter
    outer = configuration.outerLetters
    seen: set = set()
    candidates: List[Tuple[str, float]] = []
    for word, score in dictionary:
        w = word.strip().lower()
        if w in seen or not is_admissible(w, center, outer):
            continue
        seen.add(w)
        candidates.append((w, score))
    ranked = sorted(candidates, key=lambda entry: entry[1], reverse=True)
    return [w for w, _ in ranked[:max(cap, 0)]]


def pangrams_of(words: Iterable[str], configuration: LetterConfiguration) -> List[str]:
    return [w for w in words if is_pangram(w, configuration.centerLetter, configuration.outerLetters)]


def shuffle_letters(letters: Sequence[str], rng: random.Random) -> List[str]:
    """Fisher-Yates shuffle returning a new list; membership never changes."""
    result = list(letters)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result
