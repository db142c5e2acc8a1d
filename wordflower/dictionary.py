from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .game_logic import DEFAULT_ANSWER_CAP, derive_answer_set
from .schemas import LetterConfiguration

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / 'data'
DEFAULT_DICTIONARY_PATH = DATA_DIR / 'words.json'


def load_word_frequencies(path: Optional[Path] = None) -> List[Tuple[str, float]]:
    """Read a frequency-ranked word list: a JSON array of {"word", "count"} objects."""
    path = Path(path or DEFAULT_DICTIONARY_PATH)
    with open(path, 'r', encoding='utf-8') as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain an array of word entries")
    entries: List[Tuple[str, float]] = []
    for item in raw:
        word = str(item.get('word', '')).strip()
        if not word.isalpha():
            continue
        entries.append((word.lower(), float(item.get('count', 0))))
    logger.info("Loaded %d dictionary words from %s", len(entries), path)
    return entries


class DictionaryService:
    def __init__(self, entries: Optional[Sequence[Tuple[str, float]]] = None):
        # Dictionary order is kept; it breaks frequency ties
        self._entries: List[Tuple[str, float]] = list(entries if entries is not None else load_word_frequencies())
        self._frequency: Dict[str, float] = {}
        for word, score in self._entries:
            self._frequency.setdefault(word.lower(), score)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[Tuple[str, float]]:
        return list(self._entries)

    def is_known(self, word: str) -> bool:
        if not word:
            return False
        return word.lower() in self._frequency

    def frequency(self, word: str) -> Optional[float]:
        return self._frequency.get(word.lower()) if word else None

    def answer_set(self, configuration: LetterConfiguration, cap: int = DEFAULT_ANSWER_CAP) -> List[str]:
        return derive_answer_set(self._entries, configuration, cap)
