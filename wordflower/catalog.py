from __future__ import annotations
import asyncio
import json
import logging
import random
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

import requests

from .dictionary import DATA_DIR, DictionaryService
from .errors import NotFoundError, TransportError
from .game_logic import DEFAULT_ANSWER_CAP, pangrams_of
from .schemas import LetterConfiguration, Puzzle, PuzzleSummary, ValidationVerdict

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = DATA_DIR / 'catalog.json'


def _puzzle_from_record(record: dict) -> Puzzle:
    # Precomputed counts are trusted as shipped
    configuration = LetterConfiguration(
        centerLetter=record['central'],
        outerLetters=record['letters'],
        wordCount=record.get('wordcount', len(record.get('words', []))),
        pangramCount=record.get('pangramcount', len(record.get('pangrams', []))),
    )
    return Puzzle(
        id=str(record['id']),
        configuration=configuration,
        answerWords=[w.lower() for w in record.get('words', [])],
        pangrams=[w.lower() for w in record.get('pangrams', [])],
    )


class PuzzleCatalog:
    def __init__(self, puzzles: Iterable[Puzzle]):
        self._puzzles: Dict[str, Puzzle] = {}
        for puzzle in puzzles:
            self._puzzles[puzzle.id] = puzzle
        if not self._puzzles:
            raise ValueError('Puzzle catalog cannot be empty')

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'PuzzleCatalog':
        path = Path(path or DEFAULT_CATALOG_PATH)
        with open(path, 'r', encoding='utf-8') as f:
            records = json.load(f)
        catalog = cls(_puzzle_from_record(r) for r in records)
        logger.info("Loaded %d puzzles from %s", len(catalog), path)
        return catalog

    @classmethod
    def from_dictionary(
        cls,
        dictionary: DictionaryService,
        configurations: Dict[str, LetterConfiguration],
        cap: int = DEFAULT_ANSWER_CAP,
    ) -> 'PuzzleCatalog':
        """Build puzzles live from a word list instead of precomputed data."""
        puzzles = []
        for puzzle_id, configuration in configurations.items():
            words = dictionary.answer_set(configuration, cap)
            pangrams = pangrams_of(words, configuration)
            counted = configuration.model_copy(update={'wordCount': len(words), 'pangramCount': len(pangrams)})
            puzzles.append(Puzzle(id=puzzle_id, configuration=counted, answerWords=words, pangrams=pangrams))
        return cls(puzzles)

    def __len__(self) -> int:
        return len(self._puzzles)

    def __contains__(self, puzzle_id: str) -> bool:
        return str(puzzle_id) in self._puzzles

    @property
    def ids(self) -> List[str]:
        return list(self._puzzles)

    def pick_puzzle(self, rng: Optional[random.Random] = None) -> Puzzle:
        rng = rng or random.Random()
        return self._puzzles[rng.choice(self.ids)]

    def lookup_puzzle(self, puzzle_id: str) -> Puzzle:
        puzzle = self._puzzles.get(str(puzzle_id).strip())
        if puzzle is None:
            raise NotFoundError('puzzle', str(puzzle_id))
        return puzzle

    def answer_words(self, puzzle_id: str) -> List[str]:
        return list(self.lookup_puzzle(puzzle_id).answerWords)

    def validate(self, puzzle_id: str, word: str) -> ValidationVerdict:
        puzzle = self.lookup_puzzle(puzzle_id)
        return ValidationVerdict(isValid=puzzle.has_word(word), isPangram=puzzle.is_pangram(word))

    @staticmethod
    def summary(puzzle: Puzzle) -> PuzzleSummary:
        c = puzzle.configuration
        return PuzzleSummary(
            gameId=puzzle.id,
            centerLetter=c.centerLetter,
            outerLetters=list(c.outerLetters),
            wordCount=c.wordCount,
            pangramCount=c.pangramCount,
        )


class PuzzleValidator(Protocol):
    async def validate(self, puzzle_id: str, word: str) -> ValidationVerdict: ...


class LocalValidator:
    """Validates against the in-process catalog held by the server."""

    def __init__(self, catalog: PuzzleCatalog):
        self.catalog = catalog

    async def validate(self, puzzle_id: str, word: str) -> ValidationVerdict:
        return self.catalog.validate(puzzle_id, word)


class HttpPuzzleValidator:
    """Validates against a remote server's `PUT /game` endpoint."""

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _validate_sync(self, puzzle_id: str, word: str) -> ValidationVerdict:
        try:
            resp = self.session.put(
                f"{self.base_url}/game",
                json={ 'gameId': puzzle_id, 'word': word },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"validation request failed: {e}") from e
        if resp.status_code == 404:
            raise NotFoundError('puzzle', puzzle_id)
        if resp.status_code >= 400:
            raise TransportError(f"validation request returned HTTP {resp.status_code}")
        try:
            return ValidationVerdict.model_validate(resp.json())
        except ValueError as e:
            raise TransportError(f"malformed validation response: {e}") from e

    async def validate(self, puzzle_id: str, word: str) -> ValidationVerdict:
        return await asyncio.to_thread(self._validate_sync, puzzle_id, word)
