"""
Lexical hint content.

A hint entry for a word carries a definition, a synonym, an example phrase with
the word blanked out and a first/last-letter pattern. Entries come from the
Merriam-Webster thesaurus API and are cached per lowercase word.
"""

from __future__ import annotations
import asyncio
import logging
import random
import re
from collections import OrderedDict
from typing import Any, List, Optional, Protocol, Sequence

import requests

from .schemas import HintWordEntry

logger = logging.getLogger(__name__)

ITALIC_MARKUP = re.compile(r'\{it\}(.*?)\{/it\}')
BLANK = '______'
DEFAULT_POOL_SIZE = 10


class HintContentProvider(Protocol):
    async def fetch(self, word: str) -> Optional[HintWordEntry]: ...


class HintCache:
    """Bounded LRU cache of hint entries keyed by lowercase word."""

    def __init__(self, max_entries: int = 1024):
        self.max_entries = max_entries
        self._entries: 'OrderedDict[str, HintWordEntry]' = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, word: str) -> bool:
        return word.lower() in self._entries

    def get(self, word: str) -> Optional[HintWordEntry]:
        key = word.lower()
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def put(self, word: str, entry: HintWordEntry) -> None:
        key = word.lower()
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


def fill_in_blank(word: str) -> str:
    """Pattern exposing only the first and last letter, e.g. GOAL -> G__L."""
    w = word.upper()
    if len(w) <= 2:
        return w
    return w[0] + '_' * (len(w) - 2) + w[-1]


def mask_phrase(phrase: str) -> str:
    # The API marks the headword in examples with {it}...{/it}
    return ITALIC_MARKUP.sub(BLANK, phrase)


def _usage_example(entry: dict) -> str:
    # Walks every sense of the first definition; the last sense with an
    # example wins, taking that sense's first example
    example = ''
    definition = (entry.get('def') or [{}])[0]
    for seq in definition.get('sseq') or []:
        for item in seq:
            if not isinstance(item, list) or len(item) != 2:
                continue
            kind, content = item
            if kind != 'sense' or not isinstance(content, dict):
                continue
            for dt_kind, dt_content in content.get('dt') or []:
                if dt_kind == 'vis' and isinstance(dt_content, list):
                    example = dt_content[0].get('t', '') if dt_content else ''
                    break
    return example


def parse_thesaurus_entry(word: str, data: Any) -> Optional[HintWordEntry]:
    """Turn a thesaurus API response into a hint entry.

    Returns None unless the first entry has a definition, a synonym and an
    example; suggestion lists (arrays of strings) also yield None.
    """
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    entry = data[0]
    definition = (entry.get('shortdef') or [None])[0]
    syns = (entry.get('meta') or {}).get('syns') or []
    synonym = syns[0][0] if syns and syns[0] else None
    example = _usage_example(entry)
    if not definition or not synonym or not example:
        return None
    return HintWordEntry(
        word=word.upper(),
        relatedWord=definition,
        synonym=synonym,
        phrase=mask_phrase(example),
        fillInBlank=fill_in_blank(word),
    )


class ThesaurusHintProvider:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = 'https://www.dictionaryapi.com/api/v3/references/thesaurus/json/',
        cache: Optional[HintCache] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.cache = cache if cache is not None else HintCache()
        self.timeout = timeout
        self.session = session or requests.Session()

    def _fetch_sync(self, word: str) -> Optional[HintWordEntry]:
        try:
            resp = self.session.get(
                f"{self.base_url}{word.lower()}",
                params={ 'key': self.api_key },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Hint lookup failed for %s: %s", word, e)
            return None
        return parse_thesaurus_entry(word, data)

    async def fetch(self, word: str) -> Optional[HintWordEntry]:
        cached = self.cache.get(word)
        if cached is not None:
            return cached
        if not self.api_key:
            logger.debug("No thesaurus key configured; skipping %s", word)
            return None
        entry = await asyncio.to_thread(self._fetch_sync, word)
        if entry is not None:
            self.cache.put(word, entry)
        return entry


class StaticHintProvider:
    """Serves hint entries from a fixed table (offline play and tests)."""

    def __init__(self, entries: Sequence[HintWordEntry] = ()):
        self._entries = { e.word.lower(): e for e in entries }

    async def fetch(self, word: str) -> Optional[HintWordEntry]:
        return self._entries.get(word.lower())


async def build_hint_pool(
    words: Sequence[str],
    provider: HintContentProvider,
    rng: Optional[random.Random] = None,
    size: int = DEFAULT_POOL_SIZE,
) -> List[HintWordEntry]:
    """Sample up to `size` answer words that have usable hint content."""
    rng = rng or random.Random()
    sample = list(words)
    rng.shuffle(sample)
    pool: List[HintWordEntry] = []
    for word in sample:
        if len(pool) >= size:
            break
        entry = await provider.fetch(word)
        if entry is not None:
            pool.append(entry)
    logger.info("Built hint pool of %d words from %d candidates", len(pool), len(sample))
    return pool
