from __future__ import annotations
import logging
from typing import Callable, List, Optional, Sequence

from ..analytics import BackgroundAnalytics
from ..schemas import HintCursorState, HintView, HintWordEntry

logger = logging.getLogger(__name__)

MAX_HINT_LEVEL = 4
NO_PREVIOUS_MESSAGE = 'No previous hint words to go back to'

LEVEL_LABELS = {
    1: 'Related Word',
    2: 'Synonym',
    3: 'Phrase',
    4: 'Fill in the blank',
}


def hint_content(entry: HintWordEntry, level: int) -> Optional[HintView]:
    if level == 1:
        content = entry.relatedWord
    elif level == 2:
        content = entry.synonym
    elif level == 3:
        content = entry.phrase
    elif level == 4:
        content = entry.fillInBlank
    else:
        return None
    return HintView(level=level, label=LEVEL_LABELS[level], content=content)


class HintCursor:
    """Rotating pointer over a fixed sample of hint words.

    hint_level 0 means nothing revealed yet for the current word; moving to
    another word (skip or previous) lands on level 1.
    """

    def __init__(
        self,
        entries: Sequence[HintWordEntry],
        is_found: Callable[[str], bool],
        analytics: Optional[BackgroundAnalytics] = None,
        session_id: str = '',
    ):
        self.entries: List[HintWordEntry] = list(entries)
        self.is_found = is_found
        self.analytics = analytics
        self.session_id = session_id
        self.current_index = 0
        self.hint_level = 0
        self.visited: set = set()

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def current(self) -> Optional[HintWordEntry]:
        if not self.entries:
            return None
        return self.entries[self.current_index]

    def _found_at(self, index: int) -> bool:
        return self.is_found(self.entries[index].word)

    def _emit(self, event_type: str, **payload):
        if self.analytics is not None:
            self.analytics.record(self.session_id, event_type, payload)

    def request_next_hint(self) -> bool:
        entry = self.current
        if entry is None or self.hint_level >= MAX_HINT_LEVEL or self.is_found(entry.word):
            return False
        self.hint_level += 1
        self.visited.add(self.current_index)
        self._emit('hint_requested', word=entry.word, hintLevel=self.hint_level, index=self.current_index)
        return True

    def skip_to_next_word(self) -> bool:
        n = len(self.entries)
        if not n:
            return False
        start = self.current_index
        next_index = (start + 1) % n
        attempts = 0
        while self._found_at(next_index) and attempts < n:
            next_index = (next_index + 1) % n
            attempts += 1
        if attempts >= n:
            # Every candidate is found; stay put
            return False
        self.current_index = next_index
        self.hint_level = 1
        self._emit('hint_word_skipped', fromIndex=start, toIndex=next_index, word=self.entries[next_index].word)
        return True

    def previous_word(self) -> Optional[str]:
        """Step back to the nearest earlier visited, unfound word.

        Returns None on success, or an informational message when there is
        nowhere to go.
        """
        eligible = sorted(i for i in self.visited if i != self.current_index and not self._found_at(i))
        if not eligible:
            return NO_PREVIOUS_MESSAGE
        earlier = [i for i in eligible if i < self.current_index]
        target = earlier[-1] if earlier else eligible[-1]
        start = self.current_index
        self.current_index = target
        self.hint_level = 1
        self._emit('hint_previous_word', fromIndex=start, toIndex=target, word=self.entries[target].word)
        return None

    def current_hint(self) -> Optional[HintView]:
        entry = self.current
        if entry is None:
            return None
        return hint_content(entry, self.hint_level)

    def previous_hints(self) -> List[HintView]:
        entry = self.current
        if entry is None:
            return []
        return [hint_content(entry, level) for level in range(1, min(self.hint_level, MAX_HINT_LEVEL))]

    def restore(self, index: int, level: int):
        if self.entries and 0 <= index < len(self.entries):
            self.current_index = index
            self.hint_level = max(0, min(level, MAX_HINT_LEVEL))
            if self.hint_level:
                self.visited.add(index)

    def state(self) -> HintCursorState:
        entry = self.current
        return HintCursorState(
            currentIndex=self.current_index,
            hintLevel=self.hint_level,
            visitedIndices=sorted(self.visited),
            isWordFound=bool(entry and self.is_found(entry.word)),
            current=self.current_hint(),
            previous=self.previous_hints(),
        )
