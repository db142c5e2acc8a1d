import asyncio
import random
from typing import Any, Dict, List

import pytest

from wordflower.catalog import LocalValidator, PuzzleCatalog
from wordflower.managers.session import PuzzleSession, SessionSettings
from wordflower.managers.timer import TimerManager
from wordflower.schemas import HintWordEntry
from wordflower.storage import InMemoryCompletionStore, InMemorySnapshotStore


def run(coro):
    return asyncio.run(coro)


class FakeClock:
    """Controllable wall clock (seconds since epoch)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingAnalytics:
    """Synchronous stand-in for BackgroundAnalytics."""

    def __init__(self):
        self.events: List[tuple] = []
        self.metadata: Dict[str, Any] = {}

    def record(self, session_id, event_type, payload=None):
        self.events.append((session_id, event_type, dict(payload or {})))

    def upsert_metadata(self, session_id, metadata):
        self.metadata[session_id] = metadata

    def types(self) -> List[str]:
        return [e[1] for e in self.events]

    def of_type(self, event_type: str) -> List[dict]:
        return [e[2] for e in self.events if e[1] == event_type]


class FakeSio:
    def __init__(self):
        self.emitted: List[tuple] = []

    async def emit(self, event, data=None, to=None, **kwargs):
        self.emitted.append((event, data, to))

    def events(self, name: str) -> List[Any]:
        return [data for event, data, _ in self.emitted if event == name]


@pytest.fixture
def catalog():
    return PuzzleCatalog.load()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def analytics():
    return RecordingAnalytics()


@pytest.fixture
def snapshots():
    return InMemorySnapshotStore()


@pytest.fixture
def completions():
    return InMemoryCompletionStore()


@pytest.fixture
def make_session(catalog, analytics, snapshots, completions, fake_clock):
    """Factory for sessions sharing one set of stores and a manual timer."""
    timer = TimerManager(tick_interval=0)

    def factory(**overrides) -> PuzzleSession:
        kwargs = dict(
            snapshots=snapshots,
            completions=completions,
            analytics=analytics,
            user_id='alice',
            settings=SessionSettings(),
            rng=random.Random(7),
            clock=fake_clock,
        )
        validator = overrides.pop('validator', LocalValidator(catalog))
        kwargs.update(overrides)
        return PuzzleSession(catalog, validator, timer, **kwargs)

    return factory


def hint_entry(word: str) -> HintWordEntry:
    w = word.upper()
    return HintWordEntry(
        word=w,
        relatedWord=f"related to {word}",
        synonym=f"synonym of {word}",
        phrase=f"an example with ______ ({word})",
        fillInBlank=w[0] + '_' * (len(w) - 2) + w[-1],
    )
