from __future__ import annotations
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..analytics import BackgroundAnalytics
from ..catalog import PuzzleCatalog, PuzzleValidator
from ..hint_content import DEFAULT_POOL_SIZE, HintContentProvider, build_hint_pool
from ..storage import CompletionStore, IdentityStore, InMemorySignupStore, SignupStore, SnapshotStore
from .session import PuzzleSession, ResumeOutcome, SessionSettings
from .timer import TimerManager

logger = logging.getLogger(__name__)


@dataclass
class GameServices:
    catalog: PuzzleCatalog
    validator: PuzzleValidator
    snapshots: SnapshotStore
    completions: CompletionStore
    identities: IdentityStore
    sink: Any
    analytics: BackgroundAnalytics
    hint_provider: HintContentProvider
    timer: TimerManager
    settings: SessionSettings = field(default_factory=SessionSettings)
    hint_pool_size: int = DEFAULT_POOL_SIZE
    rng: random.Random = field(default_factory=random.Random)
    signups: SignupStore = field(default_factory=InMemorySignupStore)


class SessionManager:
    """Tracks the live PuzzleSession of each connected client."""

    def __init__(self, sio, services: GameServices):
        self.sio = sio
        self.services = services
        self.sessions: Dict[str, PuzzleSession] = {}
        self.user_ids: Dict[str, Optional[str]] = {}
        self.device_ids: Dict[str, Optional[str]] = {}

    def bind_user(self, sid: str, user_id: Optional[str], device_id: Optional[str] = None):
        """Remember who is behind `sid`; anonymous clients are keyed by device."""
        self.user_ids[sid] = user_id
        self.device_ids[sid] = device_id

    def _notifier(self, sid: str):
        async def notify(event: str, payload: dict):
            await self.sio.emit(event, payload, to=sid)
        return notify

    def _new_session(self, sid: str) -> PuzzleSession:
        s = self.services
        session = PuzzleSession(
            s.catalog,
            s.validator,
            s.timer,
            snapshots=s.snapshots,
            completions=s.completions,
            analytics=s.analytics,
            user_id=self.user_ids.get(sid),
            device_id=self.device_ids.get(sid),
            settings=s.settings,
            rng=random.Random(s.rng.random()),
            notify=self._notifier(sid),
        )
        self.sessions[sid] = session
        return session

    def get(self, sid: str) -> Optional[PuzzleSession]:
        return self.sessions.get(sid)

    def get_or_create(self, sid: str) -> PuzzleSession:
        session = self.sessions.get(sid)
        if session is None:
            session = self._new_session(sid)
        return session

    async def start(self, sid: str, puzzle_id: Optional[str] = None) -> PuzzleSession:
        session = self.sessions.get(sid)
        if session is not None and session.state != 'not-started':
            # A new game is always a new session instance
            await session.discard()
            session = None
        session = session or self._new_session(sid)
        await session.start(puzzle_id)
        await self.load_hints(session)
        return session

    async def resume(self, sid: str) -> tuple[PuzzleSession, ResumeOutcome]:
        session = self.sessions.get(sid)
        if session is not None and session.state == 'playing':
            # Same process still holds it (reconnect); just restart the clock
            session.resume_timer()
            return session, 'resumed'
        session = self._new_session(sid)
        outcome = await session.resume()
        if outcome == 'resumed':
            await self.load_hints(session)
        elif outcome != 'completed':
            self.sessions.pop(sid, None)
        return session, outcome

    async def reset(self, sid: str):
        session = self.sessions.pop(sid, None)
        if session is not None:
            await session.discard()

    async def load_hints(self, session: PuzzleSession):
        if session.puzzle is None:
            return
        # Seeded by session so a resumed session samples the same words
        pool = await build_hint_pool(
            session.puzzle.answerWords,
            self.services.hint_provider,
            random.Random(f"{session.id}:{session.puzzle.id}"),
            self.services.hint_pool_size,
        )
        session.attach_hints(pool)

    async def disconnect(self, sid: str):
        session = self.sessions.get(sid)
        if session is not None:
            await session.suspend()
            self.services.timer.stop(session.id)
        self.user_ids.pop(sid, None)
        self.device_ids.pop(sid, None)
        # Keep ended sessions out of memory; playing ones live on in the snapshot
        self.sessions.pop(sid, None)
