from __future__ import annotations
import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Literal, Optional, Sequence, Set

from pydantic import ValidationError

from ..analytics import BackgroundAnalytics
from ..catalog import PuzzleCatalog, PuzzleValidator
from ..errors import NotFoundError, TransportError
from ..game_logic import MIN_WORD_LENGTH, is_admissible, is_pangram, shuffle_letters
from ..schemas import (
    GameMetadata,
    GameResult,
    HintWordEntry,
    Puzzle,
    RejectReason,
    SessionSnapshot,
    SessionState,
    SessionView,
    SubmitResult,
    TimerMode,
)
from ..storage import SNAPSHOT_KEY, CompletionStore, SnapshotStore
from .hints import HintCursor
from .timer import GameClock, TimerManager

logger = logging.getLogger(__name__)

Notifier = Callable[[str, dict], Awaitable[None]]
ResumeOutcome = Literal['resumed', 'completed', 'expired', 'corrupt', 'absent']

REJECT_MESSAGES: Dict[str, str] = {
    'too_short': 'Word too short',
    'already_found': 'Word already found',
    'invalid_composition': 'Word does not exist',
    'not_in_wordlist': 'Word not valid',
    'validation_unavailable': 'Could not check your word, please try again',
    'not_playing': 'Please start the game first!',
    'stale': 'The game changed before your word was checked',
}


@dataclass
class SessionSettings:
    timer_mode: TimerMode = 'countdown'
    time_budget: int = 1800
    snapshot_max_age: float = 24 * 3600
    sync_every: int = 5
    metadata_flush_every: int = 30

    @classmethod
    def from_config(cls, cfg) -> 'SessionSettings':
        return cls(
            timer_mode=cfg.TIMER_MODE,
            time_budget=cfg.TIME_BUDGET_SECONDS,
            snapshot_max_age=cfg.SNAPSHOT_MAX_AGE_HOURS * 3600,
            sync_every=cfg.SYNC_INTERVAL_SECONDS,
            metadata_flush_every=cfg.METADATA_FLUSH_SECONDS,
        )


class PuzzleSession:
    """One player's attempt at one puzzle.

    States run not-started -> playing -> ended and never go back; a new game
    is a new PuzzleSession. Every mutation runs under self._lock, which the
    timer tick shares, so a tick can never interleave with a submit.
    """

    def __init__(
        self,
        catalog: PuzzleCatalog,
        validator: PuzzleValidator,
        timer: TimerManager,
        *,
        snapshots: SnapshotStore,
        completions: CompletionStore,
        analytics: Optional[BackgroundAnalytics] = None,
        user_id: Optional[str] = None,
        device_id: Optional[str] = None,
        settings: Optional[SessionSettings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        notify: Optional[Notifier] = None,
    ):
        self.catalog = catalog
        self.validator = validator
        self.timer = timer
        self.snapshots = snapshots
        self.completions = completions
        self.analytics = analytics
        self.user_id = user_id
        self.device_id = device_id
        self.settings = settings or SessionSettings()
        self.rng = rng or random.Random()
        self.clock = clock
        self.notify = notify

        self.id = uuid.uuid4().hex
        self.state: SessionState = 'not-started'
        self.puzzle: Optional[Puzzle] = None
        self.found_words: List[str] = []
        self._found: set = set()
        self.current_word = ''
        self.outer_letters: List[str] = []
        self.created_at = self.clock()
        self.last_saved_at: Optional[float] = None
        self.read_only = False
        self.result: Optional[GameResult] = None
        self.hints: Optional[HintCursor] = None
        self._generation = 0
        self._ticks = 0
        self._pending_hint: Optional[tuple] = None
        self._lock = asyncio.Lock()

    # ---- derived state ----

    @property
    def snapshot_key(self) -> Optional[str]:
        # Without a user or device id there is nothing to scope a snapshot to
        if self.user_id:
            return f"{SNAPSHOT_KEY}:{self.user_id}"
        if self.device_id:
            return f"{SNAPSHOT_KEY}:device:{self.device_id}"
        return None

    @property
    def game_clock(self) -> Optional[GameClock]:
        return self.timer.get_clock(self.id)

    @property
    def timer_seconds(self) -> int:
        clock = self.game_clock
        if clock:
            return clock.seconds
        if self.result is not None:
            return self.result.totalTime
        return 0

    @property
    def elapsed_seconds(self) -> int:
        clock = self.game_clock
        return clock.elapsed if clock else 0

    @property
    def word_count(self) -> int:
        return self.puzzle.configuration.wordCount if self.puzzle else 0

    @property
    def completion_rate(self) -> float:
        if not self.word_count:
            return 0.0
        return len(self.found_words) / self.word_count * 100

    def is_found(self, word: str) -> bool:
        return word.lower() in self._found

    # ---- lifecycle ----

    async def start(self, puzzle_id: Optional[str] = None) -> bool:
        async with self._lock:
            if self.state != 'not-started':
                return False
            self.puzzle = await self._choose_puzzle(puzzle_id)
            self.found_words = []
            self._found = set()
            self.current_word = ''
            self.outer_letters = list(self.puzzle.configuration.outerLetters)
            self.created_at = self.clock()
            self.state = 'playing'
            self._generation += 1
            self._ticks = 0
            self.timer.create_clock(self.id, self.settings.timer_mode, self.settings.time_budget, self._on_tick)
            self.timer.start(self.id)
            await self._clear_snapshot()
            await self._save_snapshot()
            self._emit('game_started', {
                'puzzleId': self.puzzle.id,
                'centerLetter': self.puzzle.configuration.centerLetter,
                'outerLetters': self.outer_letters,
                'wordCount': self.word_count,
                'timerMode': self.settings.timer_mode,
            })
            logger.info("Session %s started puzzle %s for %s", self.id, self.puzzle.id, self.user_id or 'anonymous')
            return True

    async def _choose_puzzle(self, puzzle_id: Optional[str]) -> Puzzle:
        if puzzle_id is not None:
            try:
                puzzle = self.catalog.lookup_puzzle(puzzle_id)
            except NotFoundError as e:
                logger.warning("%s; picking a random puzzle instead", e)
            else:
                if not await self._already_completed(puzzle.id):
                    return puzzle
                logger.info("Puzzle %s already completed by %s; picking another", puzzle.id, self.user_id)
        # Prefer a puzzle this player has not finished yet
        done = await self._completed_ids()
        remaining = [pid for pid in self.catalog.ids if pid not in done]
        if remaining:
            return self.catalog.lookup_puzzle(self.rng.choice(remaining))
        return self.catalog.pick_puzzle(self.rng)

    async def _already_completed(self, puzzle_id: str) -> bool:
        if not self.user_id:
            return False
        status = await self._guard('completion lookup', self.completions.is_completed, self.user_id, puzzle_id)
        return bool(status and status.isCompleted)

    async def _completed_ids(self) -> Set[str]:
        if not self.user_id:
            return set()
        done = await self._guard('completion lookup', self.completions.completed_ids, self.user_id)
        return done or set()

    async def end(self) -> Optional[GameResult]:
        async with self._lock:
            if self.state != 'playing':
                return None
            return await self._finish('player')

    async def _finish(self, reason: str) -> GameResult:
        # Caller holds the lock and has checked state == 'playing'
        self.state = 'ended'
        self._generation += 1
        elapsed = self.elapsed_seconds
        self.timer.stop(self.id)
        self.result = GameResult(
            gameId=self.puzzle.id,
            foundWords=list(self.found_words),
            totalTime=elapsed,
            wordsFound=len(self.found_words),
            completionRate=round(self.completion_rate, 2),
            completedAt=self.clock(),
        )
        self._emit('game_ended', {
            'reason': reason,
            'wordsFound': len(self.found_words),
            'totalTime': elapsed,
            'completionRate': self.result.completionRate,
        })
        self._flush_metadata()
        if self.user_id:
            await self._guard('mark completed', self.completions.mark_completed, self.user_id, self.puzzle.id, self.result)
        await self._clear_snapshot()
        logger.info("Session %s ended (%s): %d words in %ds", self.id, reason, len(self.found_words), elapsed)
        await self._notify('session:ended', self.result.model_dump())
        return self.result

    async def resume(self) -> ResumeOutcome:
        async with self._lock:
            if self.state != 'not-started':
                return 'absent'
            raw = await self._load_snapshot()
            if raw is None:
                return 'absent'
            try:
                snapshot = SessionSnapshot.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("Discarding unreadable snapshot %s: %s", self.snapshot_key, e)
                await self._clear_snapshot()
                return 'corrupt'
            if self.clock() - snapshot.savedAt >= self.settings.snapshot_max_age:
                logger.info("Discarding stale snapshot for puzzle %s", snapshot.puzzleId)
                await self._clear_snapshot()
                return 'expired'
            try:
                puzzle = self.catalog.lookup_puzzle(snapshot.puzzleId)
            except NotFoundError as e:
                logger.warning("Snapshot refers to %s; discarding", e)
                await self._clear_snapshot()
                return 'absent'

            self.puzzle = puzzle
            self._generation += 1
            if self.user_id:
                status = await self._guard('completion lookup', self.completions.is_completed, self.user_id, puzzle.id)
                if status and status.isCompleted:
                    await self._clear_snapshot()
                    self.state = 'ended'
                    self.read_only = True
                    self.result = status.gameSessionData
                    self.found_words = list(self.result.foundWords) if self.result else []
                    self._found = { w.lower() for w in self.found_words }
                    self.outer_letters = list(puzzle.configuration.outerLetters)
                    logger.info("Puzzle %s already completed by %s; showing results", puzzle.id, self.user_id)
                    return 'completed'

            self._restore(snapshot)
            self._emit('game_resumed', { 'puzzleId': puzzle.id, 'wordsFound': len(self.found_words) })
            logger.info("Session %s resumed puzzle %s (%s)", self.id, puzzle.id, self.state)
            if self.state == 'playing':
                clock = self.game_clock
                if clock and clock.expired:
                    await self._finish('timeout')
            return 'resumed'

    def _restore(self, snapshot: SessionSnapshot):
        self.id = snapshot.sessionId
        self.found_words = [w.lower() for w in snapshot.foundWords]
        self._found = set(self.found_words)
        self.current_word = snapshot.currentWord
        self.outer_letters = list(snapshot.outerLetters or self.puzzle.configuration.outerLetters)
        self.created_at = snapshot.createdAt
        self.last_saved_at = snapshot.savedAt
        self.state = snapshot.gameState
        self._pending_hint = (snapshot.currentHintWordIndex, snapshot.hintLevel)
        if self.hints is not None:
            self.hints.session_id = self.id
            self.hints.restore(*self._pending_hint)
        budget = self.settings.time_budget if snapshot.timerMode == 'countdown' else 0
        clock = GameClock(mode=snapshot.timerMode, budget=max(budget, snapshot.timer), seconds=snapshot.timer)
        self.timer.attach_clock(self.id, clock, self._on_tick)
        if self.state == 'playing':
            self.timer.start(self.id)

    async def suspend(self):
        """Pause and persist; called when the client goes away."""
        async with self._lock:
            if self.state != 'playing':
                return
            self.timer.pause(self.id)
            await self._save_snapshot()
            self._flush_metadata()

    async def discard(self):
        """Drop this session entirely (explicit reset)."""
        async with self._lock:
            self._generation += 1
            self.timer.stop(self.id)
            await self._clear_snapshot()
            logger.info("Session %s discarded", self.id)

    # ---- timer ----

    def set_visible(self, visible: bool):
        self.timer.set_visible(self.id, visible)

    def resume_timer(self):
        if self.state == 'playing':
            self.timer.start(self.id)

    async def tick(self):
        await self._on_tick()

    async def _on_tick(self):
        async with self._lock:
            if self.state != 'playing':
                return
            clock = self.game_clock
            if not clock or not clock.advance():
                return
            self._ticks += 1
            await self._save_snapshot()
            if clock.expired:
                await self._finish('timeout')
                return
            if self.settings.metadata_flush_every and self._ticks % self.settings.metadata_flush_every == 0:
                self._flush_metadata()
            if self.settings.sync_every and self._ticks % self.settings.sync_every == 0:
                await self._notify('timer-sync', clock.snapshot().model_dump())

    # ---- buffer edits ----

    async def append_letter(self, ch: str) -> bool:
        async with self._lock:
            if self.state != 'playing' or not ch or len(ch) != 1:
                return False
            if ch.lower() not in self.puzzle.configuration.letters:
                return False
            self.current_word += ch.upper()
            await self._save_snapshot()
            return True

    async def backspace(self) -> bool:
        async with self._lock:
            if self.state != 'playing':
                return False
            self.current_word = self.current_word[:-1]
            await self._save_snapshot()
            return True

    async def clear_buffer(self) -> bool:
        async with self._lock:
            if self.state != 'playing':
                return False
            self.current_word = ''
            await self._save_snapshot()
            return True

    async def shuffle(self) -> Optional[List[str]]:
        async with self._lock:
            if self.state != 'playing':
                return None
            self.outer_letters = shuffle_letters(self.outer_letters, self.rng)
            await self._save_snapshot()
            return list(self.outer_letters)

    # ---- submit ----

    def _reject(self, reason: RejectReason, word: str) -> SubmitResult:
        return SubmitResult(accepted=False, word=word, reason=reason, message=REJECT_MESSAGES[reason])

    async def submit(self) -> SubmitResult:
        async with self._lock:
            word = self.current_word.lower()
            if self.state != 'playing':
                return self._reject('not_playing', word)
            if len(word) < MIN_WORD_LENGTH:
                return self._reject('too_short', word)
            if word in self._found:
                return self._reject('already_found', word)
            config = self.puzzle.configuration
            if not is_admissible(word, config.centerLetter, config.outerLetters):
                return self._reject('invalid_composition', word)
            generation = self._generation
            puzzle_id = self.puzzle.id

        # The authoritative check runs without the lock so ticks keep flowing
        try:
            verdict = await self.validator.validate(puzzle_id, word)
        except (TransportError, NotFoundError) as e:
            logger.warning("Validation of %r for puzzle %s failed: %s", word, puzzle_id, e)
            return self._reject('validation_unavailable', word)

        async with self._lock:
            if generation != self._generation or self.state != 'playing':
                logger.info("Dropping stale validation of %r for puzzle %s", word, puzzle_id)
                return self._reject('stale', word)
            if word in self._found:
                return self._reject('already_found', word)
            if not verdict.isValid:
                return self._reject('not_in_wordlist', word)

            self.found_words.append(word)
            self._found.add(word)
            # Letters typed while the check was pending stay in the buffer
            if self.current_word.lower() == word:
                self.current_word = ''
            pangram = verdict.isPangram or is_pangram(word, config.centerLetter, config.outerLetters)
            rate = self.completion_rate
            await self._save_snapshot()
            self._emit('word_found', {
                'word': word,
                'isPangram': pangram,
                'wordsFound': len(self.found_words),
                'completionRate': round(rate, 2),
                'timer': self.timer_seconds,
            })
            logger.info("Session %s found %r (%d/%d)", self.id, word, len(self.found_words), self.word_count)
            return SubmitResult(accepted=True, word=word, isPangram=pangram, completionRate=rate)

    # ---- hints ----

    def attach_hints(self, entries: Sequence[HintWordEntry]) -> HintCursor:
        self.hints = HintCursor(entries, self.is_found, analytics=self.analytics, session_id=self.id)
        if self._pending_hint:
            self.hints.restore(*self._pending_hint)
        return self.hints

    # ---- persistence ----

    def to_snapshot(self) -> SessionSnapshot:
        clock = self.game_clock
        return SessionSnapshot(
            sessionId=self.id,
            puzzleId=self.puzzle.id,
            userId=self.user_id,
            foundWords=list(self.found_words),
            currentWord=self.current_word,
            outerLetters=list(self.outer_letters),
            timer=clock.seconds if clock else 0,
            timerMode=clock.mode if clock else self.settings.timer_mode,
            gameState=self.state,
            currentHintWordIndex=self.hints.current_index if self.hints else 0,
            hintLevel=self.hints.hint_level if self.hints else 0,
            createdAt=self.created_at,
            savedAt=self.clock(),
        )

    async def _save_snapshot(self):
        if self.puzzle is None or self.state != 'playing' or self.snapshot_key is None:
            return
        snapshot = self.to_snapshot()
        await self._guard('save snapshot', self.snapshots.save, self.snapshot_key, snapshot.model_dump_json())
        self.last_saved_at = snapshot.savedAt

    async def _load_snapshot(self) -> Optional[str]:
        if self.snapshot_key is None:
            return None
        return await self._guard('load snapshot', self.snapshots.load, self.snapshot_key)

    async def _clear_snapshot(self):
        if self.snapshot_key is not None:
            await self._guard('clear snapshot', self.snapshots.clear, self.snapshot_key)

    def _flush_metadata(self):
        if self.analytics is None or self.puzzle is None:
            return
        self.analytics.upsert_metadata(self.id, GameMetadata(
            totalWords=self.word_count,
            wordsFound=len(self.found_words),
            totalTime=self.elapsed_seconds if self.state == 'playing' else (self.result.totalTime if self.result else 0),
            gameState=self.state,
        ))

    # ---- plumbing ----

    def _emit(self, event_type: str, payload: dict):
        if self.analytics is not None:
            self.analytics.record(self.id, event_type, payload)

    async def _notify(self, event: str, payload: dict):
        if self.notify is None:
            return
        try:
            await self.notify(event, payload)
        except Exception:
            logger.exception("Failed to deliver %s for session %s", event, self.id)

    @staticmethod
    async def _guard(label: str, fn, *args):
        # Stores are blocking; run them off the event loop.
        # Failures degrade to "nothing saved/loaded", never to a crash
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            logger.error("Storage %s failed: %s", label, e)
            return None

    def view(self) -> SessionView:
        config = self.puzzle.configuration if self.puzzle else None
        clock = self.game_clock
        return SessionView(
            sessionId=self.id,
            gameId=self.puzzle.id if self.puzzle else None,
            centerLetter=config.centerLetter if config else None,
            outerLetters=list(self.outer_letters),
            foundWords=list(self.found_words),
            currentWord=self.current_word,
            gameState=self.state,
            timer=clock.snapshot() if clock else None,
            wordCount=config.wordCount if config else 0,
            pangramCount=config.pangramCount if config else 0,
            readOnly=self.read_only,
        )
