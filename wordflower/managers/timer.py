from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from ..schemas import TimerMode, TimerState

logger = logging.getLogger(__name__)

TickHandler = Callable[[], Awaitable[None]]


@dataclass
class GameClock:
    mode: TimerMode
    budget: int  # starting seconds for countdown, unused for countup
    seconds: int
    paused: bool = True
    hidden: bool = False

    @classmethod
    def fresh(cls, mode: TimerMode, budget: int) -> 'GameClock':
        return cls(mode=mode, budget=budget, seconds=budget if mode == 'countdown' else 0)

    @property
    def running(self) -> bool:
        return not self.paused and not self.hidden

    @property
    def expired(self) -> bool:
        return self.mode == 'countdown' and self.seconds <= 0

    @property
    def elapsed(self) -> int:
        return self.budget - self.seconds if self.mode == 'countdown' else self.seconds

    def advance(self) -> bool:
        """Move one second; returns False when the clock is not running."""
        if not self.running or self.expired:
            return False
        if self.mode == 'countdown':
            self.seconds = max(0, self.seconds - 1)
        else:
            self.seconds += 1
        return True

    def snapshot(self) -> TimerState:
        return TimerState(mode=self.mode, seconds=max(0, self.seconds), isPaused=not self.running)


class TimerManager:
    """Owns one periodic tick task per session.

    The task only schedules ticks; the registered handler does the work under
    the session's own lock. With tick_interval 0 no task is started and ticks
    are driven by calling tick() directly.
    """

    def __init__(self, tick_interval: float = 1.0):
        self.tick_interval = tick_interval
        self._clocks: Dict[str, GameClock] = {}
        self._handlers: Dict[str, TickHandler] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def create_clock(self, session_id: str, mode: TimerMode, budget: int, on_tick: TickHandler) -> GameClock:
        self.stop(session_id)
        clock = GameClock.fresh(mode, budget)
        self._clocks[session_id] = clock
        self._handlers[session_id] = on_tick
        return clock

    def attach_clock(self, session_id: str, clock: GameClock, on_tick: TickHandler) -> GameClock:
        # Used on resume, where the clock comes from a snapshot
        self.stop(session_id)
        self._clocks[session_id] = clock
        self._handlers[session_id] = on_tick
        return clock

    def get_clock(self, session_id: str) -> Optional[GameClock]:
        return self._clocks.get(session_id)

    def start(self, session_id: str):
        clock = self._clocks.get(session_id)
        if not clock:
            return
        clock.paused = False
        self._ensure_task(session_id)

    def pause(self, session_id: str):
        clock = self._clocks.get(session_id)
        if clock:
            clock.paused = True

    def resume(self, session_id: str):
        self.start(session_id)

    def set_visible(self, session_id: str, visible: bool):
        clock = self._clocks.get(session_id)
        if clock:
            clock.hidden = not visible

    def stop(self, session_id: str):
        clock = self._clocks.pop(session_id, None)
        if clock:
            clock.paused = True
        self._handlers.pop(session_id, None)
        task = self._tasks.pop(session_id, None)
        if task and not task.done() and task is not _current_task():
            task.cancel()

    def _ensure_task(self, session_id: str):
        if not self.tick_interval or session_id in self._tasks:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; timer for %s is driven manually", session_id)
            return
        self._tasks[session_id] = loop.create_task(self._run(session_id))

    async def tick(self, session_id: str):
        handler = self._handlers.get(session_id)
        if handler:
            await handler()

    async def _run(self, session_id: str):
        try:
            while session_id in self._clocks:
                await asyncio.sleep(self.tick_interval)
                await self.tick(session_id)
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("Timer loop for %s crashed", session_id)
        finally:
            if self._tasks.get(session_id) is _current_task():
                self._tasks.pop(session_id, None)

    def get_state(self, session_id: str) -> Optional[TimerState]:
        clock = self._clocks.get(session_id)
        if not clock:
            return None
        return clock.snapshot()

    async def shutdown(self):
        tasks = list(self._tasks.values())
        for session_id in list(self._clocks):
            self.stop(session_id)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
