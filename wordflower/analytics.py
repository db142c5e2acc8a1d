"""
Analytics sinks.

Sinks record game events, per-game metadata and end-of-game feedback. The
game core never talks to a sink directly: it goes through BackgroundAnalytics,
which hands each call to a worker thread and logs (never raises) failures.
"""

from __future__ import annotations
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Protocol

from pymongo.collection import Collection

from .schemas import AnalyticsEvent, Feedback, GameMetadata

logger = logging.getLogger(__name__)


class AnalyticsSink(Protocol):
    def record(self, session_id: str, event_type: str, payload: Dict[str, Any]) -> None: ...
    def upsert_metadata(self, session_id: str, metadata: GameMetadata) -> None: ...


class InMemoryAnalyticsSink:
    def __init__(self):
        self.events: Dict[str, List[AnalyticsEvent]] = {}
        self.metadata: Dict[str, GameMetadata] = {}
        self.feedback: Dict[tuple, Feedback] = {}

    def record(self, session_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        event = AnalyticsEvent(gameId=session_id, eventType=event_type, eventData=dict(payload), timestamp=time.time())
        self.events.setdefault(session_id, []).append(event)

    def upsert_metadata(self, session_id: str, metadata: GameMetadata) -> None:
        self.metadata[session_id] = metadata

    def record_feedback(self, user_id: str, game_id: str, feedback: Feedback) -> bool:
        self.feedback[(user_id, game_id)] = feedback
        return True

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        if session_id not in self.events and session_id not in self.metadata:
            return None
        meta = self.metadata.get(session_id)
        return {
            'gameId': session_id,
            'events': [e.model_dump() for e in self.events.get(session_id, [])],
            'gameMetadata': meta.model_dump(exclude_none=True) if meta else None,
        }

    def event_types(self, session_id: str) -> List[str]:
        return [e.eventType for e in self.events.get(session_id, [])]


class MongoAnalyticsSink:
    """One analytics document per game session, events appended in place."""

    def __init__(self, collection: Collection, feedback_collection: Optional[Collection] = None):
        self.collection = collection
        self.feedback_collection = feedback_collection if feedback_collection is not None else collection

    def record(self, session_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        now = time.time()
        event = AnalyticsEvent(gameId=session_id, eventType=event_type, eventData=dict(payload), timestamp=now)
        self.collection.update_one(
            { 'gameId': session_id },
            {
                '$push': { 'events': event.model_dump() },
                '$set': { 'updatedAt': now },
                '$setOnInsert': { 'createdAt': now },
            },
            upsert=True,
        )

    def upsert_metadata(self, session_id: str, metadata: GameMetadata) -> None:
        self.collection.update_one(
            { 'gameId': session_id },
            { '$set': { 'gameMetadata': metadata.model_dump(exclude_none=True), 'updatedAt': time.time() } },
            upsert=True,
        )

    def record_feedback(self, user_id: str, game_id: str, feedback: Feedback) -> bool:
        result = self.feedback_collection.update_one(
            { 'userId': user_id, 'gameSessions.gameId': game_id },
            { '$set': { 'gameSessions.$.feedback': { **feedback.model_dump(), 'submittedAt': time.time() } } },
        )
        return result.matched_count > 0

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        doc = self.collection.find_one({ 'gameId': session_id }, { '_id': 0 })
        return dict(doc) if doc else None


class BackgroundAnalytics:
    """Fire-and-forget front for a sink; calls never block or raise."""

    def __init__(self, sink: AnalyticsSink, workers: int = 2):
        self.sink = sink
        self.workers = max(workers, 1)
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix='analytics')

    def _submit(self, label: str, fn, *args) -> Optional[Future]:
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning("Dropped analytics %s: %s", label, e)
            return None
        future.add_done_callback(lambda f: self._log_failure(label, f))
        return future

    @staticmethod
    def _log_failure(label: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning("Analytics %s failed: %s", label, exc)

    def record(self, session_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None) -> Optional[Future]:
        return self._submit(event_type, self.sink.record, session_id, event_type, payload or {})

    def upsert_metadata(self, session_id: str, metadata: GameMetadata) -> Optional[Future]:
        return self._submit('metadata', self.sink.upsert_metadata, session_id, metadata)

    def flush(self) -> None:
        """Wait for queued calls; used on shutdown and in tests."""
        pending, self._executor = self._executor, ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix='analytics')
        pending.shutdown(wait=True)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
