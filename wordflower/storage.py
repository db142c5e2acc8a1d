"""
Persistence ports for session snapshots, completion records, player ids and
signup requests.

Each port has an in-memory implementation (tests, single-process dev server)
and a production adapter: snapshots go to JSON files on local disk, completion
records, the player allow-list and signup requests live in MongoDB.
"""

from __future__ import annotations
import logging
import re
import time
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .errors import ConflictError
from .schemas import CompletionStatus, GameResult, SignupRequest

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = 'wordflower_game'


class SnapshotStore(Protocol):
    def save(self, key: str, data: str) -> None: ...
    def load(self, key: str) -> Optional[str]: ...
    def clear(self, key: str) -> None: ...


class InMemorySnapshotStore:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def save(self, key: str, data: str) -> None:
        self._data[key] = data

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def clear(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileSnapshotStore:
    """One file per key under `directory`; each save overwrites the file."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = re.sub(r'[^A-Za-z0-9_.-]', '_', key)
        return self.directory / f"{safe}.json"

    def save(self, key: str, data: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix('.tmp')
        tmp.write_text(data, encoding='utf-8')
        tmp.replace(path)

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None

    def clear(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class CompletionStore(Protocol):
    def is_completed(self, identity: str, puzzle_id: str) -> CompletionStatus: ...
    def completed_ids(self, identity: str) -> Set[str]: ...
    def mark_completed(self, identity: str, puzzle_id: str, result: GameResult) -> None: ...


class InMemoryCompletionStore:
    def __init__(self):
        self._results: Dict[Tuple[str, str], GameResult] = {}

    def is_completed(self, identity: str, puzzle_id: str) -> CompletionStatus:
        result = self._results.get((identity, str(puzzle_id)))
        return CompletionStatus(isCompleted=result is not None, gameSessionData=result)

    def completed_ids(self, identity: str) -> Set[str]:
        return { pid for (who, pid) in self._results if who == identity }

    def mark_completed(self, identity: str, puzzle_id: str, result: GameResult) -> None:
        # First completion wins; a finished puzzle is never replayed
        self._results.setdefault((identity, str(puzzle_id)), result)


class MongoCompletionStore:
    """Completion records kept on the player's document.

    Document shape: {userId, completedGameIds: [..], gameSessions: [{gameId, ...}]}
    """

    def __init__(self, collection: Collection):
        self.collection = collection

    def is_completed(self, identity: str, puzzle_id: str) -> CompletionStatus:
        doc = self.collection.find_one({ 'userId': identity, 'completedGameIds': str(puzzle_id) })
        if not doc:
            return CompletionStatus(isCompleted=False)
        session = next(
            (s for s in doc.get('gameSessions', []) if s.get('gameId') == str(puzzle_id)),
            None,
        )
        data = GameResult.model_validate(session) if session else None
        return CompletionStatus(isCompleted=True, gameSessionData=data)

    def completed_ids(self, identity: str) -> Set[str]:
        doc = self.collection.find_one({ 'userId': identity }, { 'completedGameIds': 1 })
        return { str(pid) for pid in (doc or {}).get('completedGameIds', []) }

    def mark_completed(self, identity: str, puzzle_id: str, result: GameResult) -> None:
        if self.is_completed(identity, puzzle_id).isCompleted:
            return
        self.collection.update_one(
            { 'userId': identity },
            {
                '$addToSet': { 'completedGameIds': str(puzzle_id) },
                '$push': { 'gameSessions': result.model_dump() },
                '$set': { 'updatedAt': time.time() },
            },
            upsert=True,
        )


class IdentityStore(Protocol):
    def is_valid_user(self, user_id: str) -> bool: ...


class InMemoryIdentityStore:
    def __init__(self, user_ids: Optional[Iterable[str]] = None):
        # None means any non-empty id is accepted (local development)
        self._users: Optional[Set[str]] = set(user_ids) if user_ids is not None else None

    def is_valid_user(self, user_id: str) -> bool:
        if not user_id or not user_id.strip():
            return False
        if self._users is None:
            return True
        return user_id.strip() in self._users


class MongoIdentityStore:
    def __init__(self, collection: Collection):
        self.collection = collection

    def is_valid_user(self, user_id: str) -> bool:
        if not user_id or not user_id.strip():
            return False
        try:
            return self.collection.find_one({ 'user': user_id.strip() }) is not None
        except PyMongoError as e:
            logger.error("Identity lookup failed for %s: %s", user_id, e)
            return False


class SignupStore(Protocol):
    def add(self, request: SignupRequest) -> str: ...
    def find(self, email: str) -> Optional[dict]: ...
    def list_all(self) -> List[dict]: ...


class InMemorySignupStore:
    def __init__(self):
        self._requests: Dict[str, dict] = {}

    def add(self, request: SignupRequest) -> str:
        if request.email in self._requests:
            raise ConflictError('A request with this email already exists')
        request_id = uuid.uuid4().hex
        self._requests[request.email] = { 'requestId': request_id, **request.model_dump() }
        return request_id

    def find(self, email: str) -> Optional[dict]:
        return self._requests.get(email.strip().lower())

    def list_all(self) -> List[dict]:
        return sorted(self._requests.values(), key=lambda r: r.get('submittedAt') or 0, reverse=True)


class MongoSignupStore:
    """Pending account requests, one document per email."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def add(self, request: SignupRequest) -> str:
        if self.collection.find_one({ 'email': request.email }) is not None:
            raise ConflictError('A request with this email already exists')
        result = self.collection.insert_one(request.model_dump())
        return str(result.inserted_id)

    def find(self, email: str) -> Optional[dict]:
        return self.collection.find_one({ 'email': email.strip().lower() }, { '_id': 0 })

    def list_all(self) -> List[dict]:
        return list(self.collection.find({}, { '_id': 0 }).sort('submittedAt', -1))
