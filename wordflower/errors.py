from __future__ import annotations


class WordflowerError(Exception):
    """Base class for recoverable errors raised by the game core."""


class NotFoundError(WordflowerError):
    # Unknown puzzle id or nothing to resume; callers fall back to a fresh puzzle
    def __init__(self, what: str, key: str):
        super().__init__(f"{what} not found: {key!r}")
        self.what = what
        self.key = key


class TransportError(WordflowerError):
    """A collaborator (validator, catalog, hint service) could not be reached."""


class ConflictError(WordflowerError):
    """A record with the same unique key already exists."""
