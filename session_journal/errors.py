"""
Exception hierarchy for session-journal.

Everything raised on purpose by the package derives from JournalError so
callers (the CLI in particular) can catch a single type.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .recall.types import Session


class JournalError(Exception):
    """Base class for session-journal errors."""


class TranscriptError(JournalError):
    """Raised when a transcript file or line cannot be read."""

    def __init__(self, message: str, path: Path | str | None = None):
        self.path = Path(path) if path is not None else None
        if self.path is not None:
            message = f"{self.path}: {message}"
        super().__init__(message)


class StateError(JournalError):
    """Raised when the journal state file cannot be written."""


class UsageError(JournalError):
    """Raised for an invalid combination of export options."""


class SessionNotFoundError(JournalError):
    """Raised when a session query matches nothing."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"session not found: {query}")


class AmbiguousSessionError(JournalError):
    """Raised when a session query matches more than one session."""

    def __init__(self, query: str, candidates: list[Session]):
        self.query = query
        self.candidates = candidates
        super().__init__(f"ambiguous query {query!r}: {len(candidates)} sessions match")


__all__ = [
    "JournalError",
    "TranscriptError",
    "StateError",
    "UsageError",
    "SessionNotFoundError",
    "AmbiguousSessionError",
]
