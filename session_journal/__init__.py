"""session-journal: AI coding-assistant transcripts as Markdown journals.

Reads the JSONL transcripts written by coding assistants, rebuilds the
sessions they contain, picks out the ones that belong to the current
project, and keeps an editable Markdown journal of them in sync.

Layers:
- recall: transcript parsing and session discovery
- journal: titles, rendering, state and export
"""

__version__ = "0.1.0"

from .config import JournalConfig, default_config
from .errors import (
    AmbiguousSessionError,
    JournalError,
    SessionNotFoundError,
    StateError,
    TranscriptError,
    UsageError,
)
from .journal import ExportOptions, ExportResult, JournalExporter, JournalState
from .recall import ClaudeCodeParser, Message, ProjectMatcher, Session, SessionLocator

__all__ = [
    # Recall
    "ClaudeCodeParser",
    "Message",
    "ProjectMatcher",
    "Session",
    "SessionLocator",
    # Journal
    "ExportOptions",
    "ExportResult",
    "JournalExporter",
    "JournalState",
    # Config & errors
    "JournalConfig",
    "default_config",
    "JournalError",
    "TranscriptError",
    "StateError",
    "UsageError",
    "SessionNotFoundError",
    "AmbiguousSessionError",
]
