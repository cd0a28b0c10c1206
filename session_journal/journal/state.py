"""
Journal processing state.

State lives in <journal>/.state.json rather than in markers inside the
journal files, so journal content can never be mistaken for bookkeeping.
It records which files were exported (and which session each belongs to),
which later processing stages have run on them, and the history of
title-driven renames.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..errors import StateError

logger = logging.getLogger(__name__)

STATE_FILE = ".state.json"
CURRENT_VERSION = 1
MARKDOWN_EXT = ".md"

STAGE_EXPORTED = "exported"
STAGE_ENRICHED = "enriched"
STAGE_NORMALIZED = "normalized"
STAGE_FENCES_VERIFIED = "fences_verified"

VALID_STAGES = (STAGE_EXPORTED, STAGE_ENRICHED, STAGE_NORMALIZED, STAGE_FENCES_VERIFIED)


def _today() -> str:
    return datetime.date.today().isoformat()


class FileState(BaseModel):
    """Completion dates (YYYY-MM-DD) of each stage for one journal file."""

    exported: str | None = None
    enriched: str | None = None
    normalized: str | None = None
    fences_verified: str | None = None


class RenameRecord(BaseModel):
    """A journal file renamed after its session's title changed."""

    old: str
    new: str
    date: str


class JournalState(BaseModel):
    """
    Top-level state document.

    entries maps journal filename -> FileState. sessions maps session id ->
    the filenames exported for it, base file first.
    """

    version: int = CURRENT_VERSION
    entries: dict[str, FileState] = Field(default_factory=dict)
    sessions: dict[str, list[str]] = Field(default_factory=dict)
    renames: list[RenameRecord] = Field(default_factory=list)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, journal_dir: Path | str, filename: str = STATE_FILE) -> "JournalState":
        """
        Load state from the journal directory.

        A missing file yields an empty state. An unreadable or corrupt file
        also yields an empty state, with a warning, so export can proceed.
        """
        path = Path(journal_dir) / filename
        if not path.exists():
            return cls()

        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable journal state {path}: {e}")
            return cls()

    def save(self, journal_dir: Path | str, filename: str = STATE_FILE) -> None:
        """
        Write state atomically (temp file + rename).

        Raises:
            StateError: If the file cannot be written
        """
        journal_dir = Path(journal_dir)
        target_path = journal_dir / filename
        data = json.dumps(self._to_json(), indent=2, ensure_ascii=False) + "\n"

        try:
            fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=".state_", dir=journal_dir)
        except OSError as e:
            raise StateError(f"cannot write journal state {target_path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(temp_path, target_path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StateError(f"cannot write journal state {target_path}: {e}") from e

    def _to_json(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_none=True)
        data["entries"] = dict(sorted(data["entries"].items()))
        data["sessions"] = dict(sorted(data["sessions"].items()))
        return data

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def mark(self, filename: str, stage: str) -> bool:
        """Set stage to today's date. Returns False for an unknown stage."""
        if stage not in VALID_STAGES:
            return False
        entry = self.entries.setdefault(filename, FileState())
        setattr(entry, stage, _today())
        return True

    def mark_exported(self, filename: str, session_id: str | None = None) -> None:
        """Record an export, linking the file to its session when known."""
        self.mark(filename, STAGE_EXPORTED)
        if session_id:
            files = self.sessions.setdefault(session_id, [])
            if filename not in files:
                files.append(filename)
                files.sort(key=_part_sort_key)

    def mark_enriched(self, filename: str) -> None:
        self.mark(filename, STAGE_ENRICHED)

    def mark_normalized(self, filename: str) -> None:
        self.mark(filename, STAGE_NORMALIZED)

    def mark_fences_verified(self, filename: str) -> None:
        self.mark(filename, STAGE_FENCES_VERIFIED)

    def clear_enriched(self, filename: str) -> None:
        """Forget the enriched stage, e.g. after a forced re-export discarded edits."""
        entry = self.entries.get(filename)
        if entry is not None:
            entry.enriched = None

    def is_exported(self, filename: str) -> bool:
        return self._stage(filename, STAGE_EXPORTED)

    def is_enriched(self, filename: str) -> bool:
        return self._stage(filename, STAGE_ENRICHED)

    def is_normalized(self, filename: str) -> bool:
        return self._stage(filename, STAGE_NORMALIZED)

    def is_fences_verified(self, filename: str) -> bool:
        return self._stage(filename, STAGE_FENCES_VERIFIED)

    def _stage(self, filename: str, stage: str) -> bool:
        entry = self.entries.get(filename)
        return entry is not None and bool(getattr(entry, stage))

    # -------------------------------------------------------------------------
    # Files and sessions
    # -------------------------------------------------------------------------

    def rename(self, old: str, new: str) -> None:
        """
        Move bookkeeping from old to new, keeping every stage.

        Only state changes; the caller renames the file itself. Does nothing
        when old is unknown both as an entry and in a session mapping.
        """
        changed = False
        entry = self.entries.pop(old, None)
        if entry is not None:
            self.entries[new] = entry
            changed = True

        for files in self.sessions.values():
            if old in files:
                files[files.index(old)] = new
                files.sort(key=_part_sort_key)
                changed = True

        if changed:
            self.renames.append(RenameRecord(old=old, new=new, date=_today()))

    def files_for_session(self, session_id: str) -> list[str]:
        return list(self.sessions.get(session_id, []))

    def count_unenriched(self, journal_dir: Path | str) -> int:
        """Count Markdown files in journal_dir without an enriched date."""
        journal_dir = Path(journal_dir)
        if not journal_dir.is_dir():
            return 0
        return sum(
            1
            for path in journal_dir.iterdir()
            if path.is_file() and path.suffix == MARKDOWN_EXT and not self.is_enriched(path.name)
        )


def _part_sort_key(filename: str) -> tuple[str, int]:
    """Order base.md before base-p2.md before base-p10.md."""
    stem = filename[: -len(MARKDOWN_EXT)] if filename.endswith(MARKDOWN_EXT) else filename
    head, sep, tail = stem.rpartition("-p")
    if sep and tail.isdigit():
        return head, int(tail)
    return stem, 1


__all__ = [
    "STATE_FILE",
    "CURRENT_VERSION",
    "VALID_STAGES",
    "FileState",
    "RenameRecord",
    "JournalState",
]
