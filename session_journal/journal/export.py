"""
Export sessions to Markdown journal files.

Implements the sync between reconstructed sessions and the journal
directory:

- each session maps to one base file plus -pN continuation pages
- a session already exported under another title is renamed, not duplicated
- unforced re-exports keep the existing YAML front matter byte-for-byte
- every page is rendered in memory and written atomically
- journal state is saved once, at the end of a run

Usage:
    exporter = JournalExporter(journal_dir, ExportOptions(all=True))
    result = exporter.run(sessions)
"""

from __future__ import annotations

import logging
import os
import re
import sys
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, TextIO

from ..errors import AmbiguousSessionError, SessionNotFoundError, StateError, UsageError
from ..recall.types import Message, Session
from .frontmatter import extract_frontmatter, frontmatter_field, parse_frontmatter, with_frontmatter
from .render import (
    DETAILS_THRESHOLD,
    MARKDOWN_EXT,
    format_journal_entry_part,
    format_journal_filename,
    part_filename,
    sanitize_utf8,
)
from .slug import SHORT_ID_LEN, title_slug
from .state import STATE_FILE, JournalState

logger = logging.getLogger(__name__)

MAX_MESSAGES_PER_PART = 200
JOURNAL_FILE_MODE = 0o644

# Generated front matter keys whose values change as a session grows
GROWING_FRONTMATTER_KEYS = ("tokens_in", "tokens_out")

_PART_SUFFIX = re.compile(r"^(?P<base>.+)-p(?P<part>\d+)$")

ConfirmFn = Callable[[str], bool]


class ExportAction(str, Enum):
    """What happens to one journal file."""

    NEW = "new"
    REGENERATE = "regenerate"
    SKIP = "skip"


@dataclass
class ExportOptions:
    """Flags controlling an export run."""

    all: bool = False
    all_projects: bool = False
    force: bool = False
    regenerate: bool = False
    yes: bool = False
    dry_run: bool = False


@dataclass
class RenameOp:
    """One journal file to move to its new title-based name."""

    session_id: str
    old: str
    new: str


@dataclass
class FileAction:
    """One page of one session, and what to do with it."""

    session: Session
    filename: str
    base_name: str
    title: str
    part: int
    total_parts: int
    start_idx: int
    messages: list[Message]
    action: ExportAction
    retitled: bool = False


@dataclass
class ExportPlan:
    """Everything an export run will do, computed before anything is written."""

    renames: list[RenameOp] = field(default_factory=list)
    actions: list[FileAction] = field(default_factory=list)

    def count(self, action: ExportAction) -> int:
        return sum(1 for a in self.actions if a.action == action)

    @property
    def new_count(self) -> int:
        return self.count(ExportAction.NEW)

    @property
    def regen_count(self) -> int:
        return self.count(ExportAction.REGENERATE)

    @property
    def skip_count(self) -> int:
        return self.count(ExportAction.SKIP)

    @property
    def requested_regen_count(self) -> int:
        """Regenerations asked for by flags, not forced by a rename."""
        return sum(1 for a in self.actions if a.action == ExportAction.REGENERATE and not a.retitled)


@dataclass
class ExportResult:
    """Outcome of an export run."""

    exported: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    renamed: list[RenameOp] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    dry_run: bool = False
    aborted: bool = False
    state_saved: bool = False
    unenriched: int = 0


# -----------------------------------------------------------------------------
# Selection
# -----------------------------------------------------------------------------


def validate_export_options(query: str | None, options: ExportOptions) -> None:
    """
    Reject contradictory flag combinations.

    Raises:
        UsageError: If a session id is combined with --all, or --regenerate
            is used without --all
    """
    if query and options.all:
        raise UsageError("cannot use --all with a session ID; use one or the other")
    if options.regenerate and not options.all:
        raise UsageError("--regenerate requires --all (single-session export always writes)")


def select_sessions(sessions: list[Session], query: str) -> Session:
    """
    Find the one session matching query.

    A session matches when its id starts with query or its slug contains
    it, case-insensitively.

    Raises:
        SessionNotFoundError: If nothing matches
        AmbiguousSessionError: If several sessions match
    """
    needle = query.lower()
    matches = [s for s in sessions if s.id.lower().startswith(needle) or needle in s.slug.lower()]
    if not matches:
        raise SessionNotFoundError(query)
    if len(matches) > 1:
        raise AmbiguousSessionError(query, matches)
    return matches[0]


# -----------------------------------------------------------------------------
# Journal directory lookups
# -----------------------------------------------------------------------------


def build_session_index(journal_dir: Path) -> dict[str, str]:
    """
    Map short session id -> base journal filename.

    The short id is the last hyphen-separated component of a base file's
    name. Continuation pages (-pN next to an existing base file) are not
    indexed.
    """
    index: dict[str, str] = {}
    if not journal_dir.is_dir():
        return index

    for path in sorted(journal_dir.glob(f"*{MARKDOWN_EXT}")):
        if not path.is_file():
            continue
        stem = path.stem
        match = _PART_SUFFIX.match(stem)
        if match and (journal_dir / f"{match.group('base')}{MARKDOWN_EXT}").exists():
            continue
        short_id = stem.rsplit("-", 1)[-1]
        index.setdefault(short_id, path.name)
    return index


def lookup_session_file(
    journal_dir: Path,
    state: JournalState,
    index: dict[str, str],
    session: Session,
) -> str:
    """
    Base filename a session was previously exported as, or "".

    The state store's session mapping wins when the file it names still
    exists; otherwise the directory index is consulted by short id.
    """
    for filename in state.files_for_session(session.id):
        if not _PART_SUFFIX.match(Path(filename).stem) and (journal_dir / filename).exists():
            return filename
    return index.get(session.id[:SHORT_ID_LEN], "")


def existing_parts(journal_dir: Path, base_name: str) -> dict[int, str]:
    """Existing page files of a journal entry, keyed by page number."""
    parts: dict[int, str] = {}
    if (journal_dir / part_filename(base_name, 1)).exists():
        parts[1] = part_filename(base_name, 1)
    prefix = f"{base_name}-p"
    for path in journal_dir.glob(f"{_glob_escape(prefix)}*{MARKDOWN_EXT}"):
        tail = path.stem[len(prefix):]
        if tail.isdigit() and int(tail) >= 2:
            parts[int(tail)] = path.name
    return dict(sorted(parts.items()))


def _glob_escape(text: str) -> str:
    """Escape glob metacharacters in a literal filename fragment."""
    return re.sub(r"([*?\[])", r"[\1]", text)


def paginate(messages: list[Message], per_part: int) -> list[list[Message]]:
    """Split messages into pages of at most per_part; always at least one page."""
    if not messages:
        return [[]]
    return [messages[i : i + per_part] for i in range(0, len(messages), per_part)]


def frontmatter_edited(kept: str, generated: str) -> bool:
    """
    Whether a kept front matter block differs from what export would write.

    Keys listed in GROWING_FRONTMATTER_KEYS follow the transcript as it
    grows, so a stale value there is not an edit.
    """
    if kept == generated:
        return False
    ours = parse_frontmatter(generated)
    theirs = parse_frontmatter(kept)
    for key in GROWING_FRONTMATTER_KEYS:
        ours.pop(key, None)
        theirs.pop(key, None)
    return theirs != ours


def confirm_on_stdin(prompt: str) -> bool:
    """Ask a yes/no question on the terminal; anything but y/yes is a no."""
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# -----------------------------------------------------------------------------
# Exporter
# -----------------------------------------------------------------------------


class JournalExporter:
    """
    Plan and execute an export of sessions into a journal directory.

    Args:
        journal_dir: Target directory (created if missing)
        options: Export flags
        out: Stream for progress lines
        err: Stream for per-file failures and warnings
        confirm: Asked before regenerating existing files in an --all run
        max_messages_per_part: Page size
        details_threshold: Tool output with more lines is collapsed
        state_file: State filename inside journal_dir
    """

    def __init__(
        self,
        journal_dir: Path | str,
        options: ExportOptions | None = None,
        out: TextIO | None = None,
        err: TextIO | None = None,
        confirm: ConfirmFn | None = None,
        max_messages_per_part: int = MAX_MESSAGES_PER_PART,
        details_threshold: int = DETAILS_THRESHOLD,
        state_file: str = STATE_FILE,
    ):
        self.journal_dir = Path(journal_dir)
        self.options = options or ExportOptions()
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.confirm = confirm or confirm_on_stdin
        self.max_messages_per_part = max_messages_per_part
        self.details_threshold = details_threshold
        self.state_file = state_file
        self.state = JournalState()

    def _print(self, message: str = "") -> None:
        print(message, file=self.out)

    def _warn(self, message: str) -> None:
        print(message, file=self.err)

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    def plan(self, sessions: list[Session]) -> ExportPlan:
        """
        Decide renames and per-page actions without touching the disk.

        Pages that arrive through a pending rename are always regenerated, so
        their heading and part links follow the new name; their front matter
        is still preserved.
        """
        plan = ExportPlan()
        index = build_session_index(self.journal_dir)
        single_session = not self.options.all

        for session in sessions:
            previous = lookup_session_file(self.journal_dir, self.state, index, session)
            existing_title = ""
            if previous:
                try:
                    existing_title = frontmatter_field(self._read(self.journal_dir / previous), "title")
                except OSError as e:
                    logger.warning(f"Cannot read title from {previous}: {e}")

            slug, title = title_slug(session, existing_title)
            base_filename = format_journal_filename(session, slug)
            base_name = base_filename[: -len(MARKDOWN_EXT)]

            incoming: set[str] = set()
            if previous and previous != base_filename:
                old_base = previous[: -len(MARKDOWN_EXT)]
                for part, old_name in existing_parts(self.journal_dir, old_base).items():
                    new_name = part_filename(base_name, part)
                    plan.renames.append(RenameOp(session.id, old_name, new_name))
                    incoming.add(new_name)

            messages = [m for m in session.messages if not m.is_empty()]
            pages = paginate(messages, self.max_messages_per_part)
            for i, page in enumerate(pages):
                part = i + 1
                filename = part_filename(base_name, part)
                retitled = filename in incoming
                if retitled:
                    # Heading and part links still name the old base
                    action = ExportAction.REGENERATE
                elif not (self.journal_dir / filename).exists():
                    action = ExportAction.NEW
                elif single_session or self.options.regenerate or self.options.force:
                    action = ExportAction.REGENERATE
                else:
                    action = ExportAction.SKIP

                plan.actions.append(
                    FileAction(
                        session=session,
                        filename=filename,
                        base_name=base_name,
                        title=title,
                        part=part,
                        total_parts=len(pages),
                        start_idx=i * self.max_messages_per_part,
                        messages=page,
                        action=action,
                        retitled=retitled,
                    )
                )

        return plan

    def print_summary(self, plan: ExportPlan, dry_run: bool) -> None:
        verb = "Would" if dry_run else "Will"
        parts = []
        if plan.new_count:
            parts.append(f"export {plan.new_count} new")
        if plan.regen_count:
            parts.append(f"regenerate {plan.regen_count} existing")
        if plan.skip_count:
            parts.append(f"skip {plan.skip_count} existing")
        if not parts:
            self._print("Nothing to export.")
            return
        self._print(f"{verb} {', '.join(parts)}.")

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def run(self, sessions: list[Session]) -> ExportResult:
        """
        Export sessions.

        Returns:
            ExportResult with the files written, skipped and renamed

        Raises:
            OSError: If the journal directory cannot be created
        """
        result = ExportResult(dry_run=self.options.dry_run)
        if not self.options.dry_run:
            self.journal_dir.mkdir(parents=True, exist_ok=True)

        self.state = JournalState.load(self.journal_dir, self.state_file)
        plan = self.plan(sessions)

        if self.options.dry_run:
            for op in plan.renames:
                self._print(f"  would rename {op.old} -> {op.new}")
            self.print_summary(plan, dry_run=True)
            return result

        if plan.requested_regen_count and self.options.all and not self.options.yes:
            self.print_summary(plan, dry_run=False)
            if not self.confirm("Proceed? [y/N] "):
                self._print("Aborted.")
                result.aborted = True
                return result

        result.renamed = self._execute_renames(plan.renames)
        for action in plan.actions:
            self._execute_action(action, result)

        try:
            self.state.save(self.journal_dir, self.state_file)
            result.state_saved = True
        except StateError as e:
            logger.warning(str(e))
            self._warn(f"warning: failed to save journal state: {e}")

        result.unenriched = self.state.count_unenriched(self.journal_dir)

        self._print_result(result)
        return result

    def _execute_renames(self, renames: list[RenameOp]) -> list[RenameOp]:
        done = []
        for op in renames:
            old_path = self.journal_dir / op.old
            new_path = self.journal_dir / op.new
            if new_path.exists():
                logger.warning(f"Not renaming {op.old}: {op.new} already exists")
                self._warn(f"  ! not renaming {op.old}: {op.new} already exists")
                continue
            try:
                os.rename(old_path, new_path)
            except OSError as e:
                self._warn(f"  ! failed to rename {op.old}: {e}")
                continue
            self.state.rename(op.old, op.new)
            logger.info(f"Renamed {op.old} -> {op.new}")
            self._print(f"  renamed {op.old} -> {op.new}")
            done.append(op)
        return done

    def _execute_action(self, fa: FileAction, result: ExportResult) -> None:
        path = self.journal_dir / fa.filename

        if fa.action == ExportAction.SKIP:
            result.skipped.append(fa.filename)
            self._print(f"  skip {fa.filename} (exists)")
            return

        content = format_journal_entry_part(
            fa.session,
            fa.messages,
            fa.start_idx,
            fa.part,
            fa.total_parts,
            fa.base_name,
            fa.title,
            details_threshold=self.details_threshold,
        )

        preserved = False
        if path.exists():
            if self.options.force:
                self.state.clear_enriched(fa.filename)
            else:
                try:
                    existing = self._read(path)
                except OSError as e:
                    self._warn(f"  ! failed to read {fa.filename}: {e}")
                    result.failed.append(fa.filename)
                    return
                frontmatter = extract_frontmatter(existing)
                if frontmatter:
                    if frontmatter_edited(frontmatter, extract_frontmatter(content)):
                        self.state.mark_enriched(fa.filename)
                    content = with_frontmatter(frontmatter, content)
                    preserved = True

        try:
            _write_atomic(path, sanitize_utf8(content))
        except OSError as e:
            self._warn(f"  ! failed to write {fa.filename}: {e}")
            result.failed.append(fa.filename)
            return

        self.state.mark_exported(fa.filename, fa.session.id)
        if fa.action == ExportAction.NEW:
            result.exported.append(fa.filename)
            self._print(f"  ✓ {fa.filename}")
        else:
            result.updated.append(fa.filename)
            if preserved:
                self._print(f"  ✓ {fa.filename} (updated, frontmatter preserved)")
            else:
                self._print(f"  ✓ {fa.filename}")

    def _print_result(self, result: ExportResult) -> None:
        self._print()
        if result.exported:
            self._print(f"Exported {len(result.exported)} new session(s) to {self.journal_dir}")
        if result.updated:
            if self.options.force:
                self._print(f"Regenerated {len(result.updated)} existing session(s)")
            else:
                self._print(f"Updated {len(result.updated)} existing session(s) (YAML frontmatter preserved)")
        if result.renamed:
            self._print(f"Renamed {len(result.renamed)} session(s) to title-based filenames")
        if result.skipped:
            self._print(f"Skipped {len(result.skipped)} existing file(s).")
        if result.unenriched:
            self._print(f"{result.unenriched} journal file(s) not yet enriched.")

    @staticmethod
    def _read(path: Path) -> str:
        # newline="" keeps CRLF front matter intact
        with open(path, encoding="utf-8", errors="replace", newline="") as f:
            return f.read()


def _write_atomic(target_path: Path, content: str) -> None:
    """Write via a temp file in the same directory, then rename over target."""
    fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=".journal_", dir=target_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.chmod(temp_path, JOURNAL_FILE_MODE)
        os.replace(temp_path, target_path)
    except OSError:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


__all__ = [
    "MAX_MESSAGES_PER_PART",
    "GROWING_FRONTMATTER_KEYS",
    "ExportAction",
    "ExportOptions",
    "RenameOp",
    "FileAction",
    "ExportPlan",
    "ExportResult",
    "validate_export_options",
    "select_sessions",
    "build_session_index",
    "lookup_session_file",
    "existing_parts",
    "paginate",
    "frontmatter_edited",
    "confirm_on_stdin",
    "JournalExporter",
]
