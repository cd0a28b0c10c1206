"""
Session discovery and project matching.

SessionLocator walks transcript storage roots and hands each file to the
first parser that accepts it. ProjectMatcher decides whether a session
belongs to the project at a given working directory, so journals can be
shared across machines and users that check the same repository out at
different paths.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from functools import lru_cache
from pathlib import Path
from typing import Callable, Iterable, Sequence

from ..errors import TranscriptError
from .claude import ClaudeCodeParser
from .parser import SessionParser
from .types import Session

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_ROOTS = ("~/.claude/projects",)
SUBAGENTS_DIR = "subagents"
GIT_TIMEOUT_SECONDS = 5

_HOME_PREFIX = re.compile(r"^/(?:home|Users)/[^/]+/(.+)$")


@lru_cache(maxsize=None)
def git_remote(path: str) -> str:
    """
    URL of the "origin" remote of the repository containing path.

    Returns "" when path is empty, missing, not inside a git work tree, has
    no origin remote, or git is unavailable. Results are memoized for the
    life of the process.
    """
    if not path or not os.path.isdir(path):
        return ""
    try:
        result = subprocess.run(
            ["git", "-C", path, "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git remote lookup failed for {path}: {e}")
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def path_relative_to_home(path: str) -> str:
    """
    Strip a /home/<user>/ or /Users/<user>/ prefix.

    "/home/jose/projects/ctx" -> "projects/ctx"; paths outside a home
    directory, and the home directory itself, yield "".
    """
    match = _HOME_PREFIX.match(path)
    if not match:
        return ""
    return match.group(1).rstrip("/")


class ProjectMatcher:
    """
    Decide whether a session belongs to the project at cwd.

    Tiers, first match wins:
    1. Same git origin remote for cwd and the session's cwd
    2. Same path relative to the user's home directory
    3. Identical working directory
    """

    def __init__(self, cwd: str | Path, remote_lookup: Callable[[str], str] = git_remote):
        self.cwd = str(cwd)
        self._remote_lookup = remote_lookup
        self.remote = remote_lookup(self.cwd)
        self.relative_path = path_relative_to_home(self.cwd)

    def matches(self, session: Session) -> bool:
        if self.remote:
            session_remote = self._remote_lookup(session.cwd)
            if session_remote and session_remote == self.remote:
                return True

        if self.relative_path:
            session_relative = path_relative_to_home(session.cwd)
            if session_relative and session_relative == self.relative_path:
                return True

        return session.cwd == self.cwd

    __call__ = matches


class SessionLocator:
    """
    Find sessions across transcript storage roots.

    Args:
        parsers: Parsers to try, in order; the first whose can_parse accepts a
            file parses it. Defaults to [ClaudeCodeParser()].
        roots: Storage roots to scan. Defaults to ~/.claude/projects.
        remote_lookup: Resolves a directory to its git remote URL.
    """

    def __init__(
        self,
        parsers: Sequence[SessionParser] | None = None,
        roots: Iterable[str | Path] | None = None,
        remote_lookup: Callable[[str], str] = git_remote,
    ):
        self.parsers: list[SessionParser] = list(parsers) if parsers is not None else [ClaudeCodeParser()]
        if roots is None:
            roots = DEFAULT_STORAGE_ROOTS
        self.roots = [Path(root).expanduser() for root in roots]
        self.remote_lookup = remote_lookup
        self.errors: list[TranscriptError] = []

    @property
    def tools(self) -> list[str]:
        return [parser.tool() for parser in self.parsers]

    def parser_for(self, tool: str) -> SessionParser | None:
        for parser in self.parsers:
            if parser.tool() == tool:
                return parser
        return None

    def parse_file(self, path: str | Path) -> list[Session]:
        """
        Parse a file with the first parser that accepts it.

        Raises:
            TranscriptError: If no parser accepts the file or it cannot be read
        """
        for parser in self.parsers:
            if parser.can_parse(Path(path)):
                return parser.parse_file(Path(path))
        raise TranscriptError("no parser found for file", path)

    def scan_directory(self, root: str | Path) -> tuple[list[Session], list[TranscriptError]]:
        """
        Recursively parse every recognised transcript under root.

        Subagent transcripts are skipped: they share the parent's session id
        and would otherwise be picked up as duplicates.

        Returns:
            (sessions, errors) where errors holds one entry per unreadable file
        """
        root = Path(root)
        sessions: list[Session] = []
        errors: list[TranscriptError] = []
        if not root.is_dir():
            return sessions, errors

        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d != SUBAGENTS_DIR)
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if SUBAGENTS_DIR in path.parts:
                    continue
                parser = next((p for p in self.parsers if p.can_parse(path)), None)
                if parser is None:
                    continue
                try:
                    sessions.extend(parser.parse_file(path))
                except TranscriptError as e:
                    logger.warning(f"Skipping transcript: {e}")
                    errors.append(e)

        return sessions, errors

    def find_sessions(self, *additional_dirs: str | Path) -> list[Session]:
        """
        All sessions across roots and additional_dirs, newest first.

        A session found in several files is kept once (the copy with the most
        messages wins). Unreadable files are recorded in self.errors.
        """
        return self._find(None, additional_dirs)

    def find_sessions_for_cwd(self, cwd: str | Path, *additional_dirs: str | Path) -> list[Session]:
        """Sessions belonging to the project at cwd, newest first."""
        return self._find(ProjectMatcher(cwd, self.remote_lookup), additional_dirs)

    def _find(
        self,
        keep: Callable[[Session], bool] | None,
        additional_dirs: Sequence[str | Path],
    ) -> list[Session]:
        self.errors = []
        by_id: dict[str, Session] = {}
        dirs = self.roots + [Path(d).expanduser() for d in additional_dirs]

        for directory in dirs:
            sessions, errors = self.scan_directory(directory)
            self.errors.extend(errors)
            for session in sessions:
                seen = by_id.get(session.id)
                if seen is None or len(session.messages) > len(seen.messages):
                    by_id[session.id] = session

        found = [s for s in by_id.values() if keep is None or keep(s)]
        found.sort(key=lambda s: s.start_time, reverse=True)
        return found


__all__ = [
    "DEFAULT_STORAGE_ROOTS",
    "git_remote",
    "path_relative_to_home",
    "ProjectMatcher",
    "SessionLocator",
]
