"""
Parser interface for transcript formats.

Each supported tool gets one parser implementing SessionParser. The
locator receives the parsers it should use as an explicit list.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from .types import Message, Session


@runtime_checkable
class SessionParser(Protocol):
    """
    A transcript format.

    Parsers never raise for malformed lines inside a file; they skip them.
    Only a file that cannot be read at all is an error.
    """

    def tool(self) -> str:
        """Identifier of the tool that writes this format (e.g. "claude-code")."""
        ...

    def can_parse(self, path: Path) -> bool:
        """Cheap check whether the file looks like this format."""
        ...

    def parse_file(self, path: Path) -> list[Session]:
        """All sessions in the file, sorted by start time."""
        ...

    def parse_line(self, line: str) -> tuple[Message | None, str]:
        """One line as (message, session_id); (None, "") for non-message lines."""
        ...


__all__ = ["SessionParser"]
