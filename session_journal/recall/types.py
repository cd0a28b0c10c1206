"""
Session model reconstructed from transcripts.

These are tool-agnostic: every parser produces Session objects made of
Message, ToolUse and ToolResult regardless of the transcript format it
reads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


@dataclass
class ToolUse:
    """A tool invocation made by the assistant."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """The output of a tool invocation, carried on a user-role entry."""

    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass
class Message:
    """A single conversation message."""

    role: str  # "user" or "assistant"
    timestamp: datetime
    text: str = ""
    thinking: str = ""
    tool_uses: list[ToolUse] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    uuid: str = ""
    parent_uuid: str | None = None

    def belongs_to_user(self) -> bool:
        return self.role == ROLE_USER

    def belongs_to_assistant(self) -> bool:
        return self.role == ROLE_ASSISTANT

    def uses_tools(self) -> bool:
        return bool(self.tool_uses)

    def is_empty(self) -> bool:
        """True when there is nothing worth rendering."""
        return not self.text and not self.tool_uses and not self.tool_results

    def preview(self, max_len: int) -> str:
        """
        Text truncated to max_len characters.

        Truncated previews end with "..."; a max_len of 0 yields just "...".
        """
        if len(self.text) <= max_len:
            return self.text
        return self.text[:max_len] + "..."


@dataclass
class Session:
    """A reconstructed conversation."""

    id: str
    tool: str
    start_time: datetime
    end_time: datetime
    slug: str = ""
    first_user_msg: str = ""
    project: str = ""
    cwd: str = ""
    git_branch: str = ""
    model: str = ""
    turn_count: int = 0
    total_tokens_in: int = 0
    total_tokens_out: int = 0
    messages: list[Message] = field(default_factory=list)
    source_file: str = ""

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def total_tokens(self) -> int:
        return self.total_tokens_in + self.total_tokens_out

    def short_id(self, length: int = 8) -> str:
        return self.id[:length]

    def user_messages(self) -> list[Message]:
        return [m for m in self.messages if m.belongs_to_user()]

    def assistant_messages(self) -> list[Message]:
        return [m for m in self.messages if m.belongs_to_assistant()]

    def all_tool_uses(self) -> list[ToolUse]:
        """Every tool use across the session, in message order."""
        return [tool for m in self.messages for tool in m.tool_uses]


__all__ = [
    "ROLE_USER",
    "ROLE_ASSISTANT",
    "ToolUse",
    "ToolResult",
    "Message",
    "Session",
]
