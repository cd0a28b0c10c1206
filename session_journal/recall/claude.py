"""
Claude Code transcript parser.

Claude Code keeps one JSONL file per session at:
~/.claude/projects/{project_hash}/{session_id}.jsonl

Each user/assistant line becomes one Message. Assistant responses are
streamed, so one API message may be spread over several lines that all
repeat the same message id and usage; usage is counted once per id.
"""

from __future__ import annotations

import json
import logging
from itertools import islice
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..errors import TranscriptError
from .schema import MESSAGE_TYPES, RawLogLine, TextBlock, ThinkingBlock, ToolResultBlock, ToolUseBlock
from .types import ROLE_ASSISTANT, ROLE_USER, Message, Session, ToolResult, ToolUse

logger = logging.getLogger(__name__)

TOOL_CLAUDE_CODE = "claude-code"
DEFAULT_PEEK_LINES = 50
FIRST_MESSAGE_PREVIEW_LEN = 100


class ClaudeCodeParser:
    """Parse Claude Code JSONL transcripts into sessions."""

    def __init__(self, peek_lines: int = DEFAULT_PEEK_LINES):
        self.peek_lines = peek_lines

    def tool(self) -> str:
        return TOOL_CLAUDE_CODE

    def can_parse(self, path: str | Path) -> bool:
        """
        Check whether a file is a Claude Code transcript.

        The first lines of a transcript are often not messages (for example
        file-history-snapshot records), so up to peek_lines lines are probed
        for one carrying a sessionId and a user/assistant type.
        """
        path = Path(path)
        if path.suffix != ".jsonl":
            return False

        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                for line in islice(f, self.peek_lines):
                    entry = _loads(line)
                    if entry is None:
                        continue
                    if entry.get("sessionId") and entry.get("type") in MESSAGE_TYPES:
                        return True
        except OSError as e:
            logger.debug(f"Cannot probe {path}: {e}")
        return False

    def parse_file(self, path: str | Path) -> list[Session]:
        """
        Parse every session in a transcript file.

        Args:
            path: Path to the JSONL file

        Returns:
            Sessions found in the file, sorted by start time

        Raises:
            TranscriptError: If the file cannot be opened or read
        """
        path = Path(path)
        grouped: dict[str, list[RawLogLine]] = {}

        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                for line_num, line in enumerate(f, 1):
                    raw = self._decode(line)
                    if raw is None:
                        continue
                    if raw.timestamp is None:
                        logger.debug(f"{path}:{line_num}: message without timestamp, skipped")
                        continue
                    grouped.setdefault(raw.session_id, []).append(raw)
        except OSError as e:
            raise TranscriptError(f"cannot read transcript: {e}", path) from e

        sessions = [self._build_session(session_id, lines, path) for session_id, lines in grouped.items()]
        sessions.sort(key=lambda s: s.start_time)
        return sessions

    def parse_line(self, line: str) -> tuple[Message | None, str]:
        """
        Parse a single JSONL line.

        Returns:
            (message, session_id), or (None, "") for blank and non-message lines

        Raises:
            TranscriptError: If the line is not valid JSON
        """
        line = line.strip()
        if not line:
            return None, ""

        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            raise TranscriptError(f"invalid JSON: {e}") from e

        raw = _validate(entry)
        if raw is None or not raw.is_message or raw.timestamp is None:
            return None, ""
        return self._convert_message(raw), raw.session_id

    def _decode(self, line: str) -> RawLogLine | None:
        entry = _loads(line)
        if entry is None or entry.get("type") not in MESSAGE_TYPES:
            return None
        raw = _validate(entry)
        if raw is None or not raw.is_message:
            return None
        return raw

    def _convert_message(self, raw: RawLogLine) -> Message:
        texts: list[str] = []
        thoughts: list[str] = []
        tool_uses: list[ToolUse] = []
        tool_results: list[ToolResult] = []

        blocks = raw.message.blocks() if raw.message is not None else []
        for block in blocks:
            if isinstance(block, TextBlock):
                if block.text:
                    texts.append(block.text)
            elif isinstance(block, ThinkingBlock):
                if block.thinking:
                    thoughts.append(block.thinking)
            elif isinstance(block, ToolUseBlock):
                tool_uses.append(ToolUse(id=block.id, name=block.name, input=block.input))
            elif isinstance(block, ToolResultBlock):
                tool_results.append(
                    ToolResult(tool_use_id=block.tool_use_id, content=block.text(), is_error=block.is_error)
                )

        role = (raw.message.role if raw.message is not None else "") or raw.type
        return Message(
            role=role,
            timestamp=raw.timestamp,
            text="\n".join(texts),
            thinking="\n".join(thoughts),
            tool_uses=tool_uses,
            tool_results=tool_results,
            uuid=raw.uuid,
            parent_uuid=raw.parent_uuid,
        )

    def _build_session(self, session_id: str, lines: list[RawLogLine], path: Path) -> Session:
        # Stable sort keeps file order for equal timestamps
        lines = sorted(lines, key=lambda raw: raw.timestamp)

        slug = cwd = git_branch = model = ""
        tokens_in = tokens_out = 0
        counted: set[str] = set()
        messages: list[Message] = []

        for raw in lines:
            slug = slug or raw.slug
            cwd = cwd or raw.cwd
            git_branch = git_branch or raw.git_branch

            if raw.type == ROLE_ASSISTANT and raw.message is not None:
                model = model or raw.message.model
                usage = raw.message.usage
                usage_key = raw.message.id or raw.uuid
                if usage is not None and usage_key not in counted:
                    counted.add(usage_key)
                    tokens_in += usage.total_input
                    tokens_out += usage.output_tokens

            messages.append(self._convert_message(raw))

        user_turns = [m for m in messages if m.role == ROLE_USER and m.text]
        first_user_msg = user_turns[0].preview(FIRST_MESSAGE_PREVIEW_LEN) if user_turns else ""

        return Session(
            id=session_id,
            tool=TOOL_CLAUDE_CODE,
            start_time=messages[0].timestamp,
            end_time=messages[-1].timestamp,
            slug=slug,
            first_user_msg=first_user_msg,
            project=Path(cwd).name if cwd else "",
            cwd=cwd,
            git_branch=git_branch,
            model=model,
            turn_count=len(user_turns),
            total_tokens_in=tokens_in,
            total_tokens_out=tokens_out,
            messages=messages,
            source_file=str(path),
        )


def _loads(line: str) -> dict[str, Any] | None:
    """Decode a JSON object line; None for blank, malformed or non-object lines."""
    line = line.strip()
    if not line:
        return None
    try:
        entry = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed transcript line")
        return None
    return entry if isinstance(entry, dict) else None


def _validate(entry: Any) -> RawLogLine | None:
    try:
        return RawLogLine.model_validate(entry)
    except ValidationError as e:
        logger.debug(f"Skipping invalid transcript line: {e.error_count()} error(s)")
        return None


__all__ = [
    "TOOL_CLAUDE_CODE",
    "DEFAULT_PEEK_LINES",
    "ClaudeCodeParser",
]
