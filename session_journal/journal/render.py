"""
Markdown rendering of journal entries.

Rendering is a pure function of its inputs: the same session, page and
title always produce the same text, which is what makes re-exports
byte-identical. Times are shown in the local timezone.
"""

from __future__ import annotations

import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from ..recall.types import Message, Session, ToolUse
from .frontmatter import render_frontmatter
from .slug import SHORT_ID_LEN

NL = "\n"
SEPARATOR = "---"
CODE_FENCE = "```"
BACKTICK = "`"
PIPE_SEPARATOR = " | "
MARKDOWN_EXT = ".md"

DETAILS_THRESHOLD = 10
BASH_PREVIEW_LEN = 100

LABEL_USER = "User"
LABEL_ASSISTANT = "Assistant"
LABEL_TOOL_OUTPUT = "Tool Output"
LABEL_REMINDER = "**Reminder**:"
SUMMARY_PLACEHOLDER = "[Add your summary of this session]"
ERROR_MARKER = "❌ Error"

# Tool -> input key shown next to the tool name
TOOL_DISPLAY_KEY = {
    "Read": "file_path",
    "Write": "file_path",
    "Edit": "file_path",
    "Bash": "command",
    "Grep": "pattern",
    "Glob": "pattern",
    "WebFetch": "url",
    "WebSearch": "query",
    "Task": "description",
}

_LINE_NUMBER = re.compile(r"^[ \t]*\d+→", re.MULTILINE)
_SYSTEM_REMINDER = re.compile(r"<system-reminder>\s*(.*?)\s*</system-reminder>", re.DOTALL)
_CODE_FENCE_INLINE = re.compile(r"(\S) *(```+)")
_CODE_FENCE_CLOSE = re.compile(r"(```+) *(\S)")


# -----------------------------------------------------------------------------
# Content helpers
# -----------------------------------------------------------------------------


def fence_for_content(content: str) -> str:
    """Shortest backtick fence (at least three) that does not occur in content."""
    fence = CODE_FENCE
    while fence in content:
        fence += BACKTICK
    return fence


def strip_line_numbers(content: str) -> str:
    """Remove editor line-number gutters such as "     1→"."""
    return _LINE_NUMBER.sub("", content)


def extract_system_reminders(content: str) -> tuple[str, list[str]]:
    """
    Pull <system-reminder> blocks out of tool output.

    Returns:
        (content without the blocks, non-empty reminder texts in order)
    """
    reminders = [m.group(1) for m in _SYSTEM_REMINDER.finditer(content) if m.group(1)]
    return _SYSTEM_REMINDER.sub("", content), reminders


def normalize_code_fences(content: str) -> str:
    """Put code fences that are glued to surrounding text on their own paragraph."""
    content = _CODE_FENCE_INLINE.sub(r"\1\n\n\2", content)
    return _CODE_FENCE_CLOSE.sub(r"\1\n\n\2", content)


def format_tool_use(tool: ToolUse) -> str:
    """Tool name plus its most telling argument, e.g. "Read: /src/main.py"."""
    key = TOOL_DISPLAY_KEY.get(tool.name)
    if key is None:
        return tool.name
    value = tool.input.get(key)
    if not isinstance(value, str):
        return tool.name
    if tool.name == "Bash" and len(value) > BASH_PREVIEW_LEN:
        value = value[:BASH_PREVIEW_LEN] + "..."
    return f"{tool.name}: {value}"


def format_duration(duration: timedelta) -> str:
    """Compact duration: "<1m", "45m", "2h", "1h30m"."""
    minutes = int(duration.total_seconds() // 60)
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{minutes}m"
    hours, remainder = divmod(minutes, 60)
    if remainder == 0:
        return f"{hours}h"
    return f"{hours}h{remainder}m"


def format_tokens(tokens: int) -> str:
    """Compact token count: "500", "1.5K", "2.3M"."""
    if tokens < 1000:
        return str(tokens)
    if tokens < 1_000_000:
        return f"{tokens / 1000:.1f}K"
    return f"{tokens / 1_000_000:.1f}M"


def sanitize_utf8(content: str) -> str:
    """Replace anything that cannot be encoded as UTF-8 (lone surrogates)."""
    return content.encode("utf-8", errors="replace").decode("utf-8")


def _local(ts: datetime) -> datetime:
    return ts.astimezone()


# -----------------------------------------------------------------------------
# Filenames and navigation
# -----------------------------------------------------------------------------


def format_journal_filename(session: Session, slug: str) -> str:
    """Base filename: YYYY-MM-DD-<slug>-<shortID>.md (local start date)."""
    day = _local(session.start_time).strftime("%Y-%m-%d")
    return f"{day}-{slug}-{session.id[:SHORT_ID_LEN]}{MARKDOWN_EXT}"


def part_filename(base_name: str, part: int) -> str:
    """Filename of a page; page 1 is the base file itself."""
    if part <= 1:
        return f"{base_name}{MARKDOWN_EXT}"
    return f"{base_name}-p{part}{MARKDOWN_EXT}"


def format_part_navigation(part: int, total_parts: int, base_name: str) -> str:
    """
    Navigation line for page `part` of `total_parts`.

    Links are computed from the page index alone, so they are valid before
    the sibling pages have been written.
    """
    items = [f"**Part {part} of {total_parts}**"]
    if part > 1:
        items.append(f"[← Previous]({part_filename(base_name, part - 1)})")
    if part < total_parts:
        items.append(f"[Next →]({part_filename(base_name, part + 1)})")
    return PIPE_SEPARATOR.join(items) + NL


# -----------------------------------------------------------------------------
# Entry rendering
# -----------------------------------------------------------------------------


def journal_frontmatter_fields(session: Session, title: str) -> dict[str, Any]:
    """Fields of the front matter generated for a fresh export."""
    start = _local(session.start_time)
    return {
        "date": start.strftime("%Y-%m-%d"),
        "time": start.strftime("%H:%M:%S"),
        "project": session.project or None,
        "session_id": session.id,
        "model": session.model or None,
        "branch": session.git_branch or None,
        "tokens_in": session.total_tokens_in,
        "tokens_out": session.total_tokens_out,
        "title": title or None,
    }


def _role_label(msg: Message) -> str:
    if msg.belongs_to_assistant():
        return LABEL_ASSISTANT
    if msg.tool_results and not msg.text:
        return LABEL_TOOL_OUTPUT
    return LABEL_USER


def _render_metadata(session: Session, total_parts: int) -> list[str]:
    start = _local(session.start_time)
    out = [
        f"**ID**: {session.id}",
        f"**Date**: {start.strftime('%Y-%m-%d')}",
        f"**Time**: {start.strftime('%H:%M:%S')}",
        f"**Duration**: {format_duration(session.duration)}",
        f"**Tool**: {session.tool}",
        f"**Project**: {session.project}",
    ]
    if session.git_branch:
        out.append(f"**Branch**: {session.git_branch}")
    if session.model:
        out.append(f"**Model**: {session.model}")
    out.append("")
    out.append(f"**Turns**: {session.turn_count}")
    out.append(
        f"**Tokens**: {format_tokens(session.total_tokens)} "
        f"(in: {format_tokens(session.total_tokens_in)}, out: {format_tokens(session.total_tokens_out)})"
    )
    if total_parts > 1:
        out.append(f"**Parts**: {total_parts}")
    out.extend(["", SEPARATOR, ""])

    out.extend(["## Summary", "", SUMMARY_PLACEHOLDER, "", SEPARATOR, ""])

    counts = Counter(tool.name for tool in session.all_tool_uses())
    if counts:
        out.extend(["## Tool Usage", ""])
        for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
            out.append(f"- {name}: {count}")
        out.extend(["", SEPARATOR, ""])
    return out


def _render_tool_output(content: str, details_threshold: int) -> list[str]:
    content = strip_line_numbers(content)
    content, reminders = extract_system_reminders(content)
    fence = fence_for_content(content)
    line_count = content.count(NL)

    out = []
    if line_count > details_threshold:
        out.extend(["<details>", f"<summary>{line_count} lines</summary>", ""])
        out.extend([fence, content, fence])
        out.append("</details>")
    else:
        out.extend([fence, content, fence])

    for reminder in reminders:
        out.extend(["", f"{LABEL_REMINDER} {reminder}"])
    return out


def _render_message(msg: Message, number: int, details_threshold: int) -> list[str]:
    stamp = _local(msg.timestamp).strftime("%H:%M:%S")
    out = [f"### {number}. {_role_label(msg)} ({stamp})", ""]

    if msg.text:
        text = msg.text if msg.belongs_to_assistant() else normalize_code_fences(msg.text)
        out.extend([text, ""])

    for tool in msg.tool_uses:
        out.append(f"🔧 **{format_tool_use(tool)}**")

    for result in msg.tool_results:
        if result.is_error:
            out.append(ERROR_MARKER)
        if result.content:
            out.extend(_render_tool_output(result.content, details_threshold))

    if msg.tool_uses or msg.tool_results:
        out.append("")
    return out


def format_journal_entry_part(
    session: Session,
    messages: list[Message],
    start_idx: int,
    part: int,
    total_parts: int,
    base_name: str,
    title: str = "",
    details_threshold: int = DETAILS_THRESHOLD,
) -> str:
    """
    Render one page of a journal entry.

    Args:
        session: The session being exported
        messages: The messages on this page
        start_idx: Index of the first message within the whole session, so
            message numbers continue across pages
        part: 1-based page number
        total_parts: Number of pages for the session
        base_name: Base filename without the .md extension
        title: Derived title; the heading falls back to base_name
        details_threshold: Tool output with more lines is collapsed

    Returns:
        Markdown text. Page 1 starts with generated front matter.
    """
    lines: list[str] = []

    if part == 1:
        lines.append(render_frontmatter(journal_frontmatter_fields(session, title)))

    lines.extend([f"# {title or base_name}", ""])

    if total_parts > 1:
        lines.append(format_part_navigation(part, total_parts, base_name))
        lines.extend([SEPARATOR, ""])

    if part == 1:
        lines.extend(_render_metadata(session, total_parts))
        lines.extend(["## Conversation", ""])
    else:
        lines.extend([f"## Conversation (continued from part {part - 1})", ""])

    for i, msg in enumerate(messages):
        lines.extend(_render_message(msg, start_idx + i + 1, details_threshold))

    if total_parts > 1:
        lines.extend(["", SEPARATOR, ""])
        lines.append(format_part_navigation(part, total_parts, base_name).rstrip(NL))

    text = NL.join(lines)
    if not text.endswith(NL):
        text += NL
    return text


__all__ = [
    "DETAILS_THRESHOLD",
    "TOOL_DISPLAY_KEY",
    "fence_for_content",
    "strip_line_numbers",
    "extract_system_reminders",
    "normalize_code_fences",
    "format_tool_use",
    "format_duration",
    "format_tokens",
    "sanitize_utf8",
    "format_journal_filename",
    "part_filename",
    "format_part_navigation",
    "journal_frontmatter_fields",
    "format_journal_entry_part",
]
