"""Shared fixtures: builders for transcript lines and sessions."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from session_journal.recall.types import Message, Session, ToolResult, ToolUse

BASE_TIME = datetime(2026, 1, 20, 12, 0, 0, tzinfo=timezone.utc)
SESSION_ID = "abc12345-6789-4def-8123-456789abcdef"


def iso(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def user_line(
    session_id: str = SESSION_ID,
    ts: datetime = BASE_TIME,
    content: Any = "hello",
    cwd: str = "/home/alice/work/proj",
    slug: str = "gleaming-wobbling-sutherland",
    **extra: Any,
) -> dict[str, Any]:
    line = {
        "type": "user",
        "sessionId": session_id,
        "uuid": f"u-{ts.timestamp()}",
        "parentUuid": None,
        "timestamp": iso(ts),
        "cwd": cwd,
        "gitBranch": "main",
        "version": "2.1.0",
        "slug": slug,
        "message": {"role": "user", "content": content},
    }
    line.update(extra)
    return line


def assistant_line(
    session_id: str = SESSION_ID,
    ts: datetime = BASE_TIME,
    content: Any = None,
    msg_id: str = "msg_1",
    model: str = "claude-sonnet-4-5",
    usage: dict[str, int] | None = None,
    cwd: str = "/home/alice/work/proj",
    **extra: Any,
) -> dict[str, Any]:
    if content is None:
        content = [{"type": "text", "text": "Sure."}]
    line = {
        "type": "assistant",
        "sessionId": session_id,
        "uuid": f"a-{ts.timestamp()}",
        "timestamp": iso(ts),
        "cwd": cwd,
        "gitBranch": "main",
        "message": {
            "id": msg_id,
            "role": "assistant",
            "model": model,
            "content": content,
            "usage": usage or {"input_tokens": 100, "output_tokens": 50},
        },
    }
    line.update(extra)
    return line


def write_jsonl(path: Path, lines: list[Any]) -> Path:
    """Write lines (dicts are JSON-encoded, strings written as-is)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write((line if isinstance(line, str) else json.dumps(line)) + "\n")
    return path


def make_session(
    session_id: str = SESSION_ID,
    first_user_msg: str = "Fix the login bug",
    slug: str = "gleaming-wobbling-sutherland",
    n_messages: int = 2,
    cwd: str = "/home/alice/work/proj",
    start: datetime = BASE_TIME,
) -> Session:
    """A session with alternating user/assistant messages one minute apart."""
    messages = []
    for i in range(n_messages):
        ts = start + timedelta(minutes=i)
        if i % 2 == 0:
            text = first_user_msg if i == 0 else f"question {i}"
            messages.append(Message(role="user", timestamp=ts, text=text))
        else:
            messages.append(Message(role="assistant", timestamp=ts, text=f"answer {i}"))
    return Session(
        id=session_id,
        tool="claude-code",
        start_time=messages[0].timestamp if messages else start,
        end_time=messages[-1].timestamp if messages else start,
        slug=slug,
        first_user_msg=first_user_msg,
        project=Path(cwd).name,
        cwd=cwd,
        git_branch="main",
        model="claude-sonnet-4-5",
        turn_count=(n_messages + 1) // 2,
        total_tokens_in=1200,
        total_tokens_out=300,
        messages=messages,
    )


def tool_session(output: str, is_error: bool = False) -> Session:
    """A session whose second message is tool output."""
    session = make_session(n_messages=1)
    session.messages.append(
        Message(
            role="assistant",
            timestamp=BASE_TIME + timedelta(seconds=30),
            tool_uses=[ToolUse(id="t1", name="Read", input={"file_path": "/src/main.py"})],
        )
    )
    session.messages.append(
        Message(
            role="user",
            timestamp=BASE_TIME + timedelta(seconds=31),
            tool_results=[ToolResult(tool_use_id="t1", content=output, is_error=is_error)],
        )
    )
    return session


@pytest.fixture
def session() -> Session:
    return make_session()


@pytest.fixture
def journal_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".context" / "journal"
    path.mkdir(parents=True)
    return path
