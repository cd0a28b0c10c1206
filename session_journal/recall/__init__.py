"""Transcript parsing and session discovery."""

from .claude import TOOL_CLAUDE_CODE, ClaudeCodeParser
from .locator import ProjectMatcher, SessionLocator, git_remote, path_relative_to_home
from .parser import SessionParser
from .types import Message, Session, ToolResult, ToolUse

__all__ = [
    "TOOL_CLAUDE_CODE",
    "ClaudeCodeParser",
    "ProjectMatcher",
    "SessionLocator",
    "git_remote",
    "path_relative_to_home",
    "SessionParser",
    "Message",
    "Session",
    "ToolResult",
    "ToolUse",
]
