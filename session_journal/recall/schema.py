"""
Pydantic models for raw transcript lines.

A transcript is a JSONL file, one JSON object per line. Only "user" and
"assistant" lines carry conversation content; everything else (progress,
summary, file-history-snapshot, ...) is ignored by the parser.

Message content is either a plain string or a list of typed blocks. Blocks
are decoded through a discriminated union keyed on "type"; unknown kinds
(images, documents) and blocks that fail validation are dropped one at a
time so a single odd block never loses the whole line.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)

MESSAGE_TYPES = frozenset({"user", "assistant"})


class RawUsage(BaseModel):
    """Token usage reported on an assistant line."""

    model_config = ConfigDict(extra="ignore")

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def total_input(self) -> int:
        return self.input_tokens + self.cache_creation_input_tokens + self.cache_read_input_tokens


class TextBlock(BaseModel):
    type: Literal["text"]
    text: str = ""


class ThinkingBlock(BaseModel):
    type: Literal["thinking"]
    thinking: str = ""
    signature: str = ""


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"]
    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)

    @field_validator("input", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"]
    tool_use_id: str = ""
    content: Union[str, list[Any], None] = None
    is_error: bool = False

    @field_validator("is_error", mode="before")
    @classmethod
    def _none_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    def text(self) -> str:
        """Flatten result content to text; nested text parts are joined by newlines."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        parts = []
        for item in self.content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
        return "\n".join(parts)


ContentBlock = Annotated[
    Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]

_block_adapter: TypeAdapter[Any] = TypeAdapter(ContentBlock)

_KNOWN_BLOCK_TYPES = frozenset({"text", "thinking", "tool_use", "tool_result"})


def decode_blocks(raw: list[Any]) -> list[Any]:
    """
    Decode a list of raw content blocks.

    Args:
        raw: Decoded JSON array from message.content

    Returns:
        Typed blocks, in order, with unknown or invalid blocks removed
    """
    blocks = []
    for item in raw:
        if not isinstance(item, dict) or item.get("type") not in _KNOWN_BLOCK_TYPES:
            continue
        try:
            blocks.append(_block_adapter.validate_python(item))
        except ValidationError as e:
            logger.debug(f"Dropping invalid {item.get('type')} block: {e.error_count()} error(s)")
    return blocks


class RawMessage(BaseModel):
    """The "message" object of a transcript line."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    model: str = ""
    role: str = ""
    content: Union[str, list[Any], None] = None
    usage: RawUsage | None = None

    @field_validator("id", "model", "role", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def blocks(self) -> list[Any]:
        """Content as typed blocks; a plain string becomes one text block."""
        if self.content is None:
            return []
        if isinstance(self.content, str):
            return [TextBlock(type="text", text=self.content)]
        return decode_blocks(self.content)


class RawLogLine(BaseModel):
    """One line of a transcript file."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    uuid: str = ""
    parent_uuid: str | None = Field(default=None, alias="parentUuid")
    session_id: str = Field(default="", alias="sessionId")
    request_id: str = Field(default="", alias="requestId")
    type: str = ""
    timestamp: datetime | None = None
    cwd: str = ""
    git_branch: str = Field(default="", alias="gitBranch")
    version: str = ""
    slug: str = ""
    is_sidechain: bool = Field(default=False, alias="isSidechain")
    message: RawMessage | None = None

    @field_validator("uuid", "session_id", "request_id", "type", "cwd", "git_branch", "version", "slug", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_sidechain", mode="before")
    @classmethod
    def _none_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_message(self) -> bool:
        """True for user/assistant lines that belong to a session."""
        return self.type in MESSAGE_TYPES and bool(self.session_id)


__all__ = [
    "MESSAGE_TYPES",
    "RawUsage",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ContentBlock",
    "decode_blocks",
    "RawMessage",
    "RawLogLine",
]
