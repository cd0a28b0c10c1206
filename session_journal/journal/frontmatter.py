"""
YAML front matter in journal files.

Front matter is the block between a leading "---" line and the next
"---" line. Users and enrichment tools edit it, so re-exports carry the
existing block over unchanged; only the body below it is regenerated.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DELIMITER = "---"
NEWLINES = "\r\n"

_FRONTMATTER = re.compile(r"\A---\r?\n(?:.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

YAML_LINE_WIDTH = 4096


def extract_frontmatter(content: str) -> str:
    """
    The front matter block of content, delimiters included, or "".

    The returned text is an exact slice of content, so writing it back
    reproduces the original bytes.
    """
    match = _FRONTMATTER.match(content)
    return match.group(0) if match else ""


def strip_frontmatter(content: str) -> str:
    """Content without its front matter block and the blank lines after it."""
    block = extract_frontmatter(content)
    if not block:
        return content
    return content[len(block):].lstrip(NEWLINES)


def parse_frontmatter(content: str) -> dict[str, Any]:
    """
    Front matter parsed as a mapping.

    Returns {} when there is no block, the YAML is invalid, or it is not a
    mapping.
    """
    block = extract_frontmatter(content)
    if not block:
        return {}

    inner = block.split("\n", 1)[1] if "\n" in block else ""
    inner = inner.rstrip()
    if inner.endswith(DELIMITER):
        inner = inner[: -len(DELIMITER)]

    try:
        data = yaml.safe_load(inner)
    except yaml.YAMLError as e:
        logger.debug(f"Invalid front matter YAML: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def frontmatter_field(content: str, key: str) -> str:
    """A single front matter value as a string ("" when absent or null)."""
    value = parse_frontmatter(content).get(key)
    if value is None:
        return ""
    return str(value).strip()


def render_frontmatter(fields: dict[str, Any]) -> str:
    """
    Render fields as a front matter block.

    Keys keep their insertion order and None values are dropped, so equal
    input always renders to the same text.
    """
    data = {k: v for k, v in fields.items() if v is not None}
    body = yaml.safe_dump(
        data,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=YAML_LINE_WIDTH,
    )
    return f"{DELIMITER}\n{body}{DELIMITER}\n"


def with_frontmatter(frontmatter: str, body: str) -> str:
    """Join a front matter block and a body, separated by one blank line."""
    if not frontmatter:
        return body
    if not frontmatter.endswith("\n"):
        frontmatter += "\n"
    return f"{frontmatter}\n{strip_frontmatter(body).lstrip(NEWLINES)}"


__all__ = [
    "extract_frontmatter",
    "strip_frontmatter",
    "parse_frontmatter",
    "frontmatter_field",
    "render_frontmatter",
    "with_frontmatter",
]
