"""
Titles and filename slugs for journal entries.

The slug that names a journal file is derived from the best title
available for the session, so a session keeps a readable, stable name
until its title changes.
"""

from __future__ import annotations

import re

from ..recall.types import Session

MAX_TITLE_LEN = 75
SLUG_MAX_LEN = 50
SHORT_ID_LEN = 8

TRUNCATION_SUFFIX = "..."

# Claude Code wraps slash-command metadata and injected context in
# hyphenated pseudo-XML tags (<command-name>, <system-reminder>, ...).
_CLAUDE_TAG_BLOCK = re.compile(r"<([a-z]+(?:-[a-z]+)+)(?:\s[^>]*)?>.*?</\1>", re.DOTALL)
_CLAUDE_TAG = re.compile(r"</?[a-z]+(?:-[a-z]+)+(?:\s[^>]*)?/?>")
_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"[ \t\r\n]+")


def _strip_truncation(text: str) -> str:
    if text.endswith(TRUNCATION_SUFFIX):
        return text[: -len(TRUNCATION_SUFFIX)]
    return text


def slugify_title(title: str) -> str:
    """
    Convert a title into a filename-safe slug.

    Lowercases, maps every run of characters outside [a-z0-9] to a single
    hyphen, trims hyphens, and truncates to SLUG_MAX_LEN on a hyphen
    boundary. Returns "" for titles with no ASCII letters or digits.
    """
    slug = _NON_SLUG_CHARS.sub("-", _strip_truncation(title).lower()).strip("-")
    if len(slug) <= SLUG_MAX_LEN:
        return slug

    truncated = slug[:SLUG_MAX_LEN]
    idx = truncated.rfind("-")
    if idx > 0:
        truncated = truncated[:idx]
    return truncated


def clean_title(text: str) -> str:
    """
    Normalise free text into a single-line title.

    Drops Claude Code tag blocks, folds newlines and tabs into spaces,
    collapses whitespace and truncates to MAX_TITLE_LEN characters on a
    word boundary.
    """
    text = _strip_truncation(text)
    text = _CLAUDE_TAG_BLOCK.sub("", text)
    text = _CLAUDE_TAG.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()

    if len(text) > MAX_TITLE_LEN:
        truncated = text[:MAX_TITLE_LEN]
        idx = truncated.rfind(" ")
        if idx > 0:
            truncated = truncated[:idx]
        text = truncated
    return text


def title_slug(session: Session, existing_title: str = "") -> tuple[str, str]:
    """
    Pick the slug and title for a session.

    Candidates, first usable one wins:
    1. existing_title, the title read back from an earlier export
    2. the session's first user message
    3. the tool's own session slug (title "")
    4. the first SHORT_ID_LEN characters of the session id (title "")

    A title candidate that cleans or slugifies to nothing is skipped.

    Returns:
        (slug, title)
    """
    for candidate in (existing_title, session.first_user_msg):
        if not candidate:
            continue
        title = clean_title(candidate)
        slug = slugify_title(title)
        if slug:
            return slug, title

    if session.slug:
        return session.slug, ""

    return session.id[:SHORT_ID_LEN], ""


__all__ = [
    "MAX_TITLE_LEN",
    "SLUG_MAX_LEN",
    "SHORT_ID_LEN",
    "slugify_title",
    "clean_title",
    "title_slug",
]
