"""Journal export: titles, front matter, rendering, state and sync."""

from .export import (
    ExportAction,
    ExportOptions,
    ExportPlan,
    ExportResult,
    JournalExporter,
    select_sessions,
    validate_export_options,
)
from .frontmatter import extract_frontmatter, frontmatter_field, render_frontmatter, strip_frontmatter
from .render import format_journal_entry_part, format_journal_filename
from .slug import clean_title, slugify_title, title_slug
from .state import JournalState

__all__ = [
    "ExportAction",
    "ExportOptions",
    "ExportPlan",
    "ExportResult",
    "JournalExporter",
    "select_sessions",
    "validate_export_options",
    "extract_frontmatter",
    "frontmatter_field",
    "render_frontmatter",
    "strip_frontmatter",
    "format_journal_entry_part",
    "format_journal_filename",
    "clean_title",
    "slugify_title",
    "title_slug",
    "JournalState",
]
