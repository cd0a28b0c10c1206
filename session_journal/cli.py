#!/usr/bin/env python3
"""
Command-line interface for session-journal.

Usage:
    session-journal export <session-id>        # Export one session
    session-journal export --all               # Export this project's sessions
    session-journal export --all --regenerate  # Rewrite existing files, keep front matter
    session-journal list --limit 10
    session-journal show --latest --full
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections import Counter
from pathlib import Path
from typing import TextIO

from .config import JournalConfig
from .errors import AmbiguousSessionError, JournalError
from .journal.export import ExportOptions, JournalExporter, select_sessions, validate_export_options
from .journal.render import format_duration, format_tokens, format_tool_use
from .recall.claude import ClaudeCodeParser
from .recall.locator import SessionLocator
from .recall.types import Session

logger = logging.getLogger(__name__)

LIST_SLUG_WIDTH = 36
PREVIEW_MESSAGES = 5
PREVIEW_LEN = 100


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _load_config(args: argparse.Namespace) -> JournalConfig:
    config = JournalConfig.load(args.config)
    if args.context_dir:
        config.context_dir = args.context_dir
    return config


def _find_sessions(config: JournalConfig, args: argparse.Namespace, err: TextIO) -> list[Session]:
    locator = SessionLocator(
        parsers=[ClaudeCodeParser(peek_lines=config.peek_lines)],
        roots=config.resolved_storage_roots(),
    )
    extra_dirs = args.transcripts or []
    if args.all_projects:
        sessions = locator.find_sessions(*extra_dirs)
    else:
        sessions = locator.find_sessions_for_cwd(os.getcwd(), *extra_dirs)
    for error in locator.errors:
        print(f"warning: {error}", file=err)
    return sessions


def _print_no_sessions(args: argparse.Namespace, out: TextIO) -> None:
    if args.all_projects:
        print("No sessions found.", file=out)
    else:
        print("No sessions found for this project. Use --all-projects to see all.", file=out)


def _print_candidates(e: AmbiguousSessionError, err: TextIO) -> None:
    print(f"Multiple sessions match '{e.query}':", file=err)
    for s in e.candidates:
        started = s.start_time.astimezone().strftime("%Y-%m-%d %H:%M")
        print(f"  {s.slug or '-'} ({s.short_id()}) - {started}", file=err)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def cmd_export(args: argparse.Namespace, out: TextIO, err: TextIO) -> int:
    """Export sessions to journal files."""
    options = ExportOptions(
        all=args.all,
        all_projects=args.all_projects,
        force=args.force,
        regenerate=args.regenerate,
        yes=args.yes,
        dry_run=args.dry_run,
    )
    validate_export_options(args.session_id, options)
    if not args.session_id and not args.all:
        args.parser.print_help(file=out)
        return 0

    config = _load_config(args)
    sessions = _find_sessions(config, args, err)
    if not sessions:
        _print_no_sessions(args, out)
        return 0

    if args.session_id:
        sessions = [select_sessions(sessions, args.session_id)]

    exporter = JournalExporter(
        config.journal_dir(),
        options,
        out=out,
        err=err,
        max_messages_per_part=config.max_messages_per_part,
        details_threshold=config.details_threshold,
        state_file=config.state_file,
    )
    result = exporter.run(sessions)
    return 1 if result.failed else 0


def cmd_list(args: argparse.Namespace, out: TextIO, err: TextIO) -> int:
    """List sessions."""
    config = _load_config(args)
    sessions = _find_sessions(config, args, err)
    if not sessions:
        _print_no_sessions(args, out)
        return 0

    filtered = [
        s
        for s in sessions
        if (not args.project or args.project.lower() in s.project.lower())
        and (not args.tool or s.tool == args.tool)
    ]
    if not filtered:
        print("No sessions match the filters.", file=out)
        return 0

    shown = filtered[: args.limit] if args.limit > 0 else filtered

    header = f"Found {len(sessions)} sessions"
    if args.project or args.tool:
        header += f" ({len(filtered)} shown)"
    print(header, file=out)
    print(file=out)

    slug_w = max([len("Slug")] + [len(_truncate(s.slug, LIST_SLUG_WIDTH)) for s in shown])
    proj_w = max([len("Project")] + [len(s.project) for s in shown])

    def row(slug: str, project: str, date: str, duration: str, turns: str, tokens: str) -> str:
        return f"  {slug:<{slug_w}}  {project:<{proj_w}}  {date:<16}  {duration:>8}  {turns:>5}  {tokens:>7}"

    print(row("Slug", "Project", "Date", "Duration", "Turns", "Tokens"), file=out)
    for s in shown:
        print(
            row(
                _truncate(s.slug, LIST_SLUG_WIDTH),
                s.project,
                s.start_time.astimezone().strftime("%Y-%m-%d %H:%M"),
                format_duration(s.duration),
                str(s.turn_count),
                format_tokens(s.total_tokens) if s.total_tokens else "",
            ),
            file=out,
        )

    if len(filtered) > len(shown):
        print(file=out)
        print("Use --limit to see more sessions", file=out)
    return 0


def cmd_show(args: argparse.Namespace, out: TextIO, err: TextIO) -> int:
    """Show one session."""
    if not args.session_id and not args.latest:
        raise JournalError("please provide a session ID or use --latest")

    config = _load_config(args)
    sessions = _find_sessions(config, args, err)
    if not sessions:
        if args.all_projects:
            raise JournalError("no sessions found")
        raise JournalError("no sessions found for this project; use --all-projects to search all")

    session = sessions[0] if args.latest else select_sessions(sessions, args.session_id)
    _print_session(session, args.full, out)
    return 0


def _print_session(s: Session, full: bool, out: TextIO) -> None:
    started = s.start_time.astimezone()
    print(f"# {s.slug or s.short_id()}", file=out)
    print(file=out)
    print(f"**ID**: {s.id}", file=out)
    print(f"**Tool**: {s.tool}", file=out)
    print(f"**Project**: {s.project}", file=out)
    if s.git_branch:
        print(f"**Branch**: {s.git_branch}", file=out)
    if s.model:
        print(f"**Model**: {s.model}", file=out)
    print(file=out)
    print(f"**Started**: {started.strftime('%Y-%m-%d %H:%M:%S')}", file=out)
    print(f"**Duration**: {format_duration(s.duration)}", file=out)
    print(f"**Turns**: {s.turn_count}", file=out)
    print(f"**Messages**: {len(s.messages)}", file=out)
    print(file=out)

    print("## Token Usage", file=out)
    print(file=out)
    print(f"- Input: {format_tokens(s.total_tokens_in)}", file=out)
    print(f"- Output: {format_tokens(s.total_tokens_out)}", file=out)
    print(f"- Total: {format_tokens(s.total_tokens)}", file=out)
    print(file=out)

    counts = Counter(t.name for t in s.all_tool_uses())
    if counts:
        print("## Tool Usage", file=out)
        print(file=out)
        for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
            print(f"- {name}: {count}", file=out)
        print(file=out)

    if not full:
        print("## Conversation Preview", file=out)
        print(file=out)
        previews = [m for m in s.user_messages() if m.text][:PREVIEW_MESSAGES]
        for i, msg in enumerate(previews, 1):
            print(f"{i}. {msg.preview(PREVIEW_LEN)}", file=out)
        print(file=out)
        print("Use --full to see the complete conversation", file=out)
        return

    print("## Conversation", file=out)
    print(file=out)
    for i, msg in enumerate(s.messages, 1):
        if msg.is_empty():
            continue
        role = "Assistant" if msg.belongs_to_assistant() else "User"
        print(f"### {i}. {role} ({msg.timestamp.astimezone().strftime('%H:%M:%S')})", file=out)
        print(file=out)
        if msg.text:
            print(msg.text, file=out)
            print(file=out)
        for tool in msg.tool_uses:
            print(f"🔧 **{format_tool_use(tool)}**", file=out)
        if msg.tool_uses:
            print(file=out)


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def _add_scope_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--all-projects",
        action="store_true",
        help="Include sessions from all projects",
    )
    parser.add_argument(
        "--transcripts",
        action="append",
        metavar="DIR",
        help="Additional transcript directory to scan (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="session-journal",
        description="Export AI coding-assistant sessions to editable Markdown journals",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file (default: ~/.claude/session-journal-config.json)",
    )
    parser.add_argument(
        "--context-dir",
        help="Context directory holding the journal (default: .context)",
    )
    subparsers = parser.add_subparsers(dest="command")

    export = subparsers.add_parser(
        "export",
        help="Export sessions to journal files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Existing files are skipped unless --regenerate or --force is given.
--regenerate keeps each file's YAML front matter; --force discards it.

Examples:
  session-journal export abc123
  session-journal export --all
  session-journal export --all --regenerate --yes
  session-journal export --all --dry-run
""",
    )
    export.add_argument("session_id", nargs="?", help="Session ID prefix or slug fragment")
    export.add_argument("--all", action="store_true", help="Export all sessions from this project")
    export.add_argument("--force", action="store_true", help="Overwrite existing files, discarding front matter")
    export.add_argument(
        "--regenerate",
        action="store_true",
        help="Rewrite existing files, keeping front matter (requires --all)",
    )
    export.add_argument("-y", "--yes", action="store_true", help="Do not ask before regenerating")
    export.add_argument("--dry-run", action="store_true", help="Show what would be done without writing")
    _add_scope_arguments(export)
    export.set_defaults(handler=cmd_export, parser=export)

    list_cmd = subparsers.add_parser("list", help="List sessions")
    list_cmd.add_argument("--limit", type=int, default=20, help="Maximum sessions to show (default: 20)")
    list_cmd.add_argument("--project", help="Filter by project name")
    list_cmd.add_argument("--tool", help="Filter by tool (e.g. claude-code)")
    _add_scope_arguments(list_cmd)
    list_cmd.set_defaults(handler=cmd_list, parser=list_cmd)

    show = subparsers.add_parser("show", help="Show session details")
    show.add_argument("session_id", nargs="?", help="Session ID prefix or slug fragment")
    show.add_argument("--latest", action="store_true", help="Show the most recent session")
    show.add_argument("--full", action="store_true", help="Show the full conversation")
    _add_scope_arguments(show)
    show.set_defaults(handler=cmd_show, parser=show)

    return parser


def main(argv: list[str] | None = None, out: TextIO | None = None, err: TextIO | None = None) -> int:
    """Main entry point."""
    out = out or sys.stdout
    err = err or sys.stderr

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not getattr(args, "handler", None):
        parser.print_help(file=out)
        return 0

    try:
        return args.handler(args, out, err)
    except AmbiguousSessionError as e:
        _print_candidates(e, err)
        print("Error: ambiguous query, use a more specific ID", file=err)
        return 1
    except JournalError as e:
        print(f"Error: {e}", file=err)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=err)
        return 1


if __name__ == "__main__":
    sys.exit(main())
