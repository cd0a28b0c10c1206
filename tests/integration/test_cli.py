"""
Integration tests for the session-journal command line.

Transcripts are written to a temporary storage root and main() runs from
a temporary project directory, so nothing outside tmp_path is read.
"""

from datetime import timedelta
from io import StringIO

import pytest

from conftest import BASE_TIME, SESSION_ID, assistant_line, user_line, write_jsonl
from session_journal.cli import main
from session_journal.config import ENV_CONTEXT_DIR, ENV_STORAGE_ROOTS

OTHER_ID = "abcdef00-1111-4222-8333-444444444444"


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A project directory used as the working directory."""
    path = tmp_path.resolve() / "proj"
    path.mkdir()
    monkeypatch.chdir(path)
    return path


@pytest.fixture
def storage(tmp_path, monkeypatch, project):
    """A transcript root with one session in the project and one elsewhere."""
    root = tmp_path / "transcripts"
    write_jsonl(
        root / "-proj" / f"{SESSION_ID}.jsonl",
        [
            {"type": "file-history-snapshot", "messageId": "x"},
            user_line(cwd=str(project), content="Fix the login bug"),
            assistant_line(ts=BASE_TIME + timedelta(minutes=1), cwd=str(project)),
        ],
    )
    write_jsonl(
        root / "-elsewhere" / f"{OTHER_ID}.jsonl",
        [
            user_line(
                session_id=OTHER_ID,
                ts=BASE_TIME - timedelta(days=1),
                cwd="/home/bob/elsewhere",
                slug="quiet-river",
                content="Write the release notes",
            ),
            assistant_line(
                session_id=OTHER_ID,
                ts=BASE_TIME - timedelta(days=1, minutes=-1),
                cwd="/home/bob/elsewhere",
                msg_id="msg_other",
            ),
        ],
    )
    monkeypatch.setenv(ENV_STORAGE_ROOTS, str(root))
    monkeypatch.delenv(ENV_CONTEXT_DIR, raising=False)
    return root


def run(tmp_path, *argv):
    """Run the CLI with an isolated config and context directory."""
    out, err = StringIO(), StringIO()
    code = main(
        ["--config", str(tmp_path / "no-config.json"), "--context-dir", str(tmp_path / "ctx"), *argv],
        out=out,
        err=err,
    )
    return code, out.getvalue(), err.getvalue()


class TestExport:
    """Tests for the export command."""

    def test_export_all_writes_project_sessions(self, tmp_path, storage):
        """Only sessions of the current project are exported."""
        code, out, _ = run(tmp_path, "export", "--all")

        assert code == 0
        files = sorted(p.name for p in (tmp_path / "ctx" / "journal").glob("*.md"))
        assert len(files) == 1
        assert files[0].endswith(f"-fix-the-login-bug-{SESSION_ID[:8]}.md")
        assert "Exported 1 new session(s)" in out

    def test_export_all_projects(self, tmp_path, storage):
        """--all-projects exports every session found."""
        code, _, _ = run(tmp_path, "export", "--all", "--all-projects")

        assert code == 0
        assert len(list((tmp_path / "ctx" / "journal").glob("*.md"))) == 2

    def test_export_single_session(self, tmp_path, storage):
        """A session id prefix exports just that session."""
        code, out, _ = run(tmp_path, "export", "abc123")

        assert code == 0
        assert "✓" in out

    def test_export_twice_skips(self, tmp_path, storage):
        """A repeated --all run leaves existing files alone."""
        run(tmp_path, "export", "--all")
        code, out, _ = run(tmp_path, "export", "--all")

        assert code == 0
        assert "Skipped 1 existing file(s)." in out

    def test_export_without_target_prints_help(self, tmp_path, storage):
        """Bare export shows usage and succeeds."""
        code, out, _ = run(tmp_path, "export")

        assert code == 0
        assert "usage:" in out
        assert not (tmp_path / "ctx" / "journal").exists()

    def test_id_with_all_rejected(self, tmp_path, storage):
        """A session id and --all cannot be combined."""
        code, _, err = run(tmp_path, "export", "abc123", "--all")

        assert code == 1
        assert "Error: cannot use --all with a session ID" in err

    def test_regenerate_requires_all(self, tmp_path, storage):
        """--regenerate alone is a usage error."""
        code, _, err = run(tmp_path, "export", "abc123", "--regenerate")

        assert code == 1
        assert "--regenerate requires --all" in err

    def test_dry_run(self, tmp_path, storage):
        """--dry-run reports without writing."""
        code, out, _ = run(tmp_path, "export", "--all", "--dry-run")

        assert code == 0
        assert "Would export 1 new." in out
        assert not (tmp_path / "ctx" / "journal").exists()

    def test_unknown_session(self, tmp_path, storage):
        """An unmatched id is reported as an error."""
        code, _, err = run(tmp_path, "export", "zzz")

        assert code == 1
        assert "Error: session not found: zzz" in err

    def test_no_sessions_for_project(self, tmp_path, monkeypatch, project):
        """An empty storage root is reported, not an error."""
        empty = tmp_path / "empty"
        empty.mkdir()
        monkeypatch.setenv(ENV_STORAGE_ROOTS, str(empty))

        code, out, _ = run(tmp_path, "export", "--all")

        assert code == 0
        assert "No sessions found for this project. Use --all-projects to see all." in out

    def test_extra_transcript_dir(self, tmp_path, monkeypatch, project):
        """--transcripts adds a directory to scan."""
        empty = tmp_path / "empty"
        empty.mkdir()
        monkeypatch.setenv(ENV_STORAGE_ROOTS, str(empty))
        extra = tmp_path / "extra"
        write_jsonl(
            extra / f"{SESSION_ID}.jsonl",
            [user_line(cwd=str(project), content="Fix the login bug")],
        )

        code, out, _ = run(tmp_path, "export", "--all", "--transcripts", str(extra))

        assert code == 0
        assert "Exported 1 new session(s)" in out


class TestList:
    """Tests for the list command."""

    def test_list_project(self, tmp_path, storage):
        """Sessions of the current project are tabulated."""
        code, out, _ = run(tmp_path, "list")

        assert code == 0
        assert "Found 1 sessions" in out
        assert "gleaming-wobbling-sutherland" in out
        assert "quiet-river" not in out

    def test_list_all_projects_filtered(self, tmp_path, storage):
        """--project narrows the listing and the header says so."""
        code, out, _ = run(tmp_path, "list", "--all-projects", "--project", "elsewhere")

        assert code == 0
        assert "Found 2 sessions (1 shown)" in out
        assert "quiet-river" in out
        assert "gleaming-wobbling-sutherland" not in out

    def test_list_limit(self, tmp_path, storage):
        """--limit truncates and points at the option."""
        code, out, _ = run(tmp_path, "list", "--all-projects", "--limit", "1")

        assert code == 0
        assert "gleaming-wobbling-sutherland" in out
        assert "quiet-river" not in out
        assert "Use --limit to see more sessions" in out


class TestShow:
    """Tests for the show command."""

    def test_show_latest_preview(self, tmp_path, storage):
        """--latest shows metadata and a preview of user messages."""
        code, out, _ = run(tmp_path, "show", "--latest")

        assert code == 0
        assert f"**ID**: {SESSION_ID}" in out
        assert "**Project**: proj" in out
        assert "## Conversation Preview" in out
        assert "1. Fix the login bug" in out

    def test_show_full(self, tmp_path, storage):
        """--full prints every message."""
        code, out, _ = run(tmp_path, "show", SESSION_ID[:8], "--full")

        assert code == 0
        assert "### 1. User" in out
        assert "### 2. Assistant" in out
        assert "Sure." in out

    def test_show_ambiguous(self, tmp_path, storage):
        """A prefix matching several sessions lists them and fails."""
        code, _, err = run(tmp_path, "show", "abc", "--all-projects")

        assert code == 1
        assert "Multiple sessions match 'abc':" in err
        assert "quiet-river (abcdef00)" in err
        assert "Error: ambiguous query, use a more specific ID" in err

    def test_show_requires_target(self, tmp_path, storage):
        """show needs an id or --latest."""
        code, _, err = run(tmp_path, "show")

        assert code == 1
        assert "please provide a session ID or use --latest" in err


def test_no_command_prints_help(tmp_path):
    """Running without a command prints usage."""
    code, out, _ = run(tmp_path)

    assert code == 0
    assert "usage:" in out
