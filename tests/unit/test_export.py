"""
Unit tests for export planning helpers.
"""

import pytest

from conftest import make_session
from session_journal.errors import AmbiguousSessionError, SessionNotFoundError, UsageError
from session_journal.journal.export import (
    ExportAction,
    ExportOptions,
    JournalExporter,
    build_session_index,
    existing_parts,
    frontmatter_edited,
    lookup_session_file,
    paginate,
    select_sessions,
    validate_export_options,
)
from session_journal.journal.render import format_journal_filename
from session_journal.journal.state import JournalState


class TestValidateOptions:
    """Tests for flag validation."""

    def test_id_with_all(self):
        """A session id cannot be combined with --all."""
        with pytest.raises(UsageError, match="cannot use --all with a session ID"):
            validate_export_options("abc", ExportOptions(all=True))

    def test_regenerate_requires_all(self):
        """--regenerate only makes sense with --all."""
        with pytest.raises(UsageError, match="--regenerate requires --all"):
            validate_export_options("abc", ExportOptions(regenerate=True))

    def test_valid_combinations(self):
        """Ordinary combinations pass."""
        validate_export_options("abc", ExportOptions(force=True))
        validate_export_options(None, ExportOptions(all=True, regenerate=True, yes=True))


class TestSelectSessions:
    """Tests for session queries."""

    @pytest.fixture
    def sessions(self):
        return [
            make_session(session_id="abc12345-1", slug="gleaming-wobbling-sutherland"),
            make_session(session_id="abd99999-2", slug="quiet-river"),
        ]

    def test_id_prefix(self, sessions):
        """An id prefix selects its session, case-insensitively."""
        assert select_sessions(sessions, "ABC1").id == "abc12345-1"

    def test_slug_substring(self, sessions):
        """A slug fragment selects its session."""
        assert select_sessions(sessions, "river").id == "abd99999-2"

    def test_not_found(self, sessions):
        """No match raises SessionNotFoundError."""
        with pytest.raises(SessionNotFoundError, match="session not found: zzz"):
            select_sessions(sessions, "zzz")

    def test_ambiguous(self, sessions):
        """Several matches raise with the candidates attached."""
        with pytest.raises(AmbiguousSessionError) as exc_info:
            select_sessions(sessions, "ab")
        assert len(exc_info.value.candidates) == 2


class TestJournalLookups:
    """Tests for the journal directory index."""

    def test_index_by_short_id(self, journal_dir):
        """Base files are indexed by their trailing short id."""
        (journal_dir / "2026-01-20-fix-bug-abc12345.md").write_text("x")
        (journal_dir / "2026-01-20-fix-bug-abc12345-p2.md").write_text("x")
        (journal_dir / "2026-01-21-other-def67890.md").write_text("x")
        (journal_dir / "notes.txt").write_text("x")

        index = build_session_index(journal_dir)

        assert index == {
            "abc12345": "2026-01-20-fix-bug-abc12345.md",
            "def67890": "2026-01-21-other-def67890.md",
        }

    def test_index_missing_dir(self, tmp_path):
        """A missing journal directory has an empty index."""
        assert build_session_index(tmp_path / "missing") == {}

    def test_lookup_prefers_state(self, journal_dir):
        """The state mapping wins over the directory index."""
        session = make_session()
        (journal_dir / "mapped-abc12345.md").write_text("x")
        state = JournalState()
        state.mark_exported("mapped-abc12345.md", session.id)

        found = lookup_session_file(journal_dir, state, {"abc12345": "indexed-abc12345.md"}, session)

        assert found == "mapped-abc12345.md"

    def test_lookup_ignores_stale_state(self, journal_dir):
        """A mapping to a deleted file falls back to the index."""
        session = make_session()
        state = JournalState()
        state.mark_exported("gone-abc12345.md", session.id)

        found = lookup_session_file(journal_dir, state, {"abc12345": "indexed-abc12345.md"}, session)

        assert found == "indexed-abc12345.md"

    def test_existing_parts(self, journal_dir):
        """All pages of an entry are found, keyed by page."""
        for name in ("b.md", "b-p2.md", "b-p3.md", "b-p2.md.bak", "bb.md"):
            (journal_dir / name).write_text("x")

        assert existing_parts(journal_dir, "b") == {1: "b.md", 2: "b-p2.md", 3: "b-p3.md"}


class TestPaginate:
    """Tests for paginate."""

    def test_pages(self):
        """Pages hold at most per_part messages and never split one."""
        pages = paginate(list(range(450)), 200)
        assert [len(p) for p in pages] == [200, 200, 50]

    def test_exact_multiple(self):
        """An exact multiple produces no empty trailing page."""
        assert [len(p) for p in paginate(list(range(400)), 200)] == [200, 200]

    def test_empty(self):
        """No messages still produce one page."""
        assert paginate([], 200) == [[]]


class TestPlan:
    """Tests for JournalExporter.plan."""

    def test_actions_for_all(self, journal_dir):
        """New files are NEW; existing ones are skipped for --all."""
        existing = make_session(session_id="aaaaaaaa-1", first_user_msg="Existing one")
        fresh = make_session(session_id="bbbbbbbb-2", first_user_msg="Fresh one")
        (journal_dir / format_journal_filename(existing, "existing-one")).write_text("x")

        plan = JournalExporter(journal_dir, ExportOptions(all=True)).plan([existing, fresh])

        assert [a.action for a in plan.actions] == [ExportAction.SKIP, ExportAction.NEW]
        assert (plan.new_count, plan.regen_count, plan.skip_count) == (1, 0, 1)

    def test_single_session_regenerates(self, journal_dir):
        """Single-session exports always write."""
        session = make_session()
        (journal_dir / format_journal_filename(session, "fix-the-login-bug")).write_text("x")

        plan = JournalExporter(journal_dir, ExportOptions()).plan([session])

        assert plan.actions[0].action == ExportAction.REGENERATE

    def test_empty_messages_dropped_before_paging(self, journal_dir):
        """Empty messages are not rendered or counted toward pages."""
        session = make_session(n_messages=3)
        session.messages[1].text = ""

        plan = JournalExporter(journal_dir, ExportOptions(all=True)).plan([session])

        assert len(plan.actions[0].messages) == 2

    def test_renamed_pages_regenerate_without_prompt(self, journal_dir):
        """Pages arriving through a rename are regenerated but not counted as requested."""
        session = make_session()
        (journal_dir / f"2026-01-20-old-title-{session.id[:8]}.md").write_text("x")

        plan = JournalExporter(journal_dir, ExportOptions(all=True)).plan([session])

        assert len(plan.renames) == 1
        assert plan.actions[0].action == ExportAction.REGENERATE
        assert plan.actions[0].retitled
        assert plan.requested_regen_count == 0


class TestFrontmatterEdited:
    """Tests for frontmatter_edited."""

    GENERATED = "---\ndate: '2026-01-20'\nsession_id: abc\ntokens_in: 100\ntokens_out: 50\ntitle: Fix it\n---\n"

    def test_identical(self):
        """The exporter's own block is not an edit."""
        assert not frontmatter_edited(self.GENERATED, self.GENERATED)

    def test_token_counts_ignored(self):
        """Older token counts are not an edit."""
        kept = self.GENERATED.replace("tokens_in: 100", "tokens_in: 10").replace("tokens_out: 50", "tokens_out: 5")
        assert not frontmatter_edited(kept, self.GENERATED)

    def test_formatting_only_ignored(self):
        """Equal values written differently are not an edit."""
        kept = "---\ndate: '2026-01-20'\nsession_id: abc\ntitle: 'Fix it'\ntokens_in: 1\ntokens_out: 2\n---\n"
        assert not frontmatter_edited(kept, self.GENERATED)

    def test_added_key(self):
        """A key the exporter never writes is an edit."""
        kept = self.GENERATED.replace("title: Fix it", "title: Fix it\nsummary: notes")
        assert frontmatter_edited(kept, self.GENERATED)

    def test_changed_value(self):
        """A changed generated value is an edit."""
        assert frontmatter_edited(self.GENERATED.replace("Fix it", "Better title"), self.GENERATED)
