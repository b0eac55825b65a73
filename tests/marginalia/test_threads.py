"""Tests for threading and panel filtering."""

import pytest

from marginalia.models import (
    AnchoredComment,
    CommentStatus,
    CommentTarget,
    NoteComment,
    ReplyComment,
    Resolution,
    ResolvedAnchor,
)
from marginalia.threads import filter_panel_data, get_panel_data, get_threads
from marginalia.utils.logging import init_logger, reset_logger


def ts(minute: int) -> str:
    return f"2024-05-01T12:{minute:02d}:00Z"


def anchored(body: str, minute: int, **kwargs) -> AnchoredComment:
    return AnchoredComment(
        body=body,
        target=CommentTarget(exact=body),
        created_at=ts(minute),
        updated_at=ts(minute),
        **kwargs,
    )


@pytest.fixture
def comments():
    """Two anchored roots, a note and replies stored out of order."""
    first = anchored("first", 1)
    second = anchored(
        "second", 2, status=CommentStatus.ORPHANED, resolution=Resolution.RESOLVED
    )
    note = NoteComment(body="note", created_at=ts(3), updated_at=ts(3))
    late_reply = ReplyComment(body="late", parent_id=first.id, created_at=ts(9))
    early_reply = ReplyComment(body="early", parent_id=first.id, created_at=ts(5))
    return [first, late_reply, second, note, early_reply]


class TestGetThreads:
    """Tests for get_threads()."""

    def test_groups_replies_under_roots(self, comments):
        """Replies attach to their parent in creation order."""
        threads = get_threads(comments)

        assert [t.root.body for t in threads] == ["first", "second"]
        assert [r.body for r in threads[0].replies] == ["early", "late"]
        assert threads[1].replies == []

    def test_dangling_reply_is_dropped(self, capsys):
        """Replies to a missing parent are left out with a warning."""
        root = anchored("root", 1)
        orphan = ReplyComment(body="lost", parent_id="01HQZXY1234567890ABCDEFGHJ")

        init_logger(use_colors=False)
        try:
            threads = get_threads([root, orphan])
        finally:
            reset_logger()

        assert len(threads) == 1
        assert threads[0].replies == []
        assert "non-existent parent" in capsys.readouterr().err

    def test_notes_are_not_threads(self):
        """Notes never appear as thread roots."""
        assert get_threads([NoteComment(body="n")]) == []


class TestPanelData:
    """Tests for get_panel_data() and filter_panel_data()."""

    def test_split(self, comments):
        """Notes and threads are separated."""
        panel = get_panel_data(comments)

        assert [n.body for n in panel.note_comments] == ["note"]
        assert len(panel.threads) == 2

    @pytest.mark.parametrize(
        "thread_filter, roots, notes",
        [
            ("all", ["first", "second"], ["note"]),
            ("open", ["first"], ["note"]),
            ("resolved", ["second"], []),
            ("active", ["first"], ["note"]),
            ("orphaned", ["second"], []),
        ],
    )
    def test_filters(self, comments, thread_filter, roots, notes):
        """Each filter selects threads and notes as documented."""
        panel = filter_panel_data(get_panel_data(comments), thread_filter, "created", {})

        assert [t.root.body for t in panel.threads] == roots
        assert [n.body for n in panel.note_comments] == notes

    def test_sort_by_position(self, comments):
        """Position order follows anchor offsets with unresolved threads last."""
        first, _, second, _, _ = comments
        third = anchored("third", 0)
        panel = get_panel_data(comments + [third])
        anchors = {
            first.id: ResolvedAnchor(40, 45, 2, 1),
            third.id: ResolvedAnchor(10, 15, 1, 2),
        }

        result = filter_panel_data(panel, "all", "position", anchors)

        assert [t.root.body for t in result.threads] == ["third", "first", "second"]

    def test_sort_by_created(self, comments):
        """Created order follows the root's creation time."""
        third = anchored("third", 0)
        panel = get_panel_data(comments + [third])

        result = filter_panel_data(panel, "all", "created", {})

        assert [t.root.body for t in result.threads] == ["third", "first", "second"]

    def test_input_not_modified(self, comments):
        """Filtering returns a new PanelData."""
        panel = get_panel_data(comments)

        filter_panel_data(panel, "orphaned", "created", {})

        assert len(panel.threads) == 2
        assert len(panel.note_comments) == 1
