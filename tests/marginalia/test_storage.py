"""Tests for comment file storage and the path index."""

import json

import pytest
from pydantic import ValidationError

from marginalia.anchors import create_target
from marginalia.locking import lock_path_for
from marginalia.models import (
    AnchoredComment,
    CommentFile,
    CommentStatus,
    NoteComment,
    ReplyComment,
    Resolution,
)
from marginalia.path_index import INDEX_FILE_NAME, PathIndex, comment_file_name_for
from marginalia.storage import CommentStore, read_comment_file, write_comment_file

NOTE = "notes/today.md"
DOC = "Intro line.\nWe saw the quick fox today.\nEnd."
PHRASE = "the quick fox"


@pytest.fixture
def store(tmp_path):
    """Initialized store in a temporary storage directory."""
    store = CommentStore(tmp_path / ".marginalia", lock_timeout=1.0)
    store.initialize()
    return store


@pytest.fixture
def anchored(store):
    """An anchored comment on PHRASE in NOTE."""
    return store.add_comment(NOTE, "Which fox?", create_target(DOC, DOC.index(PHRASE), PHRASE))


class TestPathIndex:
    """Tests for PathIndex."""

    def test_comment_file_name_for(self):
        """Directory separators are flattened."""
        assert comment_file_name_for("notes/daily/today.md") == "notes__daily__today.md.json"
        assert comment_file_name_for("README.md") == "README.md.json"

    def test_get_or_create_and_save(self, tmp_path):
        """New mappings persist after save()."""
        index = PathIndex(tmp_path)
        index.load()

        name = index.get_or_create_comment_file_name(NOTE)
        index.save()

        reloaded = PathIndex(tmp_path)
        reloaded.load()
        assert reloaded.get_comment_file_name(NOTE) == name

    def test_existing_mapping_is_reused(self, tmp_path):
        """A mapped path keeps its file name."""
        index = PathIndex(tmp_path)
        index.data.mappings[NOTE] = "custom.json"

        assert index.get_or_create_comment_file_name(NOTE) == "custom.json"

    def test_rename_keeps_file_name(self, tmp_path):
        """Renaming moves the mapping and writes the index."""
        index = PathIndex(tmp_path)
        name = index.get_or_create_comment_file_name(NOTE)

        assert index.rename_path(NOTE, "archive/today.md") is True
        assert index.get_comment_file_name("archive/today.md") == name
        assert index.get_comment_file_name(NOTE) is None
        assert (tmp_path / INDEX_FILE_NAME).exists()

    def test_rename_unknown(self, tmp_path):
        """Renaming an unmapped path does nothing."""
        assert PathIndex(tmp_path).rename_path("a.md", "b.md") is False

    def test_delete_path(self, tmp_path):
        """Deleting returns the mapped file name."""
        index = PathIndex(tmp_path)
        name = index.get_or_create_comment_file_name(NOTE)

        assert index.delete_path(NOTE) == name
        assert index.delete_path(NOTE) is None

    def test_corrupt_index_starts_empty(self, tmp_path):
        """An unreadable index is ignored."""
        (tmp_path / INDEX_FILE_NAME).write_text("{broken", encoding="utf-8")

        index = PathIndex(tmp_path)
        index.load()

        assert index.data.mappings == {}


class TestCommentFileIO:
    """Tests for reading and writing comment files."""

    def test_round_trip(self, tmp_path):
        """Written files read back equal."""
        path = tmp_path / "a.md.json"
        comment_file = CommentFile(source_file="a.md", comments=[NoteComment(body="n")])

        write_comment_file(path, comment_file)

        assert read_comment_file(path) == comment_file

    def test_missing(self, tmp_path):
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            read_comment_file(tmp_path / "missing.json")

    def test_schema_violation(self, tmp_path):
        """Files failing validation raise ValueError."""
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"version": 1, "comments": []}), encoding="utf-8")

        with pytest.raises(ValueError, match="schema validation"):
            read_comment_file(path)


class TestCommentStore:
    """Tests for CommentStore."""

    def test_no_comments(self, store):
        """Unknown documents have no comments and no comment file."""
        assert store.get_comments(NOTE) == []
        assert store.comment_file_path(NOTE) is None

    def test_add_comment_persists(self, store, anchored):
        """Anchored comments are written to the mapped comment file."""
        path = store.comment_file_path(NOTE)

        assert path == store.base_path / "notes__today.md.json"
        comment_file = read_comment_file(path)
        assert comment_file.source_file == NOTE
        assert comment_file.comments == [anchored]
        assert anchored.target.line_hint == 1

    def test_add_note_comment(self, store):
        """Notes are stored alongside anchored comments."""
        note = store.add_note_comment(NOTE, "General remark")

        assert store.get_comments(NOTE) == [note]

    def test_add_reply(self, store, anchored):
        """Replies attach to anchored comments."""
        reply = store.add_reply(NOTE, anchored.id, "Agreed")

        assert isinstance(reply, ReplyComment)
        assert reply.parent_id == anchored.id
        assert len(store.get_comments(NOTE)) == 2

    def test_reply_to_note_rejected(self, store):
        """Notes cannot have replies."""
        note = store.add_note_comment(NOTE, "General remark")

        assert store.add_reply(NOTE, note.id, "Agreed") is None
        assert store.get_comments(NOTE) == [note]

    def test_reply_to_missing_parent(self, store, anchored):
        """Replies need an existing parent."""
        assert store.add_reply(NOTE, "01HQZXY1234567890ABCDEFGHJ", "Agreed") is None

    def test_reply_without_comment_file(self, store):
        """Replying in a document without comments does nothing."""
        assert store.add_reply(NOTE, "01HQZXY1234567890ABCDEFGHJ", "Agreed") is None
        assert store.comment_file_path(NOTE) is None

    def test_update_comment(self, store, anchored):
        """Editing replaces the body and bumps updated_at."""
        updated = store.update_comment(NOTE, anchored.id, "Which fox exactly?")

        assert updated.body == "Which fox exactly?"
        assert updated.status == CommentStatus.ACTIVE
        assert store.get_comments(NOTE)[0].body == "Which fox exactly?"

    def test_update_comment_invalid_body(self, store, anchored):
        """Invalid bodies are rejected and nothing is written."""
        with pytest.raises(ValidationError):
            store.update_comment(NOTE, anchored.id, "")

        assert store.get_comments(NOTE)[0].body == "Which fox?"

    def test_update_missing_comment(self, store, anchored):
        """Editing an unknown id returns None."""
        assert store.update_comment(NOTE, "01HQZXY1234567890ABCDEFGHJ", "x") is None

    def test_toggle_resolution(self, store, anchored):
        """Toggling flips open and resolved."""
        assert store.toggle_resolution(NOTE, anchored.id).resolution == Resolution.RESOLVED
        assert store.toggle_resolution(NOTE, anchored.id).resolution == Resolution.OPEN

    def test_toggle_reply_rejected(self, store, anchored):
        """Replies have no resolution."""
        reply = store.add_reply(NOTE, anchored.id, "Agreed")

        assert store.toggle_resolution(NOTE, reply.id) is None

    def test_delete_cascades_replies(self, store, anchored):
        """Deleting an anchored comment deletes its replies."""
        store.add_reply(NOTE, anchored.id, "Agreed")
        note = store.add_note_comment(NOTE, "Keep me")

        assert store.delete_comment(NOTE, anchored.id) is True
        assert store.get_comments(NOTE) == [note]

    def test_delete_reply_only(self, store, anchored):
        """Deleting a reply keeps its parent."""
        reply = store.add_reply(NOTE, anchored.id, "Agreed")

        assert store.delete_comment(NOTE, reply.id) is True
        assert [c.id for c in store.get_comments(NOTE)] == [anchored.id]

    def test_delete_missing(self, store, anchored):
        """Deleting an unknown id reports False."""
        assert store.delete_comment(NOTE, "01HQZXY1234567890ABCDEFGHJ") is False


class TestResolveAnchors:
    """Tests for CommentStore.resolve_anchors()."""

    def test_unchanged_document_not_rewritten(self, store, anchored):
        """Nothing is written when no record changes."""
        path = store.comment_file_path(NOTE)
        before = path.stat().st_mtime_ns

        report = store.resolve_anchors(NOTE, DOC, 0.3)

        assert report.changed is False
        assert report.anchors[anchored.id].line == 1
        assert path.stat().st_mtime_ns == before

    def test_orphan_and_restore_persist(self, store, anchored):
        """Status and line hint changes are written back."""
        store.resolve_anchors(NOTE, "Intro line.\nEnd.", 0.3)

        (orphaned,) = store.get_comments(NOTE)
        assert orphaned.status == CommentStatus.ORPHANED
        assert orphaned.target.line_hint == 1

        store.resolve_anchors(NOTE, "New first line.\n" + DOC, 0.3)

        (restored,) = store.get_comments(NOTE)
        assert restored.status == CommentStatus.ACTIVE
        assert restored.target.line_hint == 2

    def test_document_without_comments(self, store):
        """Documents without a comment file produce an empty report."""
        report = store.resolve_anchors(NOTE, DOC, 0.3)

        assert report.total_anchored == 0
        assert store.comment_file_path(NOTE) is None


class TestRenameAndDelete:
    """Tests for document rename and delete handling."""

    def test_handle_rename(self, store, anchored):
        """Comments follow a renamed document."""
        assert store.handle_rename(NOTE, "archive/today.md") is True

        assert store.get_comments(NOTE) == []
        (comment,) = store.get_comments("archive/today.md")
        assert isinstance(comment, AnchoredComment)
        path = store.comment_file_path("archive/today.md")
        assert path.name == "notes__today.md.json"
        assert read_comment_file(path).source_file == "archive/today.md"

    def test_handle_rename_unknown(self, store):
        """Renaming a document without comments does nothing."""
        assert store.handle_rename("a.md", "b.md") is False

    def test_handle_delete_keep(self, store, anchored):
        """Keeping the comment file only drops the mapping."""
        path = store.comment_file_path(NOTE)

        assert store.handle_delete(NOTE, delete_file=False) is True
        assert store.get_comments(NOTE) == []
        assert path.exists()

    def test_handle_delete_removes_files(self, store, anchored):
        """Deleting removes the comment file and its lock file."""
        path = store.comment_file_path(NOTE)

        assert store.handle_delete(NOTE, delete_file=True) is True
        assert not path.exists()
        assert not lock_path_for(path).exists()

    def test_index_survives_reload(self, store, anchored):
        """A fresh store finds comments through the saved index."""
        fresh = CommentStore(store.base_path)
        fresh.initialize()

        assert [c.id for c in fresh.get_comments(NOTE)] == [anchored.id]
