"""Comment file storage: one JSON file of comments per document.

Layout under the storage directory::

    _index.json                    document path -> comment file name
    notes__today.md.json           CommentFile for notes/today.md
    notes__today.md.json.lock      lock file taken while writing

Every mutation is a locked read-modify-write that ends in an atomic rename.
"""

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from marginalia.locking import file_lock, lock_path_for
from marginalia.models import (
    AnchoredComment,
    CommentFile,
    CommentTarget,
    NoteComment,
    ReconcileReport,
    ReplyComment,
    Resolution,
)
from marginalia.path_index import PathIndex
from marginalia.reconcile import reconcile_comments
from marginalia.utils.atomic_write import atomic_write_json, read_json
from marginalia.utils.logging import get_logger

T = TypeVar("T")


def read_comment_file(path: Path) -> CommentFile:
    """Read and validate a comment file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or fails schema validation
    """
    if not path.is_file():
        raise FileNotFoundError(f"Comment file not found: {path}")

    data = read_json(path)
    try:
        return CommentFile.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Comment file {path} failed schema validation: {e}") from e


def write_comment_file(path: Path, comment_file: CommentFile) -> None:
    """Write a comment file atomically with deterministic JSON.

    Raises:
        OSError: If the write fails
    """
    atomic_write_json(comment_file.model_dump(mode="json"), path)


class CommentStore:
    """Persistent comment storage for the documents of one project.

    Args:
        base_path: Storage directory (created by ``initialize``)
        lock_timeout: Seconds to wait for a comment file lock
    """

    def __init__(self, base_path: Path, lock_timeout: float = 5.0) -> None:
        self.base_path = base_path
        self.lock_timeout = lock_timeout
        self.path_index = PathIndex(base_path)

    def initialize(self) -> None:
        """Create the storage directory and load the path index."""
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.path_index.load()

    def comment_file_path(self, note_path: str) -> Path | None:
        """Location of a document's comment file, or None if it has none."""
        file_name = self.path_index.get_comment_file_name(note_path)
        if file_name is None:
            return None
        return self.base_path / file_name

    def _load(self, note_path: str) -> CommentFile | None:
        path = self.comment_file_path(note_path)
        if path is None or not path.exists():
            return None
        return read_comment_file(path)

    def _update(
        self,
        note_path: str,
        update_fn: Callable[[CommentFile], tuple[T, bool]],
        *,
        create: bool = False,
    ) -> T | None:
        """Locked read-modify-write of a document's comment file.

        ``update_fn`` mutates the file and returns ``(result, changed)``;
        the file is only written when ``changed`` is true.

        Returns:
            The update function's result, or None if the document has no
            comment file and ``create`` is false
        """
        path = self.comment_file_path(note_path)
        if path is None:
            if not create:
                return None
            path = self.base_path / self.path_index.get_or_create_comment_file_name(note_path)
            self.path_index.save()

        with file_lock(path, mode="exclusive", timeout=self.lock_timeout):
            if path.exists():
                comment_file = read_comment_file(path)
            elif create:
                comment_file = CommentFile(source_file=note_path)
            else:
                return None

            result, changed = update_fn(comment_file)
            if changed:
                write_comment_file(path, comment_file)

        return result

    def get_comments(self, note_path: str) -> list[AnchoredComment | NoteComment | ReplyComment]:
        comment_file = self._load(note_path)
        if comment_file is None:
            return []
        return comment_file.comments

    def add_comment(self, note_path: str, body: str, target: CommentTarget) -> AnchoredComment:
        """Add an anchored comment (status active, resolution open)."""
        comment = AnchoredComment(body=body, target=target)

        def append(comment_file: CommentFile) -> tuple[AnchoredComment, bool]:
            comment_file.comments.append(comment)
            return comment, True

        self._update(note_path, append, create=True)
        return comment

    def add_note_comment(self, note_path: str, body: str) -> NoteComment:
        """Add a whole-document comment."""
        comment = NoteComment(body=body)

        def append(comment_file: CommentFile) -> tuple[NoteComment, bool]:
            comment_file.comments.append(comment)
            return comment, True

        self._update(note_path, append, create=True)
        return comment

    def add_reply(self, note_path: str, parent_id: str, body: str) -> ReplyComment | None:
        """Reply to an anchored comment.

        Returns:
            The reply, or None if the parent is missing or not an anchored comment
        """

        def append(comment_file: CommentFile) -> tuple[ReplyComment | None, bool]:
            parent = comment_file.find(parent_id)
            if not isinstance(parent, AnchoredComment):
                return None, False
            reply = ReplyComment(parent_id=parent_id, body=body)
            comment_file.comments.append(reply)
            return reply, True

        return self._update(note_path, append)

    def update_comment(
        self, note_path: str, comment_id: str, body: str
    ) -> AnchoredComment | NoteComment | ReplyComment | None:
        """Replace a comment's body. Status is never touched here."""

        def edit(
            comment_file: CommentFile,
        ) -> tuple[AnchoredComment | NoteComment | ReplyComment | None, bool]:
            comment = comment_file.find(comment_id)
            if comment is None:
                return None, False
            # Validate through the model before mutating
            type(comment).model_validate({**comment.model_dump(), "body": body})
            comment.body = body
            comment.touch()
            return comment, True

        return self._update(note_path, edit)

    def toggle_resolution(
        self, note_path: str, comment_id: str
    ) -> AnchoredComment | NoteComment | None:
        """Flip a root comment between open and resolved."""

        def toggle(comment_file: CommentFile) -> tuple[AnchoredComment | NoteComment | None, bool]:
            comment = comment_file.find(comment_id)
            if not isinstance(comment, (AnchoredComment, NoteComment)):
                return None, False
            comment.resolution = (
                Resolution.RESOLVED if comment.resolution == Resolution.OPEN else Resolution.OPEN
            )
            comment.touch()
            return comment, True

        return self._update(note_path, toggle)

    def delete_comment(self, note_path: str, comment_id: str) -> bool:
        """Delete a comment; deleting an anchored comment also deletes its replies."""

        def delete(comment_file: CommentFile) -> tuple[bool, bool]:
            target = comment_file.find(comment_id)
            if target is None:
                return False, False

            cascade = isinstance(target, AnchoredComment)
            comment_file.comments = [
                c
                for c in comment_file.comments
                if c.id != comment_id
                and not (cascade and isinstance(c, ReplyComment) and c.parent_id == comment_id)
            ]
            return True, True

        return bool(self._update(note_path, delete))

    def resolve_anchors(self, note_path: str, doc_text: str, threshold: float) -> ReconcileReport:
        """Reconcile a document's comments and persist any status/line-hint changes."""

        def reconcile(comment_file: CommentFile) -> tuple[ReconcileReport, bool]:
            report = reconcile_comments(comment_file.comments, doc_text, threshold)
            return report, report.changed

        report = self._update(note_path, reconcile)
        if report is None:
            return ReconcileReport()

        if report.newly_orphaned_count:
            get_logger().info(f"{report.newly_orphaned_count} comment(s) orphaned in {note_path}")
        return report

    def handle_rename(self, old_path: str, new_path: str) -> bool:
        """Point a renamed document at its existing comment file.

        Returns:
            True if the document had comments
        """

        def retarget(comment_file: CommentFile) -> tuple[bool, bool]:
            comment_file.source_file = new_path
            return True, True

        if not self.path_index.rename_path(old_path, new_path):
            return False
        self._update(new_path, retarget)
        return True

    def handle_delete(self, note_path: str, delete_file: bool) -> bool:
        """Forget a deleted document, optionally deleting its comment file.

        Returns:
            True if the document had comments
        """
        file_name = self.path_index.delete_path(note_path)
        if file_name is None:
            return False

        if delete_file:
            path = self.base_path / file_name
            path.unlink(missing_ok=True)
            lock_path_for(path).unlink(missing_ok=True)
            get_logger().debug("Deleted comment file", path=str(path))
        return True
