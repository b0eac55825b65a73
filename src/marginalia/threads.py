"""Grouping comments into threads and filtering them for display."""

from collections.abc import Iterable, Mapping
from typing import Literal, NamedTuple

from marginalia.models import (
    AnchoredComment,
    CommentStatus,
    NoteComment,
    ReplyComment,
    Resolution,
    ResolvedAnchor,
)
from marginalia.utils.logging import get_logger

ThreadFilter = Literal["all", "open", "resolved", "active", "orphaned"]
SortOrder = Literal["position", "created"]


class CommentThread(NamedTuple):
    """An anchored root comment with its replies (oldest first)."""

    root: AnchoredComment
    replies: list[ReplyComment]


class PanelData(NamedTuple):
    """Everything shown for one document: notes and anchored threads."""

    note_comments: list[NoteComment]
    threads: list[CommentThread]


def get_threads(
    comments: Iterable[AnchoredComment | NoteComment | ReplyComment],
) -> list[CommentThread]:
    """Group replies under their anchored root comments.

    Roots keep their stored order. Replies pointing at a missing parent are
    reported as warnings and left out.
    """
    roots: list[AnchoredComment] = []
    reply_map: dict[str, list[ReplyComment]] = {}

    for comment in comments:
        if isinstance(comment, AnchoredComment):
            roots.append(comment)
        elif isinstance(comment, ReplyComment):
            reply_map.setdefault(comment.parent_id, []).append(comment)

    root_ids = {root.id for root in roots}
    for parent_id in reply_map:
        if parent_id not in root_ids:
            get_logger().warning(f"Reply references non-existent parent: {parent_id}")

    return [
        CommentThread(
            root=root,
            replies=sorted(reply_map.get(root.id, []), key=lambda r: r.created_at),
        )
        for root in roots
    ]


def get_panel_data(
    comments: Iterable[AnchoredComment | NoteComment | ReplyComment],
) -> PanelData:
    """Split a document's comments into notes (oldest first) and threads."""
    comments = list(comments)
    notes = sorted(
        (c for c in comments if isinstance(c, NoteComment)),
        key=lambda c: c.created_at,
    )
    return PanelData(note_comments=notes, threads=get_threads(comments))


def filter_panel_data(
    panel: PanelData,
    thread_filter: ThreadFilter,
    sort_order: SortOrder,
    anchors: Mapping[str, ResolvedAnchor],
) -> PanelData:
    """Filter and sort panel data for display.

    Args:
        panel: Unfiltered panel data
        thread_filter: "all", "open"/"resolved" (by resolution, notes
            included) or "active"/"orphaned" (by anchor status; notes are
            always shown for "active" and never for "orphaned")
        sort_order: "position" orders threads by resolved offset with
            unresolved threads last; "created" orders by creation time
        anchors: Resolved anchors by comment id

    Returns:
        New PanelData; the input is not modified
    """
    notes = list(panel.note_comments)
    threads = list(panel.threads)

    if thread_filter == "active":
        threads = [t for t in threads if t.root.status == CommentStatus.ACTIVE]
    elif thread_filter == "orphaned":
        threads = [t for t in threads if t.root.status == CommentStatus.ORPHANED]
        notes = []
    elif thread_filter in ("open", "resolved"):
        wanted = Resolution(thread_filter)
        threads = [t for t in threads if t.root.resolution == wanted]
        notes = [n for n in notes if n.resolution == wanted]

    if sort_order == "position":

        def position_key(thread: CommentThread) -> tuple[int, int]:
            anchor = anchors.get(thread.root.id)
            if anchor is None:
                return (1, 0)
            return (0, anchor.start)

        threads.sort(key=position_key)
    else:
        threads.sort(key=lambda t: t.root.created_at)

    return PanelData(note_comments=notes, threads=threads)
