"""Anchor lifecycle: reconciling comment status with the current document.

Resolution itself is pure (``marginalia.anchors``). This module is the
explicit step that applies its results to comment records: flipping
active/orphaned status and refreshing cached line hints. It never persists
anything; the returned report tells the caller whether it has to.
"""

from collections.abc import Iterable

from marginalia.anchors import resolve_anchor
from marginalia.models import (
    AnchoredComment,
    CommentStatus,
    NoteComment,
    ReconcileReport,
    ReplyComment,
    ResolvedAnchor,
)
from marginalia.utils.logging import get_logger


def reconcile_comment(
    comment: AnchoredComment, doc_text: str, threshold: float
) -> tuple[ResolvedAnchor | None, bool]:
    """Resolve one anchored comment and update its status and line hint in place.

    - Resolved: orphaned comments become active; the line hint is refreshed
      if the resolved line differs.
    - Unresolved: active comments become orphaned; the line hint is kept so a
      later edit restoring the text can still use the fast path.

    Args:
        comment: Anchored comment to update
        doc_text: Full current document text
        threshold: Fuzziness threshold for stage-3 matching

    Returns:
        (resolved anchor or None, whether the comment record changed)
    """
    anchor = resolve_anchor(comment.target, doc_text, threshold)
    changed = False

    if anchor is not None:
        if comment.status == CommentStatus.ORPHANED:
            comment.status = CommentStatus.ACTIVE
            changed = True
        if comment.target.line_hint != anchor.line:
            comment.target.line_hint = anchor.line
            changed = True
    elif comment.status == CommentStatus.ACTIVE:
        comment.status = CommentStatus.ORPHANED
        changed = True

    return anchor, changed


def reconcile_comments(
    comments: Iterable[AnchoredComment | NoteComment | ReplyComment],
    doc_text: str,
    threshold: float = 0.3,
) -> ReconcileReport:
    """Reconcile every anchored comment of a document against its text.

    Note comments and replies are skipped. The caller must hold exclusive
    access to ``comments`` for the duration of the call.

    Args:
        comments: Comment records of one document (mutated in place)
        doc_text: Full current document text snapshot
        threshold: Fuzziness threshold for stage-3 matching

    Returns:
        ReconcileReport mapping comment id to resolved anchor (resolved
        comments only) plus status counts and the number of changed records
    """
    report = ReconcileReport()

    for comment in comments:
        if not isinstance(comment, AnchoredComment):
            continue

        previous_status = comment.status
        anchor, changed = reconcile_comment(comment, doc_text, threshold)

        report.total_anchored += 1
        if anchor is not None:
            report.anchors[comment.id] = anchor
            report.active_count += 1
            if previous_status == CommentStatus.ORPHANED:
                report.restored_count += 1
        else:
            report.orphaned_count += 1
            if previous_status == CommentStatus.ACTIVE:
                report.newly_orphaned_count += 1
        if changed:
            report.changed_count += 1

    get_logger().debug(
        "Reconciled comments",
        total=report.total_anchored,
        active=report.active_count,
        orphaned=report.orphaned_count,
        changed=report.changed_count,
    )
    return report
