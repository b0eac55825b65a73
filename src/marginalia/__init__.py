"""Comments anchored to text spans that can be re-located after document edits."""

from marginalia.anchors import create_target, resolve_anchor, score_context
from marginalia.fuzzy import (
    fuzzy_find,
    fuzzy_find_in_original,
    levenshtein_distance,
    normalize_whitespace,
)
from marginalia.models import (
    AnchoredComment,
    CommentStatus,
    CommentTarget,
    NoteComment,
    ReconcileReport,
    ReplyComment,
    ResolvedAnchor,
)
from marginalia.reconcile import reconcile_comments

__all__ = [
    "AnchoredComment",
    "CommentStatus",
    "CommentTarget",
    "NoteComment",
    "ReconcileReport",
    "ReplyComment",
    "ResolvedAnchor",
    "create_target",
    "fuzzy_find",
    "fuzzy_find_in_original",
    "levenshtein_distance",
    "normalize_whitespace",
    "reconcile_comments",
    "resolve_anchor",
    "score_context",
]
