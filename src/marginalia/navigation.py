"""Jumping between resolved comments in document order."""

from collections.abc import Mapping
from typing import Literal

from marginalia.models import ResolvedAnchor

Direction = Literal["next", "prev"]


def find_navigation_target(
    anchors: Mapping[str, ResolvedAnchor],
    current_offset: int,
    direction: Direction,
) -> ResolvedAnchor | None:
    """Find the comment to jump to from the cursor position.

    "next" picks the first anchor starting after ``current_offset``, "prev"
    the last one starting before it. Both wrap around at the ends.

    Args:
        anchors: Resolved anchors by comment id
        current_offset: Cursor offset in the document
        direction: "next" or "prev"

    Returns:
        Target anchor, or None if there are no anchors
    """
    if not anchors:
        return None

    ordered = sorted(anchors.values(), key=lambda a: a.start)

    if direction == "next":
        return next((a for a in ordered if a.start > current_offset), ordered[0])

    return next((a for a in reversed(ordered) if a.start < current_offset), ordered[-1])
