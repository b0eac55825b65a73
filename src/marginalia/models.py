"""Data models for anchored comments, notes, replies and comment files."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, NamedTuple

from pydantic import BaseModel, Field, field_validator
from ulid import new as new_ulid


def utc_now() -> str:
    """Current time as an ISO 8601 UTC timestamp with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _validate_utc_timestamp(v: str) -> str:
    try:
        dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
        if dt.tzinfo is None or dt.tzinfo.utcoffset(None) != timezone.utc.utcoffset(None):
            raise ValueError("Timestamp must be in UTC timezone")
        return v
    except (ValueError, AttributeError) as e:
        raise ValueError(f"Invalid ISO 8601 UTC timestamp: {v}") from e


class CommentStatus(str, Enum):
    """Anchor status, recomputed on every resolution pass."""

    ACTIVE = "active"  # Anchor resolved against the current document
    ORPHANED = "orphaned"  # Anchor could not be resolved


class Resolution(str, Enum):
    """User-controlled open/resolved state of a root comment."""

    OPEN = "open"
    RESOLVED = "resolved"


class CommentTarget(BaseModel):
    """Anchor descriptor recorded when a comment is created.

    - exact: the literal text span that was selected (primary search key)
    - prefix/suffix: up to ~50 characters immediately before/after the span
    - heading_context: nearest preceding Markdown heading line, if any
    - line_hint: zero-based line where the span last resolved (performance
      hint only, never ground truth)
    """

    exact: str
    prefix: str = ""
    suffix: str = ""
    heading_context: str | None = None
    line_hint: int | None = Field(default=None, ge=0)


class _CommentBase(BaseModel):
    id: str = Field(default_factory=lambda: str(new_ulid()))
    body: str = Field(..., min_length=1, max_length=10000)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @field_validator("id")
    @classmethod
    def validate_ulid(cls, v: str) -> str:
        """Validate that id is a valid ULID (26 characters)."""
        if len(v) != 26:
            raise ValueError(f"ULID must be exactly 26 characters, got {len(v)}")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_utc_timestamp(cls, v: str) -> str:
        """Validate that timestamps are valid ISO 8601 UTC format."""
        return _validate_utc_timestamp(v)

    def touch(self) -> None:
        """Refresh updated_at to the current time."""
        self.updated_at = utc_now()


class AnchoredComment(_CommentBase):
    """Root comment attached to a span of text in the document."""

    kind: Literal["anchored"] = "anchored"
    target: CommentTarget
    status: CommentStatus = CommentStatus.ACTIVE
    resolution: Resolution = Resolution.OPEN


class NoteComment(_CommentBase):
    """Root comment about the whole document; never resolved against text."""

    kind: Literal["note"] = "note"
    resolution: Resolution = Resolution.OPEN


class ReplyComment(_CommentBase):
    """Reply to an anchored comment."""

    kind: Literal["reply"] = "reply"
    parent_id: str = Field(..., min_length=26, max_length=26)


RootComment = AnchoredComment | NoteComment

CommentData = Annotated[
    AnchoredComment | NoteComment | ReplyComment,
    Field(discriminator="kind"),
]


class CommentFile(BaseModel):
    """Root structure of a per-document comment file."""

    version: Literal[1] = 1
    source_file: str = Field(..., min_length=1, description="Document path (POSIX separators)")
    comments: list[CommentData] = Field(default_factory=list)

    def find(self, comment_id: str) -> AnchoredComment | NoteComment | ReplyComment | None:
        """Return the comment with the given id, or None."""
        for comment in self.comments:
            if comment.id == comment_id:
                return comment
        return None


class PathIndexData(BaseModel):
    """Mapping from document paths to comment file names."""

    version: Literal[1] = 1
    mappings: dict[str, str] = Field(default_factory=dict)


class ResolvedAnchor(NamedTuple):
    """Location of an anchor in the current document text.

    Recomputed on demand and never persisted.
    """

    start: int  # Offset of the first matched character
    end: int  # Offset one past the last matched character
    line: int  # Zero-based line containing start
    stage: Literal[1, 2, 3]  # Pipeline stage that produced the match


class ReconcileReport(BaseModel):
    """Outcome of reconciling a document's comments against its text.

    Lists the anchors that resolved and counts how comment records changed.
    The caller uses ``changed`` to decide whether to persist.
    """

    anchors: dict[str, ResolvedAnchor] = Field(default_factory=dict)
    total_anchored: int = Field(default=0, ge=0, description="Anchored comments examined")
    active_count: int = Field(default=0, ge=0, description="Comments with status=active after the pass")
    orphaned_count: int = Field(default=0, ge=0, description="Comments with status=orphaned after the pass")
    restored_count: int = Field(default=0, ge=0, description="Comments flipped orphaned -> active")
    newly_orphaned_count: int = Field(default=0, ge=0, description="Comments flipped active -> orphaned")
    changed_count: int = Field(default=0, ge=0, description="Comments whose persisted fields changed")

    @property
    def changed(self) -> bool:
        """True if any comment record must be persisted again."""
        return self.changed_count > 0
