"""Index mapping document paths to their comment file names.

The mapping is stored as ``_index.json`` in the storage directory so that a
document can be renamed without renaming its comment file.
"""

from pathlib import Path

from pydantic import ValidationError

from marginalia.models import PathIndexData
from marginalia.utils.atomic_write import atomic_write_json, read_json
from marginalia.utils.logging import get_logger

INDEX_FILE_NAME = "_index.json"


def comment_file_name_for(note_path: str) -> str:
    """Derive a flat comment file name from a document path.

    ``notes/daily/today.md`` -> ``notes__daily__today.md.json``
    """
    return note_path.replace("/", "__") + ".json"


class PathIndex:
    """In-memory view of ``_index.json`` with write-through saves."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path
        self.data = PathIndexData()

    @property
    def index_path(self) -> Path:
        return self.base_path / INDEX_FILE_NAME

    def load(self) -> None:
        """Load the index from disk; a missing or corrupt index starts empty."""
        if not self.index_path.exists():
            self.data = PathIndexData()
            return

        try:
            self.data = PathIndexData.model_validate(read_json(self.index_path))
        except (ValueError, ValidationError) as e:
            get_logger().warning(f"Ignoring unreadable path index {self.index_path}: {e}")
            self.data = PathIndexData()

    def save(self) -> None:
        atomic_write_json(self.data.model_dump(mode="json"), self.index_path)

    def get_comment_file_name(self, note_path: str) -> str | None:
        return self.data.mappings.get(note_path)

    def get_or_create_comment_file_name(self, note_path: str) -> str:
        """Return the mapped file name, registering a new one if needed.

        The caller is responsible for calling ``save()`` afterwards.
        """
        existing = self.data.mappings.get(note_path)
        if existing:
            return existing

        file_name = comment_file_name_for(note_path)
        self.data.mappings[note_path] = file_name
        return file_name

    def rename_path(self, old_path: str, new_path: str) -> bool:
        """Move a mapping to a new document path; the file name is kept.

        Returns:
            True if old_path was mapped
        """
        file_name = self.data.mappings.pop(old_path, None)
        if file_name is None:
            return False

        self.data.mappings[new_path] = file_name
        self.save()
        return True

    def delete_path(self, note_path: str) -> str | None:
        """Remove a mapping.

        Returns:
            The file name that was mapped, or None
        """
        file_name = self.data.mappings.pop(note_path, None)
        if file_name is None:
            return None

        self.save()
        return file_name
