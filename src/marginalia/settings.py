"""User-configurable settings, stored as ``<storage_dir>/settings.json``."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from marginalia.utils.atomic_write import atomic_write_json, read_json

DEFAULT_STORAGE_DIR = ".marginalia"
SETTINGS_FILE_NAME = "settings.json"


class Settings(BaseModel):
    """Project settings with the defaults used when no file exists."""

    fuzzy_match_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Maximum edit distance as a fraction of the anchored text length",
    )
    comment_sort_order: Literal["position", "created"] = "position"
    orphan_handling: Literal["keep", "delete"] = Field(
        default="keep",
        description="Whether comments of a deleted document are kept or deleted",
    )
    storage_dir: str = Field(default=DEFAULT_STORAGE_DIR, min_length=1)


def settings_path(project_root: Path) -> Path:
    return project_root / DEFAULT_STORAGE_DIR / SETTINGS_FILE_NAME


def load_settings(path: Path) -> Settings:
    """Load settings from path, falling back to defaults if it does not exist.

    Raises:
        ValueError: If the file is not valid JSON or holds invalid values
    """
    if not path.exists():
        return Settings()

    data = read_json(path)
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid settings in {path}: {e}") from e


def save_settings(path: Path, settings: Settings) -> None:
    atomic_write_json(settings.model_dump(mode="json"), path)
