"""Atomic JSON writes for comment files, the path index and settings.

Writes go to a temp file in the target directory which is then renamed over
the target, so readers never observe a partially written file.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write_json(data: Any, target_path: str | Path) -> None:
    """Write data to target_path as deterministic JSON, atomically.

    Output uses sorted keys, 2-space indent and a trailing newline so
    comment files diff cleanly under version control.

    Args:
        data: JSON-serializable object (use ``model_dump(mode="json")`` for models)
        target_path: Destination file path

    Raises:
        OSError: If write or rename fails
        TypeError: If data is not JSON-serializable
    """
    target_path = Path(target_path)
    dir_path = target_path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    # Temp file must live on the same filesystem for an atomic rename
    fd, temp_path = tempfile.mkstemp(dir=dir_path, prefix=".tmp_", suffix=".json")

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True, ensure_ascii=False)
            f.write("\n")

        os.chmod(temp_path, 0o644)
        os.replace(temp_path, target_path)

    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass  # Already renamed or never created
        raise


def read_json(path: Path) -> Any:
    """Read a JSON file, reporting malformed content as ValueError.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON
    """
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e
