"""OS-level locks guarding comment files against concurrent writers.

A reconciliation pass mutates comment records in place, so two processes
must not read-modify-write the same comment file at once. Locks are taken on
a ``<file>.lock`` sibling so the comment file itself can be replaced by an
atomic rename while the lock is held.
"""

import contextlib
import os
import sys
import time
from collections.abc import Generator
from pathlib import Path
from typing import Literal

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

LockMode = Literal["shared", "exclusive"]


class LockTimeout(Exception):  # noqa: N818
    """Raised when a comment file lock cannot be acquired in time."""


def lock_path_for(path: Path) -> Path:
    """Lock file used for a given comment file."""
    return path.with_name(path.name + ".lock")


def _try_lock(fd: int, mode: LockMode) -> bool:
    if sys.platform == "win32":
        # msvcrt has no shared locks; lock the first byte exclusively
        try:
            os.lseek(fd, 0, os.SEEK_SET)
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            return True
        except OSError:
            return False

    operation = fcntl.LOCK_SH if mode == "shared" else fcntl.LOCK_EX
    try:
        fcntl.flock(fd, operation | fcntl.LOCK_NB)
        return True
    except BlockingIOError:
        return False


def _unlock(fd: int) -> None:
    if sys.platform == "win32":
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)


@contextlib.contextmanager
def file_lock(
    path: Path, mode: LockMode = "exclusive", timeout: float = 5.0
) -> Generator[None, None, None]:
    """Hold a lock on ``path``'s lock file for the duration of the block.

    Args:
        path: Comment file (or any file) to guard
        mode: "shared" for readers, "exclusive" for writers
        timeout: Maximum seconds to wait

    Raises:
        LockTimeout: If the lock is still held elsewhere after ``timeout``

    Example:
        >>> with file_lock(comment_path):
        ...     atomic_write_json(data, comment_path)
    """
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    with open(lock_path, "a+", encoding="utf-8") as lock_file:
        fd = lock_file.fileno()
        deadline = time.monotonic() + timeout
        delay = 0.01

        while not _try_lock(fd, mode):
            if time.monotonic() >= deadline:
                raise LockTimeout(
                    f"Failed to acquire {mode} lock on {path} after {timeout:.1f} seconds"
                )
            time.sleep(delay)
            delay = min(delay * 2, 0.1)

        try:
            yield
        finally:
            _unlock(fd)
