"""Advisory process lock guarding concurrent syncs."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from mcs_cli.core.errors import LockHeldError

logger = logging.getLogger(__name__)


def _try_lock(fd: IO[str]) -> bool:
    """Attempt a non-blocking exclusive lock; return False if already held.

    On Unix: ``fcntl.flock`` with ``LOCK_NB``.
    On Windows: ``msvcrt.locking`` with ``LK_NBLCK``.
    """
    if sys.platform == "win32":
        import msvcrt

        try:
            msvcrt.locking(fd.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    import fcntl

    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


@contextmanager
def file_lock(lock_path: Path) -> Iterator[Path]:
    """Hold an exclusive advisory lock on *lock_path* for the ``with`` body.

    A second holder fails immediately instead of waiting.

    Raises:
        LockHeldError: If another process holds the lock.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_fd = open(lock_path, "w")  # noqa: SIM115 -- need fd for flock
    try:
        if not _try_lock(lock_fd):
            raise LockHeldError(str(lock_path))
        logger.debug("Acquired lock %s", lock_path)
        yield lock_path
    finally:
        # Closing the descriptor releases the lock.
        lock_fd.close()


__all__ = ["file_lock"]
