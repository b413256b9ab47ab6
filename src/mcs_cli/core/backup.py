"""Timestamped backups of files mcs is about to overwrite."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".backup."
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def backup_path_for(path: Path, now: datetime | None = None) -> Path:
    """Return an unused ``<name>.backup.<timestamp>`` path beside *path*."""
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    candidate = path.with_name(f"{path.name}{BACKUP_MARKER}{stamp}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}{BACKUP_MARKER}{stamp}_{counter}")
        counter += 1
    return candidate


def backup_file(path: Path, now: datetime | None = None) -> Path | None:
    """Copy *path* to a timestamped sibling, keeping its mode.

    Returns the backup path, or None when *path* is not an existing file.

    Raises:
        OSError: If the copy fails.
    """
    if not path.is_file():
        return None
    backup = backup_path_for(path, now)
    shutil.copy2(path, backup)
    logger.debug("Backed up %s to %s", path, backup.name)
    return backup


def find_backups(directory: Path) -> list[Path]:
    """Every ``*.backup.*`` file below *directory*, sorted."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob(f"*{BACKUP_MARKER}*") if p.is_file())


__all__ = ["BACKUP_MARKER", "backup_file", "backup_path_for", "find_backups"]
