"""Filesystem collaborator: atomic writes and containment-checked copies."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from mcs_cli.core.backup import backup_file
from mcs_cli.core.errors import PathContainmentError
from mcs_cli.core.paths import is_contained
from mcs_cli.templates.engine import substitute

logger = logging.getLogger(__name__)


def ensure_directory(path: Path) -> None:
    """Create *path* and any missing parents (idempotent)."""
    path.mkdir(parents=True, exist_ok=True)


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write *text* to *path* (temp file + rename).

    The temp file is created in the destination directory so ``os.replace``
    stays on one filesystem. An existing file keeps its permission bits; a
    new one gets the usual umask-derived mode instead of the temp file's 0600.

    Raises:
        OSError: If the write fails. The destination is left untouched.
    """
    ensure_directory(path.parent)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        if path.exists():
            shutil.copymode(path, tmp_path)
        else:
            os.chmod(tmp_path, _default_file_mode())
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


@dataclass
class CopyResult:
    """Outcome of a containment-checked copy."""

    success: bool
    installed: list[Path] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)
    error: str | None = None


def render_file_bytes(source: Path, values: Mapping[str, str]) -> bytes:
    """Bytes a copy of *source* would hold: UTF-8 text is substituted, anything else is raw."""
    raw = source.read_bytes()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw
    return substitute(text, values, emit_warnings=False).encode("utf-8")


def _copy_file(source: Path, dest: Path, values: Mapping[str, str], executable: bool) -> Path | None:
    """Write *source* to *dest*; returns the backup taken of a differing existing file."""
    payload = render_file_bytes(source, values)
    backup = None
    if dest.is_file() and not dest.is_symlink() and dest.read_bytes() != payload:
        backup = backup_file(dest)
    if dest.exists() or dest.is_symlink():
        dest.unlink()
    dest.write_bytes(payload)
    if executable and os.name != "nt":
        dest.chmod(0o755)
    else:
        shutil.copymode(source, dest)
    return backup


def check_containment(dest: Path, base: Path) -> None:
    """Raise :class:`PathContainmentError` when *dest* resolves outside *base*."""
    if not is_contained(dest, base):
        raise PathContainmentError(str(dest), str(base))


def copy_into(
    source: Path,
    dest: Path,
    base: Path,
    values: Mapping[str, str] | None = None,
    executable: bool = False,
) -> CopyResult:
    """Copy a file or directory tree from *source* to *dest* inside *base*.

    *dest* is resolved (following symlinks) and must stay within *base*;
    every file below a directory source is checked as well. UTF-8 text is
    passed through placeholder substitution, anything else is copied
    byte-for-byte. An existing destination with different content is backed
    up first; a failed backup fails the copy.
    """
    values = values or {}
    try:
        check_containment(dest, base)
    except PathContainmentError as exc:
        logger.warning("%s", exc)
        return CopyResult(success=False, error=str(exc))

    if not source.exists():
        return CopyResult(success=False, error=f"Pack source not found: {source}")

    installed: list[Path] = []
    backups: list[Path] = []
    try:
        ensure_directory(dest.parent)
        if source.is_dir():
            for item in sorted(source.rglob("*")):
                if item.is_dir():
                    continue
                target = dest / item.relative_to(source)
                check_containment(target, base)
                ensure_directory(target.parent)
                if (backup := _copy_file(item, target, values, executable)) is not None:
                    backups.append(backup)
                installed.append(target)
        else:
            if (backup := _copy_file(source, dest, values, executable)) is not None:
                backups.append(backup)
            installed.append(dest)
    except PathContainmentError as exc:
        logger.warning("%s", exc)
        return CopyResult(success=False, installed=installed, backups=backups, error=str(exc))
    except OSError as exc:
        return CopyResult(success=False, installed=installed, backups=backups, error=str(exc))

    return CopyResult(success=True, installed=installed, backups=backups)


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree if present."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


__all__ = [
    "CopyResult",
    "atomic_write_text",
    "check_containment",
    "copy_into",
    "ensure_directory",
    "remove_path",
    "render_file_bytes",
]
