"""Tests for the advisory sync lock."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from mcs_cli.core.errors import LockHeldError
from mcs_cli.core.file_lock import file_lock


@pytest.mark.skipif(sys.platform == "win32", reason="flock semantics")
def test_second_holder_fails_immediately(tmp_path: Path):
    lock_path = tmp_path / "mcs" / "lock"

    with file_lock(lock_path):
        with pytest.raises(LockHeldError, match="Another mcs process is running"):
            with file_lock(lock_path):
                pass


def test_lock_is_released_after_block(tmp_path: Path):
    lock_path = tmp_path / "lock"

    with file_lock(lock_path):
        pass
    with file_lock(lock_path) as held:
        assert held == lock_path
