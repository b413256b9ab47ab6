"""Tests for environment resolution and path containment."""

from __future__ import annotations

from pathlib import Path

from mcs_cli.core.paths import Environment, get_claude_home, get_mcs_home, is_contained, relative_path, safe_path


def test_env_vars_override_homes(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("MCS_HOME", str(tmp_path / "mcs"))
    monkeypatch.setenv("MCS_CLAUDE_HOME", str(tmp_path / "claude"))
    monkeypatch.setenv("MCS_BREW_PATH", "/custom/bin/brew")

    environment = Environment.from_env()

    assert get_mcs_home() == tmp_path / "mcs"
    assert get_claude_home() == tmp_path / "claude"
    assert environment.global_state_file == tmp_path / "mcs" / "global-state.json"
    assert environment.projects_index_file == tmp_path / "mcs" / "projects.yaml"
    assert environment.claude_settings == tmp_path / "claude" / "settings.json"
    assert environment.brew_path == "/custom/bin/brew"


def test_path_with_brew_prepends_brew_directory(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("PATH", "/usr/bin:/bin")
    environment = Environment(tmp_path, tmp_path / ".mcs", tmp_path / ".claude", "/opt/homebrew/bin/brew")

    assert environment.path_with_brew.split(":")[0] == "/opt/homebrew/bin"


def test_safe_path_accepts_nested_paths(tmp_path: Path):
    assert safe_path("hooks/start.sh", tmp_path) == tmp_path / "hooks" / "start.sh"


def test_safe_path_rejects_parent_traversal(tmp_path: Path):
    assert safe_path("../outside.txt", tmp_path) is None
    assert safe_path("a/../../outside.txt", tmp_path) is None


def test_safe_path_rejects_symlink_escape(tmp_path: Path):
    base = tmp_path / "base"
    base.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()
    (base / "link").symlink_to(outside, target_is_directory=True)

    assert safe_path("link/file.txt", base) is None


def test_base_itself_is_contained(tmp_path: Path):
    assert is_contained(tmp_path, tmp_path)


def test_relative_path_falls_back_to_full_path(tmp_path: Path):
    assert relative_path(tmp_path / "a" / "b.md", tmp_path) == "a/b.md"
    assert relative_path(Path("/elsewhere/file"), tmp_path) == "/elsewhere/file"
