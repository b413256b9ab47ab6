"""CLI tests for ``mcs sync``, ``mcs index``, ``mcs doctor`` and ``mcs pack``."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mcs_cli import __version__
from mcs_cli.cli.app import app
from mcs_cli.cli.commands import sync as sync_command
from mcs_cli.core.constants import GLOBAL_SCOPE_SENTINEL
from mcs_cli.core.paths import Environment
from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.core.state import ProjectState
from mcs_cli.install.scope import SyncScope
from tests.fakes import FakeAssistant, FakePackageManager, FakePrompter, FakeShell, Harness

runner = CliRunner()

MANIFEST = """\
schemaVersion: 1
identifier: {identifier}
displayName: {identifier} pack
description: Commands for {identifier}
version: 1.0.0
components:
  - id: review
    displayName: Review command
    type: command
    installAction:
      type: copyPackFile
      source: commands/review.md
      destination: review.md
      fileType: command
"""


@pytest.fixture()
def home(tmp_path: Path, monkeypatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("MCS_HOME", str(home / ".mcs"))
    monkeypatch.setenv("MCS_CLAUDE_HOME", str(home / ".claude"))
    for var in ("CI", "GITHUB_ACTIONS"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture()
def packs_dir(tmp_path: Path) -> Path:
    root = tmp_path / "packs"
    for identifier in ("ios", "web"):
        pack_dir = root / identifier
        (pack_dir / "commands").mkdir(parents=True)
        (pack_dir / "commands" / "review.md").write_text(f"Review {identifier}")
        (pack_dir / "techpack.yaml").write_text(MANIFEST.format(identifier=identifier))
    return root


@pytest.fixture()
def fake_collaborators(monkeypatch):
    """Build configurators around recording fakes instead of real brew/claude/git."""

    def build(environment, scope, catalog, output, assume_yes=False):
        harness = Harness(
            environment=environment,
            scope=scope,
            shell=FakeShell(environment),
            package_manager=FakePackageManager(),
            assistant=FakeAssistant(),
            output=output,
            prompter=FakePrompter(),
        )
        return harness.configurator(catalog.available_packs)

    monkeypatch.setattr(sync_command, "build_configurator", build)


def test_version_flag():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_sync_installs_selected_pack(home, packs_dir, tmp_path, fake_collaborators):
    project = tmp_path / "project"
    project.mkdir()

    result = runner.invoke(app, ["sync", str(project), "--pack", "ios", "--packs-dir", str(packs_dir)])

    assert result.exit_code == 0, result.output
    assert (project / ".claude" / "commands" / "review.md").read_text() == "Review ios"
    assert ProjectState(project / ".claude" / ".mcs-project").configured_packs == ["ios"]
    assert "+1 added" in result.output


def test_sync_without_flags_resyncs_configured_packs(home, packs_dir, tmp_path, fake_collaborators):
    project = tmp_path / "project"
    project.mkdir()
    runner.invoke(app, ["sync", str(project), "--pack", "web", "--packs-dir", str(packs_dir)])

    result = runner.invoke(app, ["sync", str(project), "--packs-dir", str(packs_dir)])

    assert result.exit_code == 0, result.output
    assert "~1 updated" in result.output


def test_sync_all_then_narrow_selection(home, packs_dir, tmp_path, fake_collaborators):
    project = tmp_path / "project"
    project.mkdir()
    runner.invoke(app, ["sync", str(project), "--all", "--packs-dir", str(packs_dir)])

    result = runner.invoke(app, ["sync", str(project), "--pack", "web", "--packs-dir", str(packs_dir)])

    assert result.exit_code == 0, result.output
    assert ProjectState(project / ".claude" / ".mcs-project").configured_packs == ["web"]
    assert "-1 removed" in result.output


def test_sync_global_scope(home, packs_dir, fake_collaborators):
    result = runner.invoke(app, ["sync", "--global", "--pack", "web", "--packs-dir", str(packs_dir)])

    assert result.exit_code == 0, result.output
    assert (home / ".claude" / "commands" / "review.md").read_text() == "Review web"
    index = ProjectIndex(Environment.from_env().projects_index_file).load()
    assert [(entry.path, entry.packs) for entry in index.projects] == [(GLOBAL_SCOPE_SENTINEL, ["web"])]


def test_unknown_pack_is_an_error(home, packs_dir, tmp_path, fake_collaborators):
    result = runner.invoke(app, ["sync", str(tmp_path), "--pack", "android", "--packs-dir", str(packs_dir)])

    assert result.exit_code == 1
    assert "Unknown pack(s): android" in result.output
    assert "ios, web" in result.output


def test_path_and_global_are_exclusive(home, tmp_path):
    result = runner.invoke(app, ["sync", str(tmp_path), "--global"])

    assert result.exit_code == 1
    assert "cannot be combined" in result.output


def test_missing_project_directory(home, tmp_path):
    result = runner.invoke(app, ["sync", str(tmp_path / "nope")])

    assert result.exit_code == 1
    assert "Not a directory" in result.output


def test_dry_run_changes_nothing(home, packs_dir, tmp_path):
    project = tmp_path / "project"
    project.mkdir()

    result = runner.invoke(app, ["sync", str(project), "--pack", "ios", "--dry-run", "--packs-dir", str(packs_dir)])

    assert result.exit_code == 0, result.output
    assert "No changes made (dry run)." in result.output
    assert not (project / ".claude").exists()


def test_index_lists_synced_scopes(home, tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    index = ProjectIndex(Environment.from_env().projects_index_file)
    data = index.load()
    index.upsert(str(project), ["ios"], data)
    index.upsert(GLOBAL_SCOPE_SENTINEL, ["web"], data)
    index.save(data)

    result = runner.invoke(app, ["index"])

    assert result.exit_code == 0, result.output
    assert "Project Index" in result.output
    assert "global" in result.output
    assert "ios" in result.output


def test_index_empty(home):
    result = runner.invoke(app, ["index"])

    assert result.exit_code == 0
    assert "No projects have been synced yet." in result.output


def test_index_prune_removes_missing_projects(home, tmp_path):
    index = ProjectIndex(Environment.from_env().projects_index_file)
    data = index.load()
    index.upsert(str(tmp_path / "gone"), ["ios"], data)
    index.upsert(GLOBAL_SCOPE_SENTINEL, ["web"], data)
    index.save(data)

    result = runner.invoke(app, ["index", "--prune"])

    assert result.exit_code == 0, result.output
    assert "Pruned" in result.output
    assert [entry.path for entry in index.load().projects] == [GLOBAL_SCOPE_SENTINEL]


def test_global_scope_helper_matches_environment(home):
    environment = Environment.from_env()

    scope = SyncScope.global_(environment)

    assert scope.state_file == home / ".mcs" / "global-state.json"
    assert scope.settings_path == home / ".claude" / "settings.json"


def _sync(project: Path, pack: str, packs_dir: Path) -> None:
    project.mkdir(exist_ok=True)
    result = runner.invoke(app, ["sync", str(project), "--pack", pack, "--packs-dir", str(packs_dir)])
    assert result.exit_code == 0, result.output


def test_doctor_on_healthy_project(home, packs_dir, tmp_path, fake_collaborators):
    project = tmp_path / "project"
    _sync(project, "ios", packs_dir)

    result = runner.invoke(app, ["doctor", str(project), "--packs-dir", str(packs_dir)])

    assert result.exit_code == 0, result.output
    assert "0 error(s), 0 warning(s)" in result.output


def test_doctor_fails_when_a_file_is_missing(home, packs_dir, tmp_path, fake_collaborators):
    project = tmp_path / "project"
    _sync(project, "ios", packs_dir)
    (project / ".claude" / "commands" / "review.md").unlink()

    result = runner.invoke(app, ["doctor", str(project), "--packs-dir", str(packs_dir), "--json"])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["healthy"] is False
    failed = [check for check in payload["checks"] if not check["passed"]]
    assert [(check["name"], check["severity"]) for check in failed] == [("Review command", "error")]
    assert (project / ".claude" / ".mcs-project").exists()


def test_doctor_global_scope_with_nothing_synced(home):
    result = runner.invoke(app, ["doctor", "--global"])

    assert result.exit_code == 0, result.output
    assert "No packs configured" in result.output


def test_pack_remove_unconfigures_every_scope(home, packs_dir, tmp_path, fake_collaborators):
    first, second, other = tmp_path / "first", tmp_path / "second", tmp_path / "other"
    _sync(first, "ios", packs_dir)
    _sync(second, "ios", packs_dir)
    _sync(other, "web", packs_dir)

    result = runner.invoke(app, ["pack", "remove", "ios", "--yes", "--packs-dir", str(packs_dir)])

    assert result.exit_code == 0, result.output
    for project in (first, second):
        assert not (project / ".claude" / "commands" / "review.md").exists()
        assert ProjectState(project / ".claude" / ".mcs-project").configured_packs == []
    assert (other / ".claude" / "commands" / "review.md").read_text() == "Review web"
    index = ProjectIndex(Environment.from_env().projects_index_file).load()
    assert [(entry.path, entry.packs) for entry in index.projects] == [(str(other.resolve()), ["web"])]
    assert "removed from 2 of 2 scope(s)" in result.output


def test_pack_remove_can_be_declined(home, packs_dir, tmp_path, fake_collaborators):
    project = tmp_path / "project"
    _sync(project, "ios", packs_dir)

    result = runner.invoke(app, ["pack", "remove", "ios", "--packs-dir", str(packs_dir)], input="n\n")

    assert result.exit_code == 0, result.output
    assert "Removal cancelled." in result.output
    assert ProjectState(project / ".claude" / ".mcs-project").configured_packs == ["ios"]


def test_pack_remove_of_unconfigured_pack_is_an_error(home, packs_dir):
    result = runner.invoke(app, ["pack", "remove", "ios", "--yes", "--packs-dir", str(packs_dir)])

    assert result.exit_code == 1
    assert "not configured in any scope" in result.output
