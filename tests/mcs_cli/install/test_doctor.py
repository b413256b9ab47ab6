"""Tests for the read-only scope health checks."""

from __future__ import annotations

import pytest

from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.install.doctor import Doctor, Severity
from mcs_cli.packs.models import CopyFileType
from mcs_cli.packs.registry import PackCatalog


@pytest.fixture()
def ios(pack_builder):
    return (
        pack_builder("ios")
        .server("xcode")
        .file("build.md", "Build __REPO_NAME__")
        .file("start.sh", "#!/bin/bash\n", file_type=CopyFileType.HOOK, hook_event="SessionStart")
        .brew("swiftlint")
        .plugin("review@org/repo")
        .shell("setup", "echo setup")
        .template("ios", "Use xcodebuild for __REPO_NAME__.")
        .build()
    )


def _doctor(harness, packs) -> Doctor:
    return Doctor(
        harness.environment,
        harness.scope,
        PackCatalog(packs),
        harness.package_manager,
        harness.assistant,
    )


def _checks(report) -> dict[str, object]:
    return {check.name: check for check in report.checks}


def test_freshly_synced_scope_is_healthy(harness, ios):
    harness.sync([ios])

    report = _doctor(harness, [ios]).run()

    assert report.healthy
    assert report.warnings == []
    checks = _checks(report)
    assert {"xcode", "build.md", "start.sh", "swiftlint", "review", "ios", "this scope"} <= set(checks)
    assert "setup" not in checks
    assert all(check.passed for check in report.checks)


def test_missing_artifacts_are_errors(harness, ios):
    harness.sync([ios])
    (harness.scope.target_path / "commands" / "build.md").unlink()
    harness.package_manager.installed.discard("swiftlint")
    harness.assistant.plugins.clear()

    report = _doctor(harness, [ios]).run()

    assert not report.healthy
    assert {check.name for check in report.errors} == {"build.md", "swiftlint", "review"}
    assert "Run 'mcs sync'" in _checks(report)["build.md"].message


def test_unregistered_hook_is_an_error(harness, ios):
    harness.sync([ios])
    harness.scope.settings_path.write_text("{}\n")

    report = _doctor(harness, [ios]).run()

    assert [check.name for check in report.errors] == ["start.sh"]
    assert "not registered in settings" in report.errors[0].message


def test_edited_file_and_section_are_drift_warnings(harness, ios):
    harness.sync([ios])
    (harness.scope.target_path / "commands" / "build.md").write_text("local edits")
    path = harness.scope.claude_file_path
    path.write_text(path.read_text().replace("Use xcodebuild", "Use make"))

    report = _doctor(harness, [ios]).run()

    assert report.healthy
    assert {check.name for check in report.warnings} == {"build.md", "ios"}
    assert all(check.severity is Severity.WARNING for check in report.warnings)
    assert "differs from the pack source" in _checks(report)["build.md"].message


def test_unpaired_section_marker_is_an_error(harness, ios):
    harness.sync([ios])
    path = harness.scope.claude_file_path
    path.write_text(path.read_text().replace("<!-- mcs:end ios -->", ""))

    report = _doctor(harness, [ios]).run()

    assert not report.healthy
    assert any("Unpaired section markers: ios" in check.message for check in report.errors)


def test_excluded_components_are_not_checked(harness, ios):
    harness.sync([ios], excluded_components={"ios": {"ios.xcode"}})

    report = _doctor(harness, [ios]).run()

    assert "xcode" not in _checks(report)
    assert report.healthy


def test_missing_pack_and_stale_index_entry_are_warnings(harness, ios, tmp_path):
    harness.sync([ios])
    index = ProjectIndex(harness.environment.projects_index_file)
    data = index.load()
    index.upsert(str(tmp_path / "gone"), ["ios"], data)
    index.save(data)
    before = harness.environment.projects_index_file.read_text()

    report = _doctor(harness, []).run()

    checks = _checks(report)
    assert checks["ios"].section == "Packs"
    assert "mcs pack remove ios" in checks["ios"].message
    assert not checks[str(tmp_path / "gone")].passed
    assert report.healthy
    assert harness.environment.projects_index_file.read_text() == before


def test_index_out_of_step_with_state_is_a_warning(harness, ios):
    harness.sync([ios])
    index = ProjectIndex(harness.environment.projects_index_file)
    data = index.load()
    index.upsert(harness.scope.scope_identifier, ["ios", "web"], data)
    index.save(data)

    report = _doctor(harness, [ios]).run()

    check = _checks(report)["this scope"]
    assert not check.passed
    assert check.severity is Severity.WARNING


def test_backups_are_reported(harness, ios):
    harness.scope.claude_file_path.write_text("My own notes\n")
    harness.sync([ios])

    report = _doctor(harness, [ios]).run()

    assert _checks(report)["backups"].message.startswith("1 backup file(s)")


def test_unreadable_state_stops_further_checks(harness, ios):
    harness.scope.state_file.parent.mkdir(parents=True)
    harness.scope.state_file.write_text("{not json")

    report = _doctor(harness, [ios]).run()

    assert len(report.checks) == 1
    assert not report.healthy
