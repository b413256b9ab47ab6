"""End-to-end convergence tests against recording fakes."""

from __future__ import annotations

import json

import pytest

from mcs_cli.core.constants import GLOBAL_SCOPE_SENTINEL
from mcs_cli.core.errors import ConfigurationError, MCSError, StateWriteError
from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.core.state import MCPServerRef, ProjectState
from mcs_cli.install.configurator import PROJECT_PATH_ENV, ProjectHookRunner
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.models import CopyFileType, PeerDependency
from tests.fakes import FakePrompter, output_text


@pytest.fixture()
def ios(pack_builder):
    builder = (
        pack_builder("ios")
        .server("xcode", args=["--project", "__REPO_NAME__"])
        .file("build.md", "Build __REPO_NAME__")
        .file("start.sh", "#!/bin/bash\n", file_type=CopyFileType.HOOK, hook_event="SessionStart")
        .brew("swiftlint")
        .template("ios", "Use xcodebuild for __REPO_NAME__.")
    )
    builder.gitignore_entries.append(".build")
    return builder.build()


@pytest.fixture()
def web(pack_builder):
    return pack_builder("web").file("deploy.md", "Deploy").plugin("review@org/repo").build()


def _state(harness) -> ProjectState:
    return ProjectState(harness.scope.state_file)


def _index_paths(harness) -> dict[str, list[str]]:
    data = ProjectIndex(harness.environment.projects_index_file).load()
    return {entry.path: entry.packs for entry in data.projects}


def _global_ignore(harness) -> list[str]:
    path = harness.environment.home_directory / ".config" / "git" / "ignore"
    return path.read_text().splitlines() if path.exists() else []


# ----------------------------------------------------------------------
# Convergence
# ----------------------------------------------------------------------


def test_add_then_extend_then_swap_selection(harness, ios, web):
    project = harness.scope.files_root
    claude_dir = harness.scope.target_path
    repo = project.name

    report = harness.sync([ios], catalog=[ios, web])

    assert report.added == ["ios"]
    assert harness.assistant.servers[("xcode", "local")] == ["--", "npx", "--project", repo]
    assert (claude_dir / "commands" / "build.md").read_text() == f"Build {repo}"
    assert (claude_dir / "hooks" / "start.sh").exists()
    assert harness.package_manager.install_calls == ["swiftlint"]
    settings = json.loads(harness.scope.settings_path.read_text())
    assert settings["hooks"]["SessionStart"][0]["hooks"][0]["command"] == "bash .claude/hooks/start.sh"
    claude_md = harness.scope.claude_file_path.read_text()
    assert "<!-- mcs:begin ios" in claude_md
    assert f"Use xcodebuild for {repo}." in claude_md
    assert ".build" in _global_ignore(harness)
    record = _state(harness).artifacts("ios")
    assert record.brew_packages == ["swiftlint"]
    assert record.template_sections == ["ios"]
    assert record.gitignore_entries == [".build"]
    assert _index_paths(harness) == {str(project): ["ios"]}

    report = harness.sync([ios, web], catalog=[ios, web])

    assert report.added == ["web"]
    assert report.updated == ["ios"]
    assert harness.prompter.questions == []
    assert harness.assistant.plugins == {"review"}
    assert _state(harness).configured_packs == ["ios", "web"]
    assert json.loads(harness.scope.settings_path.read_text())["enabledPlugins"] == {"review": True}

    report = harness.sync([web], catalog=[ios, web])

    assert report.removed == ["ios"]
    assert harness.prompter.questions == ["Proceed with removal?"]
    assert harness.assistant.removed_servers == [("xcode", "local")]
    assert harness.package_manager.uninstall_calls == ["swiftlint"]
    assert not (claude_dir / "commands" / "build.md").exists()
    assert not (claude_dir / "hooks").exists()
    assert (claude_dir / "commands" / "deploy.md").exists()
    assert "mcs:begin ios" not in harness.scope.claude_file_path.read_text()
    assert "hooks" not in json.loads(harness.scope.settings_path.read_text())
    assert ".build" not in _global_ignore(harness)
    assert _state(harness).configured_packs == ["web"]
    assert _state(harness).artifacts("ios") is None
    assert _index_paths(harness) == {str(project): ["web"]}


def test_second_sync_changes_nothing(harness, ios):
    harness.sync([ios])
    files = {
        path: path.read_text()
        for path in (harness.scope.claude_file_path, harness.scope.settings_path)
    }
    first_record = _state(harness).artifacts("ios")

    report = harness.sync([ios])

    assert report.added == [] and report.removed == []
    assert report.updated == ["ios"]
    assert {path: path.read_text() for path in files} == files
    assert _state(harness).artifacts("ios") == first_record
    assert harness.package_manager.install_calls == ["swiftlint"]
    assert "is up to date" in output_text(harness.output)


def test_empty_selection_removes_everything(harness, ios):
    harness.sync([ios])

    report = harness.sync([], catalog=[ios], confirm_removals=False)

    assert report.removed == ["ios"]
    assert harness.prompter.questions == []
    assert _state(harness).configured_packs == []
    assert not harness.scope.settings_path.exists()
    assert "mcs:begin" not in harness.scope.claude_file_path.read_text()
    assert _index_paths(harness) == {}


def test_declined_removal_cancels_without_changes(harness, ios):
    harness.sync([ios])
    harness.prompter.confirm = False

    report = harness.sync([], catalog=[ios])

    assert report.cancelled
    assert _state(harness).configured_packs == ["ios"]
    assert (harness.scope.target_path / "commands" / "build.md").exists()
    assert harness.assistant.removed_servers == []
    assert "Sync cancelled." in output_text(harness.output)


def test_failed_removal_narrows_the_record_for_retry(harness, ios):
    harness.sync([ios])
    harness.assistant.failing_removals.add("xcode")

    report = harness.sync([], catalog=[ios], confirm_removals=False)

    record = _state(harness).artifacts("ios")
    assert record.mcp_servers == [MCPServerRef("xcode", "local")]
    assert record.files == []
    assert record.brew_packages == []
    assert _state(harness).configured_packs == ["ios"]
    assert any("could not be removed" in warning for warning in report.warnings)

    harness.assistant.failing_removals.clear()
    harness.sync([], catalog=[ios], confirm_removals=False)

    assert _state(harness).configured_packs == []
    assert harness.package_manager.uninstall_calls == ["swiftlint"]


def test_excluding_components_removes_their_artifacts(harness, ios):
    build = harness.scope.target_path / "commands" / "build.md"
    harness.sync([ios])
    assert build.exists()

    harness.sync([ios], excluded_components={"ios": {"ios.xcode", "ios.build.md"}})

    assert ("xcode", "local") not in harness.assistant.servers
    assert harness.assistant.removed_servers == [("xcode", "local")]
    assert not build.exists()
    record = _state(harness).artifacts("ios")
    assert record.mcp_servers == []
    assert ".claude/commands/build.md" not in record.files
    assert _state(harness).excluded_components("ios") == {"ios.xcode", "ios.build.md"}


def test_failed_removal_of_dropped_component_is_retried(harness, pack_builder):
    before = pack_builder("ios").server("xcode").file("build.md", "Build").build()
    after = pack_builder("ios").file("build.md", "Build").build()
    harness.sync([before])
    harness.assistant.failing_removals.add("xcode")

    report = harness.sync([after])

    assert _state(harness).artifacts("ios").mcp_servers == [MCPServerRef("xcode", "local")]
    assert any("Re-run 'mcs sync' to retry." in warning for warning in report.warnings)

    harness.assistant.failing_removals.clear()
    harness.sync([after])

    assert _state(harness).artifacts("ios").mcp_servers == []
    assert harness.assistant.removed_servers == [("xcode", "local")]


def test_edited_pack_file_is_backed_up_before_overwrite(harness, ios):
    build = harness.scope.target_path / "commands" / "build.md"
    harness.sync([ios])
    build.write_text("my edits")

    harness.sync([ios])

    assert build.read_text() == f"Build {harness.scope.files_root.name}"
    backups = list(build.parent.glob("build.md.backup.*"))
    assert [backup.read_text() for backup in backups] == ["my edits"]


def test_claude_file_is_backed_up_before_rewrite(harness, ios):
    harness.scope.claude_file_path.write_text("My own notes\n")

    harness.sync([ios])
    harness.sync([ios])

    backups = list(harness.scope.files_root.glob("CLAUDE.local.md.backup.*"))
    assert [backup.read_text() for backup in backups] == ["My own notes\n"]


def test_dropped_template_section_is_removed(harness, pack_builder):
    before = pack_builder("ios").template("ios", "Main").template("ios.extra", "Extra").build()
    after = pack_builder("ios").template("ios", "Main").build()

    harness.sync([before])
    assert "mcs:begin ios.extra" in harness.scope.claude_file_path.read_text()

    harness.sync([after])

    content = harness.scope.claude_file_path.read_text()
    assert "mcs:begin ios.extra" not in content
    assert "mcs:begin ios v" in content
    assert _state(harness).artifacts("ios").template_sections == ["ios"]


def test_user_content_in_claude_file_survives(harness, ios):
    harness.scope.claude_file_path.write_text("My own notes\n")

    harness.sync([ios])
    harness.sync([ios])

    content = harness.scope.claude_file_path.read_text()
    assert content.count("My own notes") == 1
    assert "mcs:begin ios" in content


def test_stale_settings_keys_are_dropped(harness, pack_builder):
    with_model = pack_builder("ios").settings("extra", '{"model": "opus", "env": {"A": "1"}}').build()
    harness.sync([with_model])
    assert _state(harness).artifacts("ios").settings_keys == ["env", "model"]

    without_model = pack_builder("ios").settings("extra", '{"env": {"A": "1"}}').build()
    harness.sync([without_model])

    assert json.loads(harness.scope.settings_path.read_text()) == {"env": {"A": "1"}}
    assert _state(harness).artifacts("ios").settings_keys == ["env"]


# ----------------------------------------------------------------------
# Pre-flight
# ----------------------------------------------------------------------


def test_unmet_peer_dependency_aborts_before_mutation(harness, pack_builder):
    builder = pack_builder("ios").server("xcode")
    builder.peers.append(PeerDependency(pack="core", min_version="2.0.0"))

    with pytest.raises(ConfigurationError, match="Unmet peer dependencies"):
        harness.sync([builder.build()])

    assert not harness.scope.state_file.exists()
    assert harness.assistant.servers == {}


def test_peer_version_too_low_aborts(harness, pack_builder):
    core = pack_builder("core", version="1.5.0").file("core.md", "core").build()
    builder = pack_builder("ios").file("a.md", "a")
    builder.peers.append(PeerDependency(pack="core", min_version="2.0.0"))
    ios = builder.build()

    with pytest.raises(ConfigurationError, match="found 1.5.0"):
        harness.sync([core, ios])

    assert not (harness.scope.target_path / "commands").exists()


def test_unknown_dependency_aborts(harness, pack_builder):
    pack = pack_builder("ios").file("a.md", "a", dependencies=("ios.missing",)).build()

    with pytest.raises(ConfigurationError, match="Unknown component 'ios.missing'"):
        harness.sync([pack])


def test_excluded_dependency_is_installed_anyway(harness, pack_builder):
    pack = (
        pack_builder("ios")
        .file("base.md", "base")
        .file("extra.md", "extra", dependencies=("ios.base.md",))
        .file("optional.md", "optional")
        .build()
    )

    harness.sync([pack], excluded_components={"ios": {"ios.base.md", "ios.optional.md"}})

    commands = harness.scope.target_path / "commands"
    assert (commands / "base.md").exists()
    assert not (commands / "optional.md").exists()
    assert _state(harness).excluded_components("ios") == {"ios.optional.md"}


def test_dependencies_install_before_their_dependents(harness, pack_builder):
    pack = (
        pack_builder("ord")
        .shell("second", "echo second", dependencies=("ord.first",))
        .shell("first", "echo first")
        .build()
    )

    harness.sync([pack])

    assert harness.shell.shell_commands() == ["echo first", "echo second"]


def test_cross_pack_dependency_installs_with_its_pack_first(harness, pack_builder):
    app = pack_builder("app").shell("run", "echo run", dependencies=("base.setup",)).build()
    base = pack_builder("base").shell("setup", "echo setup").build()

    harness.sync([app, base], excluded_components={"base": {"base.setup"}})

    assert harness.shell.shell_commands() == ["echo setup", "echo run"]
    assert _state(harness).excluded_components("base") == set()


def test_dependency_on_unselected_pack_aborts(harness, pack_builder):
    app = pack_builder("app").shell("run", "echo run", dependencies=("base.setup",)).build()
    base = pack_builder("base").shell("setup", "echo setup").build()

    with pytest.raises(ConfigurationError, match="not selected"):
        harness.sync([app], catalog=[app, base])

    assert harness.shell.shell_commands() == []
    assert not harness.scope.state_file.exists()


def test_corrupt_state_is_treated_as_empty(harness, ios):
    harness.scope.state_file.parent.mkdir(parents=True)
    harness.scope.state_file.write_text("{not json")

    report = harness.sync([ios])

    assert report.added == ["ios"]
    assert any("corrupt" in warning for warning in report.warnings)
    assert _state(harness).configured_packs == ["ios"]


def test_unreadable_state_aborts(harness, ios):
    harness.scope.state_file.mkdir(parents=True)

    with pytest.raises(MCSError, match="Could not read"):
        harness.sync([ios])


def test_state_write_failure_raises(harness, ios, monkeypatch):
    def refuse(self):
        raise OSError("disk full")

    monkeypatch.setattr(ProjectState, "save", refuse)

    with pytest.raises(StateWriteError, match="disk full"):
        harness.sync([ios])
    assert any("intermediate state" in warning for warning in harness.output.warnings)


# ----------------------------------------------------------------------
# Dry run
# ----------------------------------------------------------------------


def test_dry_run_reports_plan_without_changes(harness, ios, web):
    harness.sync([web])
    harness.output.console.file.truncate(0)
    harness.output.console.file.seek(0)

    report = harness.configurator([ios, web]).dry_run([ios])

    assert report.added == ["ios"] and report.removed == ["web"]
    text = output_text(harness.output)
    assert "+ Ios (new)" in text
    assert "- web (remove)" in text
    assert "MCP server: xcode" in text
    assert "File: .claude/commands/build.md" in text
    assert "No changes made (dry run)." in text
    assert _state(harness).configured_packs == ["web"]
    assert ("xcode", "local") not in harness.assistant.servers


def test_dry_run_with_nothing_selected(harness):
    report = harness.configurator().dry_run([])

    assert not report.has_changes
    assert "Nothing to do." in output_text(harness.output)
    assert not harness.scope.state_file.exists()


# ----------------------------------------------------------------------
# Global scope
# ----------------------------------------------------------------------


def test_global_sync_targets_claude_home(global_harness, ios):
    claude_home = global_harness.environment.claude_directory
    global_harness.prompter.inline["Set value for REPO_NAME"] = "shared"

    global_harness.sync([ios])

    assert global_harness.prompter.inline_labels == ["Set value for REPO_NAME"]
    assert global_harness.assistant.servers[("xcode", "user")] == ["--", "npx", "--project", "shared"]
    assert (claude_home / "commands" / "build.md").exists()
    settings = json.loads(global_harness.environment.claude_settings.read_text())
    assert settings["hooks"]["SessionStart"][0]["hooks"][0]["command"] == "bash ~/.claude/hooks/start.sh"
    assert ProjectState(global_harness.environment.global_state_file).configured_packs == ["ios"]
    assert _index_paths(global_harness) == {GLOBAL_SCOPE_SENTINEL: ["ios"]}


def test_global_unresolved_placeholder_stop(global_harness, pack_builder):
    global_harness.prompter.inline["Choose"] = "x"
    pack = pack_builder("ios").template("ios", "Team __TEAM__").build()

    with pytest.raises(ConfigurationError, match="unresolved placeholders"):
        global_harness.sync([pack])

    assert not global_harness.environment.global_claude_md.exists()


def test_global_unresolved_placeholder_skip(global_harness, pack_builder):
    global_harness.prompter.inline["Choose"] = "s"
    pack = pack_builder("ios").template("ios", "Team __TEAM__").template("ios.ok", "Fine").build()

    global_harness.sync([pack])

    content = global_harness.environment.global_claude_md.read_text()
    assert "mcs:begin ios.ok" in content
    assert "mcs:begin ios v" not in content
    assert ProjectState(global_harness.environment.global_state_file).artifacts("ios").template_sections == ["ios.ok"]


def test_global_sync_keeps_user_settings(global_harness, pack_builder):
    settings_path = global_harness.environment.claude_settings
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(json.dumps({"theme": "dark"}))
    pack = pack_builder("ios").plugin("review").build()

    global_harness.sync([pack])
    global_harness.sync([], catalog=[pack], confirm_removals=False)

    assert json.loads(settings_path.read_text()) == {"theme": "dark"}


def test_unparseable_global_settings_abort_before_mutation(global_harness, ios):
    settings_path = global_harness.environment.claude_settings
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text("{broken")

    with pytest.raises(ConfigurationError):
        global_harness.sync([ios])

    assert global_harness.package_manager.install_calls == []


# ----------------------------------------------------------------------
# Shared resources
# ----------------------------------------------------------------------


def test_resource_needed_by_global_scope_is_kept(harness, global_harness, ios, pack_builder):
    lint = pack_builder("lint").brew("swiftlint").build()
    harness.sync([ios], catalog=[ios, lint])
    global_harness.sync([lint], catalog=[ios, lint])

    harness.sync([], catalog=[ios, lint], confirm_removals=False)

    assert harness.package_manager.uninstall_calls == []
    assert "swiftlint" in harness.package_manager.installed
    assert _state(harness).configured_packs == []


def test_ownership_moves_to_retained_pack(harness, ios, pack_builder):
    lint = pack_builder("lint").brew("swiftlint").build()
    harness.sync([ios, lint])
    assert _state(harness).artifacts("lint").brew_packages == []

    harness.sync([lint], catalog=[ios, lint], confirm_removals=False)

    assert harness.package_manager.uninstall_calls == []
    assert _state(harness).artifacts("lint").brew_packages == ["swiftlint"]

    harness.sync([], catalog=[ios, lint], confirm_removals=False)

    assert harness.package_manager.uninstall_calls == ["swiftlint"]


def test_preinstalled_tools_are_never_uninstalled(harness, ios):
    harness.package_manager.installed.add("swiftlint")

    harness.sync([ios])
    harness.sync([], catalog=[ios], confirm_removals=False)

    assert harness.package_manager.install_calls == []
    assert harness.package_manager.uninstall_calls == []


# ----------------------------------------------------------------------
# Configure scripts and prompts
# ----------------------------------------------------------------------


def test_configure_script_runs_with_resolved_values(harness, pack_builder):
    builder = pack_builder("ios")
    (builder.path / "configure.sh").write_text("#!/bin/bash\n")
    builder.configure_script = "configure.sh"

    harness.sync([builder.build()])

    index = harness.shell.calls.index(("/bin/bash", str(builder.path / "configure.sh")))
    environment = harness.shell.environments[index]
    assert environment[PROJECT_PATH_ENV] == str(harness.scope.files_root)
    assert environment["MCS_RESOLVED_REPO_NAME"] == harness.scope.files_root.name
    assert harness.shell.working_directories[index] == harness.scope.files_root


def test_configure_script_escaping_pack_is_refused(harness, pack_builder):
    builder = pack_builder("ios")
    builder.configure_script = "../outside.sh"

    assert not ProjectHookRunner(harness.shell, harness.output).run(builder.build(), harness.scope.files_root, {})
    assert harness.shell.calls == []


def test_undeclared_placeholder_value_is_remembered(harness, pack_builder):
    harness.prompter = FakePrompter(inline={"Set value for TEAM": "ABC"})
    pack = pack_builder("ios").file("sign.md", "Team __TEAM__").build()

    harness.sync([pack])

    assert (harness.scope.target_path / "commands" / "sign.md").read_text() == "Team ABC"
    assert _state(harness).resolved_values["TEAM"] == "ABC"


# ----------------------------------------------------------------------
# Whole-pack removal
# ----------------------------------------------------------------------


def test_remove_pack_ignores_the_pack_in_other_scopes(harness, ios, tmp_path):
    other_dir = tmp_path / "other"
    other_dir.mkdir()
    other = harness.for_scope(SyncScope.project(other_dir))
    harness.sync([ios])
    other.sync([ios])

    assert harness.configurator([ios]).remove_pack("ios")

    assert harness.package_manager.uninstall_calls == ["swiftlint"]
    assert _state(harness).configured_packs == []
    assert not (harness.scope.target_path / "commands" / "build.md").exists()
    assert _state(other).configured_packs == ["ios"]


def test_remove_pack_not_configured_here_is_a_no_op(harness, ios):
    assert harness.configurator([ios]).remove_pack("ios")

    assert not harness.scope.state_file.exists()
    assert "ios is not configured" in output_text(harness.output)


def test_remove_pack_keeps_failures_for_retry(harness, ios):
    harness.sync([ios])
    harness.assistant.failing_removals.add("xcode")

    assert not harness.configurator([ios]).remove_pack("ios")

    assert _state(harness).configured_packs == ["ios"]
    assert _state(harness).artifacts("ios").mcp_servers == [MCPServerRef("xcode", "local")]
