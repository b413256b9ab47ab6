from __future__ import annotations

from pathlib import Path

import pytest

from mcs_cli.core.paths import Environment
from mcs_cli.install.scope import SyncScope
from tests.fakes import FakeAssistant, FakePackageManager, FakePrompter, FakeShell, Harness, PackBuilder, make_output


@pytest.fixture()
def environment(tmp_path: Path) -> Environment:
    home = tmp_path / "home"
    home.mkdir()
    return Environment.for_home(home)


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture()
def packs_root(tmp_path: Path) -> Path:
    root = tmp_path / "packs"
    root.mkdir()
    return root


@pytest.fixture()
def harness(environment: Environment, project_dir: Path) -> Harness:
    return Harness(
        environment=environment,
        scope=SyncScope.project(project_dir),
        shell=FakeShell(environment),
        package_manager=FakePackageManager(),
        assistant=FakeAssistant(),
        output=make_output(),
        prompter=FakePrompter(),
    )


@pytest.fixture()
def global_harness(harness: Harness) -> Harness:
    return harness.for_scope(SyncScope.global_(harness.environment))


@pytest.fixture()
def pack_builder(packs_root: Path):
    def build(identifier: str, version: str = "1.0.0") -> PackBuilder:
        return PackBuilder(packs_root, identifier, version)

    return build
