"""Shell/process collaborator."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from mcs_cli.core.paths import Environment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShellResult:
    """Captured result of one process run."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ShellRunner:
    """Runs commands with captured output.

    Children get ``stdin`` from ``/dev/null`` so an interactive subprocess can
    never block waiting on the parent's terminal.
    """

    def __init__(self, environment: Environment, timeout: float | None = 600) -> None:
        self.environment = environment
        self.timeout = timeout

    def _env(self, additional: Mapping[str, str] | None) -> dict[str, str]:
        env = dict(os.environ)
        env["PATH"] = self.environment.path_with_brew
        if additional:
            env.update(additional)
        return env

    def command_exists(self, command: str) -> bool:
        return shutil.which(command, path=self.environment.path_with_brew) is not None

    def run(
        self,
        executable: str,
        arguments: Sequence[str] = (),
        working_directory: Path | None = None,
        additional_environment: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> ShellResult:
        """Run *executable* with *arguments*; never raises on process failure.

        *timeout* overrides the runner default for this call.
        """
        cmd = [executable, *arguments]
        logger.debug("Running %s", cmd)
        try:
            completed = subprocess.run(
                cmd,
                cwd=working_directory,
                env=self._env(additional_environment),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout if timeout is not None else self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("Command %s failed to run: %s", cmd, exc)
            return ShellResult(exit_code=1, stderr=str(exc))

        return ShellResult(
            exit_code=completed.returncode,
            stdout=completed.stdout.strip("\n"),
            stderr=completed.stderr.strip("\n"),
        )

    def shell(
        self,
        command: str,
        working_directory: Path | None = None,
        additional_environment: Mapping[str, str] | None = None,
    ) -> ShellResult:
        """Run *command* through ``/bin/bash -c``."""
        return self.run(
            "/bin/bash",
            ["-c", command],
            working_directory=working_directory,
            additional_environment=additional_environment,
        )


__all__ = ["ShellResult", "ShellRunner"]
