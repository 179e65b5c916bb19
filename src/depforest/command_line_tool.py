"""
Running external package manager executables.
"""

import os
import re
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

from .error_handling import CommandError, ConfigurationError
from .structured_logging import get_tool_logger, log_command_run


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a finished process."""

    command: Tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def is_success(self) -> bool:
        return self.exit_code == 0

    def require_success(self) -> "ProcessResult":
        if not self.is_success:
            raise CommandError(self.command, self.exit_code, self.stderr)
        return self


def run_process(
    command: Sequence[str],
    working_dir: Optional[Path] = None,
    environment: Optional[Mapping[str, str]] = None,
) -> ProcessResult:
    """
    Run a command to completion and capture its output.

    The given environment is layered over the current process environment.
    There is no timeout and no retry.
    """
    safe_command = tuple(str(arg) for arg in command)
    env = dict(os.environ)
    if environment:
        env.update(environment)

    started = time.monotonic()
    try:
        completed = subprocess.run(
            safe_command,
            cwd=str(working_dir) if working_dir else None,
            env=env,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError as e:
        raise CommandError(safe_command, 127, str(e)) from e

    log_command_run(
        safe_command,
        completed.returncode,
        int((time.monotonic() - started) * 1000),
        str(working_dir) if working_dir else None,
    )

    return ProcessResult(
        command=safe_command,
        exit_code=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


def parse_version(version: str) -> Tuple[int, ...]:
    """Turn '1.21.1' or '1.22rc1' into a comparable tuple of integers."""
    parts = []
    for part in version.split("."):
        match = re.match(r"\d+", part)
        if not match:
            break
        parts.append(int(match.group(0)))
    return tuple(parts)


class CommandLineTool(ABC):
    """An external executable with a version check."""

    @abstractmethod
    def command(self, working_dir: Optional[Path] = None) -> str:
        """Name of the executable."""

    def version_arguments(self) -> Sequence[str]:
        return ["--version"]

    def transform_version(self, output: str) -> str:
        """Extract the bare version from the output of the version command."""
        return output.strip()

    def version_requirement(self) -> Optional[str]:
        """Minimum version of the tool, or None if any version works."""
        return None

    def is_in_path(self) -> bool:
        return shutil.which(self.command()) is not None

    def run(
        self,
        *args: str,
        working_dir: Optional[Path] = None,
        environment: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        """Run the tool and fail on a non-zero exit code."""
        command = [self.command(working_dir), *args]
        return run_process(command, working_dir, environment).require_success()

    def get_version(self, working_dir: Optional[Path] = None) -> str:
        result = self.run(*self.version_arguments(), working_dir=working_dir)
        return self.transform_version(result.stdout)

    def check_version(self, working_dir: Optional[Path] = None) -> str:
        """Return the tool version, raising if it is below the requirement."""
        version = self.get_version(working_dir)
        requirement = self.version_requirement()
        if requirement and parse_version(version) < parse_version(requirement):
            raise ConfigurationError(
                f"{self.command()} version {version} does not satisfy the "
                f"requirement >={requirement}."
            )
        get_tool_logger().debug("tool_version_checked", tool=self.command(), version=version)
        return version
