# This file is part of Buildstack, a build pipeline controller for compiler repositories.
#
# Copyright 2025 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0-only
#
# Buildstack is free software: you can redistribute it and/or modify it under
# the terms of the GNU General Public License version 3, as published by the
# Free Software Foundation.
#
# Buildstack is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranties of MERCHANTABILITY,
# SATISFACTORY QUALITY, or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along with
# Buildstack. If not, see <http://www.gnu.org/licenses/>.

"""External tool invocation for Buildstack.

Every external executable (build engine, test runner, extension installer,
drop client, profiling tool) is started through a ToolRunner. The pipeline
only ever sees exit codes; exec_tool() turns a nonzero exit into an
ExternalToolError. Tests substitute a fake runner.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from buildstack.core.exceptions import ExternalToolError, ToolMissingError
from buildstack.core.run import activity

logger = logging.getLogger(__name__)


class ToolRunner(Protocol):
    """Capability interface for starting external processes."""

    def run(
        self,
        executable: str | Path,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Run to completion and return the exit code."""
        ...

    def start(self, executable: str | Path, args: Sequence[str]) -> None:
        """Start without waiting for the process to exit."""
        ...


class SubprocessRunner:
    """ToolRunner backed by subprocess, inheriting the console."""

    def run(
        self,
        executable: str | Path,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> int:
        cmd = [str(executable), *args]
        run_env = os.environ.copy()
        if env:
            run_env.update(env)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, env=run_env)
        except FileNotFoundError as e:
            raise ToolMissingError(message=f"Tool not found: '{executable}'", tool=str(executable)) from e
        return result.returncode

    def start(self, executable: str | Path, args: Sequence[str]) -> None:
        cmd = [str(executable), *args]
        logger.debug(f"Starting: {' '.join(cmd)}")
        try:
            subprocess.Popen(cmd)
        except FileNotFoundError as e:
            raise ToolMissingError(message=f"Tool not found: '{executable}'", tool=str(executable)) from e


def exec_tool(
    runner: ToolRunner,
    executable: str | Path,
    args: Sequence[str],
    env: Mapping[str, str] | None = None,
) -> None:
    """Run an external tool and raise ExternalToolError on nonzero exit."""
    name = Path(str(executable)).name
    activity("exec", f"{name} {' '.join(args)}")
    returncode = runner.run(executable, args, env=env)
    if returncode != 0:
        raise ExternalToolError(
            message=f"{name} failed with exit code {returncode}",
            tool=str(executable),
            returncode=returncode,
        )


def run_command(
    cmd: Sequence[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run a command capturing its output.

    Used for discovery tools whose stdout must be parsed, never for build
    phases.

    Returns:
        Tuple of (exit_code, stdout, stderr).
    """
    run_env = os.environ.copy()
    if env:
        run_env.update(env)
    result = subprocess.run(
        list(cmd),
        cwd=cwd,
        env=run_env,
        capture_output=True,
        text=True,
    )
    return result.returncode, result.stdout, result.stderr


def find_tool(name: str) -> Path | None:
    """Find an executable tool in PATH.

    Returns:
        Path to the tool if found, None otherwise.
    """
    path = shutil.which(name)
    if path:
        return Path(path)
    return None


def find_package_tool(packages_dir: Path, package_id: str, relative_path: str) -> Path | None:
    """Find a tool shipped inside a restored package.

    Packages are laid out as ``<packages>/<id lowercased>/<version>/...``.
    When several versions are restored the last one in sorted order wins.

    Returns:
        Path to the tool if any restored version contains it, None otherwise.
    """
    package_dir = packages_dir / package_id.lower()
    if not package_dir.is_dir():
        return None
    candidates = sorted(
        version_dir / relative_path
        for version_dir in package_dir.iterdir()
        if version_dir.is_dir()
    )
    existing = [c for c in candidates if c.exists()]
    return existing[-1] if existing else None


def require_tool(path: Path, hint: str = "") -> Path:
    """Return ``path`` if it exists, otherwise raise ToolMissingError."""
    if not path.exists():
        message = f"Required tool not found: '{path}'."
        if hint:
            message = f"{message} {hint}"
        raise ToolMissingError(message=message, tool=str(path))
    return path
