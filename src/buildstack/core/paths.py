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

"""Repository layout and directory creation for Buildstack."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import git


@dataclass(frozen=True)
class RepoPaths:
    """Directories used by a single pipeline run.

    Attributes:
        repo_root: Root of the repository being built.
        artifacts: Top-level artifacts directory.
        bin_dir: Build output tree searched for test binaries.
        log_dir: Per-configuration log directory.
        temp_dir: Per-configuration shared temporary directory.
        tools_dir: Downloaded helper tools (e.g. procdump).
        packages_dir: Restored package directory (global or repo-local).
        vssetup_dir: Per-configuration extension packages output.
        test_results_dir: Per-configuration test results output.
        bootstrap_dir: Output of the bootstrap compiler build.
    """

    repo_root: Path
    artifacts: Path
    bin_dir: Path
    log_dir: Path
    temp_dir: Path
    tools_dir: Path
    packages_dir: Path
    vssetup_dir: Path
    test_results_dir: Path
    bootstrap_dir: Path

    @property
    def runs_root(self) -> Path:
        return self.log_dir / "runs"

    def project_output(self, project: str, configuration: str, framework: str = "net472") -> Path:
        """Return the output directory of a project under bin/."""
        return self.bin_dir / project / configuration / framework


def find_repo_root(start: Path | None = None) -> Path:
    """Return the working tree root containing ``start``.

    Falls back to ``start`` itself when it is not inside a git repository.
    """
    start = (start or Path.cwd()).resolve()
    try:
        repo = git.Repo(start, search_parent_directories=True)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError):
        return start
    if repo.working_tree_dir is None:  # pragma: no cover - bare repository
        return start
    return Path(repo.working_tree_dir)


def resolve_paths(
    repo_root: Path,
    configuration: str,
    cfg: Mapping[str, Any],
    use_global_nuget_cache: bool = True,
) -> RepoPaths:
    """Return the resolved repository layout for one configuration."""
    paths_cfg: Mapping[str, Any] = cfg.get("paths", {})
    artifacts = repo_root / str(paths_cfg.get("artifacts", "artifacts"))

    if use_global_nuget_cache:
        global_packages = os.environ.get("NUGET_PACKAGES") or str(
            paths_cfg.get("global_packages", "~/.nuget/packages")
        )
        packages_dir = Path(global_packages).expanduser()
    else:
        packages_dir = repo_root / str(paths_cfg.get("local_packages", ".packages"))

    return RepoPaths(
        repo_root=repo_root,
        artifacts=artifacts,
        bin_dir=artifacts / "bin",
        log_dir=artifacts / "log" / configuration,
        temp_dir=artifacts / "tmp" / configuration,
        tools_dir=artifacts / "tools",
        packages_dir=packages_dir,
        vssetup_dir=artifacts / "VSSetup" / configuration,
        test_results_dir=artifacts / "TestResults" / configuration,
        bootstrap_dir=artifacts / "Bootstrap",
    )


def ensure_directories(paths: RepoPaths) -> list[Path]:
    """Ensure the directories written during a run exist.

    Returns the list of directories that were created or ensured.
    """
    required = [
        paths.log_dir,
        paths.temp_dir,
        paths.tools_dir,
        paths.test_results_dir,
        paths.runs_root,
    ]
    for p in required:
        p.mkdir(parents=True, exist_ok=True)
    return required
