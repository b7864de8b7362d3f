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

"""Configuration utilities for Buildstack.

Settings live in an optional ``eng/buildstack.yaml`` file inside the
repository being built. Values from the file are merged over DEFAULT_CONFIG
section by section; a missing or unreadable file yields the defaults.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_RELATIVE_PATH = Path("eng") / "buildstack.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "artifacts": "artifacts",
        "local_packages": ".packages",
        "global_packages": "~/.nuget/packages",
        "test_resources": "src/Workspaces/MSBuildTest/Resources",
        "toolset_project": "eng/build.proj",
        "bootstrap_project": "src/NuGet/Microsoft.Net.Compilers.Toolset/Microsoft.Net.Compilers.Toolset.Package.csproj",
        "optprof_config": "eng/config/optprof.json",
    },
    "optimization": {
        "drop_service_url": "https://devdiv.artifacts.visualstudio.com",
        "drop_prefix": "OptimizationData/dotnet/roslyn/main-vs-deps",
        "first_drop_policy": "accept-first",
        "manifest_variable": "OptProfManifests",
    },
    "tools": {
        "procdump_local_dir": "C:\\SysInternals",
        "procdump_url": "https://download.sysinternals.com/files/Procdump.zip",
        "vswhere": "C:\\Program Files (x86)\\Microsoft Visual Studio\\Installer\\vswhere.exe",
    },
    "test": {
        "target_framework": "net472",
        "unit_timeout": 65,
        "integration_timeout": 110,
        "ioperation_variable": "ROSLYN_TEST_IOPERATION",
    },
    "deploy": {
        "root_suffix": "RoslynDev",
    },
}


def get_config_path(repo_root: Path) -> Path:
    """Return the path to the repository's config file."""
    return repo_root / CONFIG_RELATIVE_PATH


def load_config(repo_root: Path | None = None) -> dict[str, Any]:
    """Load configuration for a repository and merge with defaults.

    The returned dictionary is a per-section merge of DEFAULT_CONFIG and the
    values stored in ``eng/buildstack.yaml``. DEFAULT_CONFIG is never mutated.
    """
    raw: dict[str, Any] = {}
    if repo_root is not None:
        cfg_path = get_config_path(repo_root)
        if cfg_path.exists():
            try:
                raw = yaml.safe_load(cfg_path.read_text()) or {}
            except yaml.YAMLError as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                raw = {}

    merged: dict[str, Any] = {}
    for key, val in DEFAULT_CONFIG.items():
        if key in raw and isinstance(raw[key], dict):
            merged[key] = {**val, **raw[key]}
        else:
            merged[key] = dict(val)

    return merged


if __name__ == "__main__":
    # Basic smoke-check
    print(json.dumps(load_config(Path.cwd()), indent=2))
