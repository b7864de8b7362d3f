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

"""Optimization (profile-guided) data for Release CI builds.

Before the build, the most recent profiling drop is downloaded from the
artifact service with the drop client. After the build, the profiling tool
produces new optimization data from the build's insertion output, ready to
be published by the CI definition.
"""

from __future__ import annotations

import datetime
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from buildstack.build.configuration import BuildConfiguration
from buildstack.build.tools import ToolRunner, exec_tool, find_package_tool
from buildstack.core.exceptions import OptimizationDataError, ToolMissingError
from buildstack.core.paths import RepoPaths
from buildstack.core.run import activity

logger = logging.getLogger(__name__)

DROP_TOOL_PACKAGE = "Drop.App"
DROP_TOOL_RELATIVE_PATH = "lib/net45/drop.exe"
OPTPROF_TOOL_PACKAGE = "RoslynTools.OptProf"
OPTPROF_TOOL_RELATIVE_PATH = "tools/roslyn.optprof.exe"


class FirstDropPolicy(Enum):
    """How the first drop examined is treated by select_latest_drop().

    ACCEPT_FIRST takes the first drop as the initial selection whatever its
    state, so an incomplete or pending-deletion drop is returned when no
    later drop qualifies. USABLE_ONLY holds every drop to the same rule.
    """

    ACCEPT_FIRST = "accept-first"
    USABLE_ONLY = "usable-only"


@dataclass(frozen=True)
class OptimizationDrop:
    """One profiling data drop as listed by the artifact service."""

    name: str
    created_utc: datetime.datetime
    upload_complete: bool = False
    delete_pending: bool = False

    @property
    def usable(self) -> bool:
        return self.upload_complete and not self.delete_pending

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> OptimizationDrop:
        created = datetime.datetime.fromisoformat(str(data["CreatedDateUtc"]).replace("Z", "+00:00"))
        if created.tzinfo is None:
            created = created.replace(tzinfo=datetime.UTC)
        return cls(
            name=str(data["Name"]),
            created_utc=created,
            upload_complete=bool(data.get("UploadComplete", False)),
            delete_pending=bool(data.get("DeletePending", False)),
        )


def select_latest_drop(
    drops: Iterable[OptimizationDrop],
    policy: FirstDropPolicy = FirstDropPolicy.ACCEPT_FIRST,
) -> OptimizationDrop | None:
    """Reduce an ordered sequence of drops to the latest usable one.

    A later drop replaces the current selection only when it is usable and
    strictly newer. The first drop is selected according to ``policy``.
    """
    latest: OptimizationDrop | None = None
    for drop in drops:
        if latest is None:
            if policy is FirstDropPolicy.ACCEPT_FIRST or drop.usable:
                latest = drop
            continue
        if drop.usable and drop.created_utc > latest.created_utc:
            latest = drop
    return latest


@dataclass
class OptimizationDataResult:
    """Outcome of acquiring optimization data before the build.

    Attributes:
        applied: False when the drop client is missing in a non-official build.
        drop: The downloaded drop, if any.
        data_dir: Where the drop was downloaded.
    """

    applied: bool
    drop: OptimizationDrop | None = None
    data_dir: Path | None = None


@dataclass
class GeneratedOptimizationData:
    """Outcome of generating optimization data after the build."""

    output_dir: Path
    branch_file: Path
    manifests: list[str] = field(default_factory=list)


def _policy_from_config(cfg: Mapping[str, Any]) -> FirstDropPolicy:
    value = str(cfg["optimization"].get("first_drop_policy", FirstDropPolicy.ACCEPT_FIRST.value))
    try:
        return FirstDropPolicy(value)
    except ValueError:
        logger.warning(f"Unknown first_drop_policy '{value}', using '{FirstDropPolicy.ACCEPT_FIRST.value}'")
        return FirstDropPolicy.ACCEPT_FIRST


def load_drop_list(path: Path) -> list[OptimizationDrop]:
    """Parse the drop client's ``--toJsonFile`` output, preserving order."""
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise OptimizationDataError(message=f"Unable to read drop list '{path}': {e}") from e
    return [OptimizationDrop.from_json(entry) for entry in raw or []]


def acquire_optimization_data(
    runner: ToolRunner,
    config: BuildConfiguration,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
) -> OptimizationDataResult:
    """Download the latest optimization data drop.

    Raises:
        ToolMissingError: The drop client is missing in an official build.
        OptimizationDataError: No drop matches the configured prefix.
        ExternalToolError: The drop client failed.
    """
    drop_tool = find_package_tool(paths.packages_dir, DROP_TOOL_PACKAGE, DROP_TOOL_RELATIVE_PATH)
    if drop_tool is None:
        if config.official_build:
            raise ToolMissingError(
                message=f"Internal tool not found: '{DROP_TOOL_PACKAGE}'. Restore the internal toolset first.",
                tool=DROP_TOOL_PACKAGE,
            )
        activity("optprof", "Skipping restoring optimization data: internal tool is not available")
        return OptimizationDataResult(applied=False)

    opt = cfg["optimization"]
    service_url = str(opt["drop_service_url"])
    prefix = str(opt["drop_prefix"])
    auth_args = ["--patAuth", config.vs_drop_access_token] if config.official_build else []

    drop_list_path = paths.temp_dir / "OptimizationDataDrops.json"
    drop_list_path.parent.mkdir(parents=True, exist_ok=True)
    exec_tool(runner, drop_tool, [
        "list",
        "--dropservice", service_url,
        *auth_args,
        "--pathPrefixFilter", prefix,
        "--toJsonFile", str(drop_list_path),
        "--traceto", str(paths.log_dir / "OptimizationDataDrops.log"),
    ])

    drops = load_drop_list(drop_list_path)
    latest = select_latest_drop(drops, _policy_from_config(cfg))
    if latest is None:
        raise OptimizationDataError(message=f"No matching drop found: {service_url}/{prefix}/*")

    data_dir = paths.artifacts / "OptimizationData"
    activity("optprof", f"Downloading optimization data from service {service_url} drop {latest.name}")
    exec_tool(runner, drop_tool, [
        "get",
        "--dropservice", service_url,
        *auth_args,
        "--name", latest.name,
        "--dest", str(data_dir),
        "--traceto", str(paths.log_dir / "OptimizationDataGet.log"),
    ])
    return OptimizationDataResult(applied=True, drop=latest, data_dir=data_dir)


def list_manifests(insertion_dir: Path) -> list[str]:
    """Return the names of the insertion manifests, sorted."""
    if not insertion_dir.is_dir():
        return []
    return sorted(p.name for p in insertion_dir.glob("*.vsman"))


def manifest_variable_line(variable: str, manifests: list[str]) -> str:
    """Format a CI logging command that publishes the manifest list."""
    return f"##vso[task.setvariable variable={variable}]{','.join(manifests)}"


def build_optimization_data(
    runner: ToolRunner,
    config: BuildConfiguration,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
) -> GeneratedOptimizationData:
    """Generate optimization data from the build's insertion output.

    Raises:
        ToolMissingError: The profiling tool is not restored.
        ExternalToolError: The profiling tool failed.
    """
    optprof_tool = find_package_tool(paths.packages_dir, OPTPROF_TOOL_PACKAGE, OPTPROF_TOOL_RELATIVE_PATH)
    if optprof_tool is None:
        raise ToolMissingError(
            message=f"{OPTPROF_TOOL_PACKAGE} not found under '{paths.packages_dir}'. Run restore first.",
            tool=OPTPROF_TOOL_PACKAGE,
        )

    insertion_dir = paths.vssetup_dir / "Insertion"
    config_file = paths.repo_root / cfg["paths"]["optprof_config"]
    optprof_root = paths.artifacts / "OptProf" / config.configuration
    output_dir = optprof_root / "Data"

    activity("optprof", f"Generating optimization data using '{config_file}' into '{output_dir}'")
    exec_tool(runner, optprof_tool, [
        "--configFile", str(config_file),
        "--insertionFolder", str(insertion_dir),
        "--outputFolder", str(output_dir),
    ])

    branch_dir = optprof_root / "BranchInfo"
    branch_dir.mkdir(parents=True, exist_ok=True)
    branch_file = branch_dir / "vsbranch.txt"
    branch_file.write_text(config.vs_branch + "\n")

    return GeneratedOptimizationData(
        output_dir=output_dir,
        branch_file=branch_file,
        manifests=list_manifests(insertion_dir),
    )
