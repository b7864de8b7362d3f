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

"""Build engine location and argument assembly.

All requested build phases travel to the engine as properties of a single
invocation of the toolset project; the engine decides what each one means.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from buildstack.build.configuration import BuildConfiguration
from buildstack.build.deploy import locate_ide_instance
from buildstack.build.processes import stop_processes
from buildstack.build.tools import ToolRunner, exec_tool, find_tool
from buildstack.core.exceptions import ToolMissingError
from buildstack.core.paths import RepoPaths
from buildstack.core.run import activity

logger = logging.getLogger(__name__)

CORECLR_TEST_FRAMEWORK = "netcoreapp3.1"
MSBUILD_RELATIVE_PATH = Path("MSBuild") / "Current" / "Bin" / "MSBuild.exe"


@dataclass(frozen=True)
class BuildEngine:
    """Executable plus the leading arguments that select MSBuild."""

    executable: Path
    prefix_args: tuple[str, ...] = ()

    def command_args(self, args: list[str]) -> list[str]:
        return [*self.prefix_args, *args]


def _msbuild_bool(value: bool) -> str:
    return "true" if value else "false"


def locate_build_engine(config: BuildConfiguration, cfg: Mapping[str, Any]) -> BuildEngine:
    """Return the build engine selected by ``--msbuild-engine``.

    Raises:
        ToolMissingError: dotnet is not on PATH or the IDE has no MSBuild.
        DiscoveryError: The IDE-native engine was requested but no IDE exists.
    """
    if config.msbuild_engine == "dotnet":
        dotnet = find_tool("dotnet")
        if dotnet is None:
            raise ToolMissingError(message="dotnet was not found on PATH", tool="dotnet")
        return BuildEngine(executable=dotnet, prefix_args=("msbuild",))

    instance = locate_ide_instance(cfg)
    msbuild = instance.installation_path / MSBUILD_RELATIVE_PATH
    if not msbuild.exists():
        raise ToolMissingError(message=f"MSBuild not found: '{msbuild}'", tool=str(msbuild))
    return BuildEngine(executable=msbuild)


def build_engine_args(
    config: BuildConfiguration,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
    *,
    apply_optimization_data: bool,
    bootstrap_dir: Path | None = None,
) -> list[str]:
    """Assemble the arguments for the single build engine invocation."""
    toolset_project = paths.repo_root / cfg["paths"]["toolset_project"]
    args = [
        str(toolset_project),
        "/m",
        "/nologo",
        "/clp:Summary",
        f"/v:{config.verbosity}",
    ]
    if config.ci:
        args.append("/nodeReuse:false")
    if config.binary_log:
        args.append(f"/bl:{paths.log_dir / 'Build.binlog'}")

    args += [
        f"/p:Configuration={config.configuration}",
        f"/p:RepoRoot={paths.repo_root}",
        f"/p:Restore={_msbuild_bool(config.restore)}",
        f"/p:Build={_msbuild_bool(config.build)}",
        f"/p:Test={_msbuild_bool(config.test_coreclr)}",
        f"/p:Rebuild={_msbuild_bool(config.rebuild)}",
        f"/p:Pack={_msbuild_bool(config.pack)}",
        f"/p:Sign={_msbuild_bool(config.sign)}",
        f"/p:Publish={_msbuild_bool(config.publish)}",
        f"/p:ContinuousIntegrationBuild={_msbuild_bool(config.ci)}",
        f"/p:OfficialBuildId={config.official_build_id}",
        f"/p:UseRoslynAnalyzers={_msbuild_bool(not config.skip_analyzers)}",
        f"/p:VisualStudioDropName={config.vs_drop_name}",
        f"/p:VisualStudioBranchName={config.vs_branch}",
        f"/p:ApplyOptimizationData={_msbuild_bool(apply_optimization_data)}",
        "/p:TreatWarningsAsErrors=true",
    ]
    if bootstrap_dir is not None:
        args.append(f"/p:BootstrapBuildPath={bootstrap_dir}")
    if config.test_coreclr:
        args.append(f"/p:TestTargetFrameworks={CORECLR_TEST_FRAMEWORK}")
    if apply_optimization_data:
        args.append(f"/p:IbcOptimizationDataDir={paths.artifacts / 'OptimizationData'}")
    if not config.deploy_extensions:
        # Only ever suppress deployment; projects choose their own default.
        args.append("/p:DeployExtension=false")
    if config.warn_as_error:
        args.append("/warnAsError")

    args += list(config.properties)
    return args


def run_build_engine(
    engine: BuildEngine,
    runner: ToolRunner,
    config: BuildConfiguration,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
    *,
    apply_optimization_data: bool,
    bootstrap_dir: Path | None = None,
) -> None:
    """Invoke the build engine once for every requested phase."""
    args = build_engine_args(
        config,
        paths,
        cfg,
        apply_optimization_data=apply_optimization_data,
        bootstrap_dir=bootstrap_dir,
    )
    activity("build", f"Building {config.configuration} ({', '.join(p.value for p in config.requested_phases)})")
    exec_tool(runner, engine.executable, engine.command_args(args))


def make_bootstrap_build(
    engine: BuildEngine,
    runner: ToolRunner,
    config: BuildConfiguration,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
) -> Path:
    """Build the compiler toolset used to compile the rest of the repository.

    Returns:
        Directory containing the bootstrap toolset package.
    """
    project = paths.repo_root / cfg["paths"]["bootstrap_project"]
    bootstrap_dir = paths.bootstrap_dir
    bootstrap_dir.mkdir(parents=True, exist_ok=True)

    args = [
        str(project),
        "/m",
        "/nologo",
        f"/v:{config.verbosity}",
        "/t:Pack",
        "/p:Restore=true",
        f"/p:Configuration={config.bootstrap_configuration}",
        f"/p:PackageOutputPath={bootstrap_dir}",
        "/p:UseRoslynAnalyzers=false",
    ]
    if config.binary_log:
        args.append(f"/bl:{paths.log_dir / 'Bootstrap.binlog'}")

    activity("bootstrap", f"Building bootstrap compiler ({config.bootstrap_configuration}) into {bootstrap_dir}")
    exec_tool(runner, engine.executable, engine.command_args(args))

    # The compiler server would otherwise keep the bootstrap binaries locked.
    for info in stop_processes("vbcscompiler"):
        logger.debug(f"Stopped compiler server {info}")

    return bootstrap_dir
