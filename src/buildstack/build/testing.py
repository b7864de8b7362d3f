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

"""Test run assembly and execution.

Selects the compiled test binaries for the requested test mode, builds the
argument list for the optimized test runner (RunTests.exe), and runs it.
Leftover xunit worker processes are killed after every run, passing or not.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import zipfile
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

import requests

from buildstack.build.configuration import BuildConfiguration
from buildstack.build.deploy import deploy_extensions
from buildstack.build.processes import TEST_WORKER_PREFIX, stop_processes
from buildstack.build.tools import ToolRunner, exec_tool, find_package_tool
from buildstack.build.types import TestMode, TestSelection
from buildstack.core.exceptions import ToolMissingError
from buildstack.core.paths import RepoPaths
from buildstack.core.run import activity
from buildstack.core.scope import scoped_env
from buildstack.core.spinner import activity_spinner

logger = logging.getLogger(__name__)

UNIT_TEST_SUFFIX = ".UnitTests.dll"
INTEGRATION_TEST_SUFFIX = ".IntegrationTests.dll"
INTERACTIVE_HOST_MARKER = "InteractiveHost"
WORKSPACE_INTEGRATION_PROJECT = "Microsoft.CodeAnalysis.Workspaces.MSBuild.UnitTests"
CORE_FEATURE_TRAIT = "-trait:Feature=NetCore"

RUNNER_PROJECT = "RunTests"
XUNIT_PACKAGE = "xunit.runner.console"
PROCDUMP_EXE = "procdump.exe"


def discover_test_binaries(bin_dir: Path) -> list[Path]:
    """Return every unit and integration test binary under ``bin_dir``."""
    if not bin_dir.is_dir():
        return []
    found = [
        p
        for p in bin_dir.rglob("*.dll")
        if p.name.endswith(UNIT_TEST_SUFFIX) or p.name.endswith(INTEGRATION_TEST_SUFFIX)
    ]
    return sorted(found)


def is_excluded(path: Path | str) -> bool:
    """True for multi-targeted netcoreapp outputs and reference assemblies."""
    text = str(path)
    if "netcoreapp" in text:
        return True
    return "\\ref\\" in text or "/ref/" in text


def select_test_binaries(
    selection: TestSelection,
    binaries: Iterable[Path],
    *,
    ci: bool = False,
    workspace_binary: Path | None = None,
) -> list[Path]:
    """Pick the binaries the test runner should execute.

    Args:
        selection: Test mode and bitness.
        binaries: Candidate binaries, usually from discover_test_binaries().
        ci: CI runs of VSI mode also run the workspace integration binary.
        workspace_binary: Path of that workspace integration binary.
    """
    candidates = list(binaries)

    if selection.mode is TestMode.DESKTOP:
        selected = [p for p in candidates if p.name.endswith(UNIT_TEST_SUFFIX)]
        if selection.bitness != 32:
            selected = [p for p in selected if INTERACTIVE_HOST_MARKER not in str(p)]
    elif selection.mode is TestMode.VSI:
        selected = []
        if ci and workspace_binary is not None:
            selected.append(workspace_binary)
        selected += [p for p in candidates if p.name.endswith(INTEGRATION_TEST_SUFFIX)]
    else:
        selected = [p for p in candidates if p.name.endswith(INTEGRATION_TEST_SUFFIX)]

    return [p for p in selected if not is_excluded(p)]


def build_runner_args(
    config: BuildConfiguration,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
    *,
    xunit_dir: Path,
    procdump_dir: Path,
    binaries: list[Path],
) -> list[str]:
    """Assemble the test runner's argument list; binaries always come last."""
    selection = config.test_selection
    test_cfg = cfg["test"]

    args = [
        str(xunit_dir),
        f"-out:{paths.test_results_dir}",
        f"-logs:{paths.log_dir}",
        "-nocache",
        f"-tfm:{test_cfg['target_framework']}",
        "-test64" if selection.bitness == 64 else "-test32",
        f"-procdumppath:{procdump_dir}",
    ]
    if config.procdump:
        args.append("-useprocdump")
    if selection.mode is TestMode.VSI:
        args.append("-testVsi")
    elif selection.mode is not TestMode.DESKTOP:
        args.append(CORE_FEATURE_TRAIT)
    if config.ci:
        timeout = test_cfg["integration_timeout"] if selection.mode is TestMode.VSI else test_cfg["unit_timeout"]
        args += ["-xml", f"-timeout:{timeout}"]

    args += [str(b) for b in binaries]
    return args


def locate_test_runner(config: BuildConfiguration, paths: RepoPaths) -> Path:
    """Return the built test runner.

    Raises:
        ToolMissingError: The runner has not been built yet.
    """
    runner_exe = paths.project_output(RUNNER_PROJECT, config.configuration) / f"{RUNNER_PROJECT}.exe"
    if not runner_exe.exists():
        raise ToolMissingError(
            message=f"Test runner not found: '{runner_exe}'. Run build first.",
            tool=str(runner_exe),
        )
    return runner_exe


def ensure_procdump(
    paths: RepoPaths,
    cfg: Mapping[str, Any],
    session: requests.Session | None = None,
) -> Path:
    """Return the directory holding procdump, downloading it when needed.

    A machine-wide installation at the configured local directory wins.
    Otherwise the archive is downloaded once into the tools directory.
    """
    tools_cfg = cfg["tools"]
    local_dir = Path(str(tools_cfg["procdump_local_dir"]))
    if (local_dir / PROCDUMP_EXE).exists():
        return local_dir

    out_dir = paths.tools_dir / "ProcDump"
    if (out_dir / PROCDUMP_EXE).exists():
        return out_dir

    shutil.rmtree(out_dir, ignore_errors=True)
    out_dir.mkdir(parents=True, exist_ok=True)
    zip_path = paths.tools_dir / "procdump.zip"
    url = str(tools_cfg["procdump_url"])

    session = session or requests.Session()
    with activity_spinner("test", f"Downloading procdump from {url}"):
        response = session.get(url, timeout=60)
        response.raise_for_status()
        zip_path.write_bytes(response.content)
        with zipfile.ZipFile(zip_path) as archive:
            archive.extractall(out_dir)
    return out_dir


def minimize_all_windows(runner: ToolRunner) -> None:
    """Minimize every window of the interactive session. Failures are ignored."""
    returncode = runner.run("powershell", [
        "-NoProfile",
        "-Command",
        "(New-Object -ComObject Shell.Application).MinimizeAll()",
    ])
    if returncode != 0:
        logger.warning(f"Minimizing windows failed with exit code {returncode}")


def run_tests(
    runner: ToolRunner,
    config: BuildConfiguration,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
    *,
    procdump_dir: Path | None = None,
    deploy: Callable[[ToolRunner, RepoPaths, Mapping[str, Any]], object] = deploy_extensions,
) -> list[Path]:
    """Run the Desktop, IOperation or VSI test set.

    Returns:
        The binaries handed to the test runner.

    Raises:
        ToolMissingError: The test runner or xunit console is missing.
        ExternalToolError: The test runner reported failures.
    """
    selection = config.test_selection
    test_runner = locate_test_runner(config, paths)

    xunit_dir = find_package_tool(paths.packages_dir, XUNIT_PACKAGE, f"tools/{cfg['test']['target_framework']}")
    if xunit_dir is None:
        raise ToolMissingError(
            message=f"{XUNIT_PACKAGE} not found under '{paths.packages_dir}'. Run restore first.",
            tool=XUNIT_PACKAGE,
        )

    if procdump_dir is None:
        procdump_dir = ensure_procdump(paths, cfg)

    if selection.mode is TestMode.VSI:
        deploy(runner, paths, cfg)
        if config.ci:
            minimize_all_windows(runner)

    workspace_binary = (
        paths.project_output(WORKSPACE_INTEGRATION_PROJECT, config.configuration)
        / f"{WORKSPACE_INTEGRATION_PROJECT}.dll"
    )
    binaries = select_test_binaries(
        selection,
        discover_test_binaries(paths.bin_dir),
        ci=config.ci,
        workspace_binary=workspace_binary,
    )
    args = build_runner_args(
        config,
        paths,
        cfg,
        xunit_dir=xunit_dir,
        procdump_dir=procdump_dir,
        binaries=binaries,
    )

    activity("test", f"Running {len(binaries)} test assemblies ({selection.mode.value}, {selection.bitness}-bit)")
    ioperation_scope = (
        scoped_env(cfg["test"]["ioperation_variable"], "true", restore=False)
        if selection.include_ioperation
        else contextlib.nullcontext()
    )
    with ioperation_scope:
        try:
            exec_tool(runner, test_runner, args)
        finally:
            for info in stop_processes(TEST_WORKER_PREFIX):
                activity("test", f"Stopped leftover test worker {info}")

    return binaries
