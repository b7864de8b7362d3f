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

"""Top-level sequencing of one build invocation.

The pipeline runs in a single linear pass:

    prepare (CI only) -> bootstrap -> acquire optimization data -> build engine
    -> generate optimization data -> tests -> launch

Each step runs only when the validated configuration asks for it. A failing
step ends the run; nothing is retried. The working directory is the
repository root for the whole run and is restored on every exit path.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from buildstack.build.configuration import BuildConfiguration
from buildstack.build.engine import (
    BuildEngine,
    locate_build_engine,
    make_bootstrap_build,
    run_build_engine,
)
from buildstack.build.errors import EXIT_FAILURE, EXIT_SUCCESS, log_phase_event, phase_error, phase_warning
from buildstack.build.optimization import (
    acquire_optimization_data,
    build_optimization_data,
    manifest_variable_line,
)
from buildstack.build.processes import report_build_processes, stop_build_servers
from buildstack.build.testing import run_tests
from buildstack.build.tools import ToolRunner, require_tool
from buildstack.build.types import Phase, PipelineResult
from buildstack.core.exceptions import BuildstackError, DiscoveryError
from buildstack.core.paths import RepoPaths, ensure_directories
from buildstack.core.run import activity
from buildstack.core.scope import scoped_env, working_directory

if TYPE_CHECKING:
    from buildstack.core.run import RunContext

logger = logging.getLogger(__name__)

TEMPLATE_FILES = (
    ".editorconfig",
    "Directory.Build.props",
    "Directory.Build.targets",
    "Directory.Build.rsp",
    "NuGet.Config",
)

PACKAGES_VARIABLE = "NUGET_PACKAGES"
IDE_INSTALL_VARIABLE = "VSINSTALLDIR"
IDE_RELATIVE_PATH = Path("Common7") / "IDE" / "devenv.exe"


def stage_template_files(paths: RepoPaths, cfg: Mapping[str, Any]) -> list[Path]:
    """Copy the workspace template files into the shared temp directory.

    Projects created under the temp directory by workspace tests pick these up
    instead of the repository's own build customizations.
    """
    resources = paths.repo_root / cfg["paths"]["test_resources"]
    paths.temp_dir.mkdir(parents=True, exist_ok=True)
    staged: list[Path] = []
    for name in TEMPLATE_FILES:
        source = resources / name
        if not source.exists():
            logger.debug(f"Template file not found: {source}")
            continue
        target = paths.temp_dir / name
        shutil.copyfile(source, target)
        staged.append(target)
    return staged


def locate_ide_executable() -> Path:
    """Return the host IDE executable from the developer environment.

    Raises:
        DiscoveryError: VSINSTALLDIR is not set.
    """
    install_dir = os.environ.get(IDE_INSTALL_VARIABLE)
    if not install_dir:
        raise DiscoveryError(
            message=f"{IDE_INSTALL_VARIABLE} is not set; run from a developer command prompt to use --launch"
        )
    return Path(install_dir) / IDE_RELATIVE_PATH


class Pipeline:
    """Sequencer for a single validated build invocation.

    Args:
        config: Validated configuration.
        paths: Resolved repository layout.
        cfg: Merged YAML configuration.
        run: Run context receiving structured events.
        runner: Starts every external tool.
        engine_locator: Override for build engine discovery.
    """

    def __init__(
        self,
        config: BuildConfiguration,
        paths: RepoPaths,
        cfg: Mapping[str, Any],
        run: RunContext,
        runner: ToolRunner,
        engine_locator: Callable[[BuildConfiguration, Mapping[str, Any]], BuildEngine] = locate_build_engine,
    ) -> None:
        self.config = config
        self.paths = paths
        self.cfg = cfg
        self.run = run
        self.runner = runner
        self.engine_locator = engine_locator
        self.completed: list[Phase] = []
        self._engine: BuildEngine | None = None

    @property
    def engine(self) -> BuildEngine:
        if self._engine is None:
            self._engine = self.engine_locator(self.config, self.cfg)
            logger.debug(f"Using build engine {self._engine.executable}")
        return self._engine

    def execute(self) -> PipelineResult:
        """Run every requested step and return the outcome.

        BuildstackError from any step is reported through phase_error() and
        turned into exit code 1. Any other exception propagates to the caller
        after the working directory and environment are restored.
        """
        config = self.config
        self.run.log_event({"event": "pipeline.start", **config.to_dict()})

        packages_value = None if config.use_global_nuget_cache else str(self.paths.packages_dir)
        with working_directory(self.paths.repo_root), scoped_env(PACKAGES_VARIABLE, packages_value):
            try:
                self._run_steps()
            except BuildstackError as e:
                phase_error(self.run, "build", e)
                return PipelineResult(exit_code=EXIT_FAILURE, phases=list(self.completed), error=e.message)
            finally:
                if config.ci and config.prepare_machine:
                    self._cleanup_machine()

        self.run.write_summary(status="success", phases=[p.value for p in self.completed])
        activity("report", "Build completed")
        return PipelineResult(exit_code=EXIT_SUCCESS, phases=list(self.completed))

    def _run_steps(self) -> None:
        config = self.config
        ensure_directories(self.paths)

        if config.ci:
            self._prepare_ci()

        bootstrap_dir = None
        if config.bootstrap:
            bootstrap_dir = make_bootstrap_build(self.engine, self.runner, config, self.paths, self.cfg)
            log_phase_event(
                self.run,
                "bootstrap",
                f"Bootstrap compiler ready in {bootstrap_dir}",
                "bootstrap.complete",
                path=str(bootstrap_dir),
            )

        # Decided once; acquisition may degrade it to False.
        optimization_available = config.apply_optimization_data
        if config.apply_optimization_data and config.restore:
            acquired = acquire_optimization_data(self.runner, config, self.paths, self.cfg)
            optimization_available = acquired.applied
            if not acquired.applied:
                phase_warning(self.run, "optprof", "Optimization data unavailable, building without it")
            if acquired.drop is not None:
                self.run.log_event({"event": "optprof.acquired", "drop": acquired.drop.name})

        if config.run_build_engine:
            run_build_engine(
                self.engine,
                self.runner,
                config,
                self.paths,
                self.cfg,
                apply_optimization_data=optimization_available,
                bootstrap_dir=bootstrap_dir,
            )
            self.completed += [p for p in config.requested_phases if p not in (Phase.TEST, Phase.LAUNCH)]
            if config.test_coreclr:
                self.completed.append(Phase.TEST)

        if optimization_available and config.build:
            generated = build_optimization_data(self.runner, config, self.paths, self.cfg)
            variable = str(self.cfg["optimization"]["manifest_variable"])
            print(manifest_variable_line(variable, generated.manifests), file=sys.__stdout__, flush=True)
            log_phase_event(
                self.run,
                "optprof",
                f"Optimization data written to {generated.output_dir}",
                "optprof.generated",
                manifests=generated.manifests,
            )

        if config.run_tests:
            binaries = run_tests(self.runner, config, self.paths, self.cfg)
            self.run.log_event({
                "event": "test.complete",
                "mode": config.test_selection.mode.value,
                "binaries": [str(b) for b in binaries],
            })
            if Phase.TEST not in self.completed:
                self.completed.append(Phase.TEST)

        if config.launch:
            self._launch()
            self.completed.append(Phase.LAUNCH)

    def _prepare_ci(self) -> None:
        report_build_processes()
        staged = stage_template_files(self.paths, self.cfg)
        log_phase_event(
            self.run,
            "prepare",
            f"Staged {len(staged)} template files into {self.paths.temp_dir}",
            "prepare.templates",
            files=[p.name for p in staged],
        )

    def _launch(self) -> None:
        devenv = require_tool(locate_ide_executable(), "Run from a developer command prompt.")
        hive = str(self.cfg["deploy"]["root_suffix"])
        activity("launch", f"Starting {devenv.name} with root suffix {hive}")
        self.runner.start(devenv, ["/rootSuffix", hive])

    def _cleanup_machine(self) -> None:
        for info in stop_build_servers():
            activity("cleanup", f"Stopped {info}")

