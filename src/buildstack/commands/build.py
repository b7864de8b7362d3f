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

"""Implementation of `buildstack build` command.

Validates the command-line flags, resolves the repository layout and runs
the build pipeline: restore, build, sign, pack, test, publish and launch, in
that order, as requested.
"""

from __future__ import annotations

import sys
import traceback
from pathlib import Path

import typer

from buildstack.build import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    BuildFlags,
    Pipeline,
    SubprocessRunner,
    validate_arguments,
)
from buildstack.core.config import load_config
from buildstack.core.exceptions import HelpRequested, PreconditionError, UsageError
from buildstack.core.paths import find_repo_root, resolve_paths
from buildstack.core.run import RunContext, activity


def build(
    ctx: typer.Context,
    properties: list[str] | None = typer.Argument(None, help="Extra build engine properties, e.g. /p:Name=Value"),
    configuration: str = typer.Option("Debug", "-c", "--configuration", help="Build configuration: Debug or Release"),
    verbosity: str = typer.Option("m", "-v", "--verbosity", help="Build engine verbosity: q[uiet], m[inimal], n[ormal], d[etailed], diag[nostic]"),
    msbuild_engine: str = typer.Option("vs", "--msbuild-engine", help="Build engine: vs or dotnet"),
    restore: bool = typer.Option(False, "-r", "--restore", help="Restore packages"),
    build_: bool = typer.Option(False, "-b", "--build", help="Build the solution"),
    rebuild: bool = typer.Option(False, "--rebuild", help="Rebuild the solution"),
    sign: bool = typer.Option(False, "--sign", help="Sign build outputs"),
    pack: bool = typer.Option(False, "--pack", help="Create packages"),
    publish: bool = typer.Option(False, "--publish", help="Publish build artifacts"),
    launch: bool = typer.Option(False, "--launch", help="Launch the IDE in the isolated root suffix"),
    bootstrap: bool = typer.Option(False, "--bootstrap", help="Build with a bootstrap compiler built from source"),
    bootstrap_configuration: str = typer.Option("Release", "--bootstrap-configuration", help="Configuration of the bootstrap compiler"),
    binary_log: bool = typer.Option(False, "--binary-log", "--bl", help="Create a binary log of the build"),
    ci: bool = typer.Option(False, "--ci", help="Running in a CI environment"),
    procdump: bool = typer.Option(False, "--procdump", help="Collect crash dumps of test processes"),
    skip_analyzers: bool = typer.Option(False, "--skip-analyzers", help="Do not run analyzers during build"),
    deploy_extensions: bool = typer.Option(False, "-d", "--deploy-extensions", help="Deploy built extensions into the IDE"),
    prepare_machine: bool = typer.Option(False, "--prepare-machine", help="Stop build servers after the run [--ci only]"),
    use_global_nuget_cache: bool = typer.Option(
        True,
        "--use-global-nuget-cache/--no-use-global-nuget-cache",
        help="Use the global package cache instead of a repository-local one",
    ),
    warn_as_error: bool = typer.Option(False, "--warn-as-error", help="Treat build warnings as errors"),
    official_build_id: str = typer.Option("", "--official-build-id", help="Official build id, e.g. 20190102.3"),
    vs_drop_name: str = typer.Option("", "--vs-drop-name", help="Visual Studio product drop name"),
    vs_branch: str = typer.Option("", "--vs-branch", help="Visual Studio insertion branch"),
    vs_drop_access_token: str = typer.Option("", "--vs-drop-access-token", help="Access token for the artifact service"),
    test32: bool = typer.Option(False, "--test32", help="Run tests in 32-bit mode"),
    test64: bool = typer.Option(False, "--test64", help="Run tests in 64-bit mode"),
    test_vsi: bool = typer.Option(False, "--test-vsi", help="Run all integration tests"),
    test_desktop: bool = typer.Option(False, "--test-desktop", "--test", help="Run desktop unit tests"),
    test_coreclr: bool = typer.Option(False, "--test-coreclr", help="Run CoreCLR unit tests"),
    test_ioperation: bool = typer.Option(False, "--test-ioperation", help="Run desktop unit tests with IOperation validation"),
) -> None:
    """Build the repository.

    Flags select which phases run; all requested build phases are handed to
    a single build engine invocation. Extra arguments must be build engine
    properties of the form /p:Name=Value.

    Examples:
        buildstack build -r -b                  # Restore and build
        buildstack build -r -b --test           # ... and run desktop unit tests
        buildstack build -b -d --launch         # Build, deploy and start the IDE

    Exit codes:
      0 - Success
      1 - Invalid arguments / Build failed
    """
    flags = BuildFlags(
        configuration=configuration,
        verbosity=verbosity,
        msbuild_engine=msbuild_engine,
        restore=restore,
        build=build_,
        rebuild=rebuild,
        sign=sign,
        pack=pack,
        publish=publish,
        launch=launch,
        bootstrap=bootstrap,
        bootstrap_configuration=bootstrap_configuration,
        binary_log=binary_log,
        ci=ci,
        procdump=procdump,
        skip_analyzers=skip_analyzers,
        deploy_extensions=deploy_extensions,
        prepare_machine=prepare_machine,
        use_global_nuget_cache=use_global_nuget_cache,
        warn_as_error=warn_as_error,
        official_build_id=official_build_id,
        vs_drop_name=vs_drop_name,
        vs_branch=vs_branch,
        vs_drop_access_token=vs_drop_access_token,
        test32=test32,
        test64=test64,
        test_vsi=test_vsi,
        test_desktop=test_desktop,
        test_coreclr=test_coreclr,
        test_ioperation=test_ioperation,
        properties=list(properties or []),
    )

    try:
        config = validate_arguments(flags)
    except HelpRequested:
        typer.echo(ctx.get_help())
        sys.exit(EXIT_SUCCESS)
    except UsageError as e:
        typer.echo(f"Error: {e.message}", err=True)
        typer.echo(ctx.get_usage())
        sys.exit(e.exit_code)
    except PreconditionError as e:
        typer.echo(f"Error: {e.message}", err=True)
        sys.exit(e.exit_code)

    try:
        repo_root = find_repo_root(Path.cwd())
        cfg = load_config(repo_root)
        paths = resolve_paths(repo_root, config.configuration, cfg, config.use_global_nuget_cache)
        with RunContext("build", paths.runs_root) as run:
            run.write_summary(repo_root=str(repo_root), configuration=config.to_dict())
            result = Pipeline(config, paths, cfg, run, SubprocessRunner()).execute()
            run.write_summary(result=result.to_dict())
    except Exception as e:
        activity("error", f"Unhandled error: {e}")
        traceback.print_exc(file=sys.__stderr__)
        sys.exit(EXIT_FAILURE)

    sys.exit(result.exit_code)
