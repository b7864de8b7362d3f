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

"""Command-line flag validation for the build pipeline.

BuildFlags holds the raw values exactly as given on the command line.
validate_arguments() checks them in a fixed order and produces the frozen
BuildConfiguration that every later phase reads. Nothing downstream builds
its own configuration or mutates this one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from buildstack.build.types import Phase, TestMode, TestSelection
from buildstack.core.exceptions import HelpRequested, PreconditionError, UsageError

HELP_TOKENS = frozenset({"/help", "/?", "-help", "--help"})
PROPERTY_PREFIX = "/p:"
BUILD_ENGINES = ("vs", "dotnet")

DEFAULT_VS_BRANCH = "dummy/branch"
DEFAULT_VS_DROP_NAME = "Products/DummyDrop"


@dataclass
class BuildFlags:
    """Raw command-line flags before validation."""

    configuration: str = "Debug"
    verbosity: str = "m"
    msbuild_engine: str = "vs"

    # Actions
    restore: bool = False
    build: bool = False
    rebuild: bool = False
    sign: bool = False
    pack: bool = False
    publish: bool = False
    launch: bool = False
    help: bool = False

    # Options
    bootstrap: bool = False
    bootstrap_configuration: str = "Release"
    binary_log: bool = False
    ci: bool = False
    procdump: bool = False
    skip_analyzers: bool = False
    deploy_extensions: bool = False
    prepare_machine: bool = False
    use_global_nuget_cache: bool = True
    warn_as_error: bool = False

    # Official build settings
    official_build_id: str = ""
    vs_drop_name: str = ""
    vs_branch: str = ""
    vs_drop_access_token: str = ""

    # Test actions
    test32: bool = False
    test64: bool = False
    test_vsi: bool = False
    test_desktop: bool = False
    test_coreclr: bool = False
    test_ioperation: bool = False

    properties: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BuildConfiguration:
    """Validated, immutable configuration for one pipeline run.

    Derived values (apply_optimization_data, run_build_engine, run_tests and
    the forced analyzer/bootstrap settings for integration runs) are computed
    once by validate_arguments() and stored as plain fields.
    """

    configuration: str
    verbosity: str
    msbuild_engine: str

    restore: bool
    build: bool
    rebuild: bool
    sign: bool
    pack: bool
    publish: bool
    launch: bool

    bootstrap: bool
    bootstrap_configuration: str
    binary_log: bool
    ci: bool
    procdump: bool
    skip_analyzers: bool
    deploy_extensions: bool
    prepare_machine: bool
    use_global_nuget_cache: bool
    warn_as_error: bool

    official_build_id: str
    vs_drop_name: str
    vs_branch: str
    vs_drop_access_token: str

    test32: bool
    test64: bool
    test_vsi: bool
    test_desktop: bool
    test_coreclr: bool
    test_ioperation: bool

    properties: tuple[str, ...]

    apply_optimization_data: bool
    run_build_engine: bool
    run_tests: bool

    @property
    def official_build(self) -> bool:
        return bool(self.official_build_id)

    @property
    def requested_phases(self) -> list[Phase]:
        """Requested phases in pipeline order."""
        requested = {
            phase
            for phase, wanted in (
                (Phase.RESTORE, self.restore),
                (Phase.BUILD, self.build),
                (Phase.REBUILD, self.rebuild),
                (Phase.SIGN, self.sign),
                (Phase.PACK, self.pack),
                (Phase.PUBLISH, self.publish),
                (Phase.TEST, self.run_tests or self.test_coreclr),
                (Phase.LAUNCH, self.launch),
            )
            if wanted
        }
        return Phase.ordered(requested)

    @property
    def test_selection(self) -> TestSelection:
        if self.test_vsi:
            mode = TestMode.VSI
        elif self.test_desktop or self.test_ioperation:
            mode = TestMode.DESKTOP
        elif self.test_coreclr:
            mode = TestMode.CORECLR
        else:
            mode = TestMode.INTEGRATION
        return TestSelection(
            mode=mode,
            bitness=64 if self.test64 else 32,
            include_ioperation=self.test_ioperation,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/summary, hiding secrets."""
        return {
            "configuration": self.configuration,
            "msbuild_engine": self.msbuild_engine,
            "phases": [p.value for p in self.requested_phases],
            "ci": self.ci,
            "official_build_id": self.official_build_id,
            "vs_branch": self.vs_branch,
            "vs_drop_name": self.vs_drop_name,
            "apply_optimization_data": self.apply_optimization_data,
            "test_mode": self.test_selection.mode.value if self.run_tests else None,
        }


def is_help_requested(flags: BuildFlags) -> bool:
    return flags.help or any(p.lower() in HELP_TOKENS for p in flags.properties)


def validate_arguments(flags: BuildFlags) -> BuildConfiguration:
    """Validate raw flags and build the immutable configuration.

    Rules are evaluated in order; the first failing rule wins.

    Raises:
        HelpRequested: Help flag or help token given (exit 0).
        PreconditionError: Official-build field missing a companion.
        UsageError: Conflicting or malformed flags.
    """
    if is_help_requested(flags):
        raise HelpRequested()

    vs_branch = flags.vs_branch
    vs_drop_name = flags.vs_drop_name
    use_global_nuget_cache = flags.use_global_nuget_cache
    if flags.official_build_id:
        if not vs_branch or not vs_drop_name:
            raise PreconditionError(
                message="Official builds require both --vs-branch and --vs-drop-name"
            )
        if not flags.vs_drop_access_token:
            raise PreconditionError(message="Official builds require --vs-drop-access-token")
        use_global_nuget_cache = False
    elif not vs_branch and not vs_drop_name:
        vs_branch = DEFAULT_VS_BRANCH
        vs_drop_name = DEFAULT_VS_DROP_NAME

    if flags.test32 and flags.test64:
        raise UsageError(message="Cannot combine --test32 and --test64")

    any_unit = flags.test_desktop or flags.test_coreclr or flags.test_ioperation
    if any_unit and flags.test_vsi:
        raise UsageError(message="Cannot combine unit and VSI testing")

    skip_analyzers = flags.skip_analyzers
    bootstrap = flags.bootstrap
    if flags.test_vsi:
        # Integration runs never pay for analyzers or a bootstrap compiler.
        skip_analyzers = True
        bootstrap = False

    if flags.build and flags.launch and not flags.deploy_extensions:
        raise UsageError(message="Cannot combine --build and --launch without --deploy-extensions")

    test32 = not flags.test64

    for prop in flags.properties:
        if not prop.lower().startswith(PROPERTY_PREFIX):
            raise UsageError(message=f"Invalid argument: {prop}")

    if flags.msbuild_engine not in BUILD_ENGINES:
        raise UsageError(
            message=f"Unknown build engine '{flags.msbuild_engine}' (expected one of: {', '.join(BUILD_ENGINES)})"
        )

    run_build_engine = any((
        flags.restore,
        flags.build,
        flags.rebuild,
        flags.pack,
        flags.sign,
        flags.publish,
        flags.test_coreclr,
    ))
    run_tests = flags.test_desktop or flags.test_vsi or flags.test_ioperation
    apply_optimization_data = (
        flags.ci and flags.configuration == "Release" and flags.msbuild_engine == "vs"
    )

    return BuildConfiguration(
        configuration=flags.configuration,
        verbosity=flags.verbosity,
        msbuild_engine=flags.msbuild_engine,
        restore=flags.restore,
        build=flags.build,
        rebuild=flags.rebuild,
        sign=flags.sign,
        pack=flags.pack,
        publish=flags.publish,
        launch=flags.launch,
        bootstrap=bootstrap,
        bootstrap_configuration=flags.bootstrap_configuration,
        binary_log=flags.binary_log,
        ci=flags.ci,
        procdump=flags.procdump,
        skip_analyzers=skip_analyzers,
        deploy_extensions=flags.deploy_extensions,
        prepare_machine=flags.prepare_machine,
        use_global_nuget_cache=use_global_nuget_cache,
        warn_as_error=flags.warn_as_error,
        official_build_id=flags.official_build_id,
        vs_drop_name=vs_drop_name,
        vs_branch=vs_branch,
        vs_drop_access_token=flags.vs_drop_access_token,
        test32=test32,
        test64=flags.test64,
        test_vsi=flags.test_vsi,
        test_desktop=flags.test_desktop,
        test_coreclr=flags.test_coreclr,
        test_ioperation=flags.test_ioperation,
        properties=tuple(flags.properties),
        apply_optimization_data=apply_optimization_data,
        run_build_engine=run_build_engine,
        run_tests=run_tests,
    )
