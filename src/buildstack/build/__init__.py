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

"""Build module for Buildstack.

Provides flag validation, the pipeline controller and the phase helpers it
drives: build engine, optimization data, tests and extension deployment.
"""

# Flag validation
from buildstack.build.configuration import (
    BuildConfiguration,
    BuildFlags,
    is_help_requested,
    validate_arguments,
)

# Extension deployment
from buildstack.build.deploy import (
    DEPLOYMENT_ORDER,
    IdeInstance,
    deploy_extensions,
    locate_ide_instance,
)

# Build engine
from buildstack.build.engine import (
    BuildEngine,
    build_engine_args,
    locate_build_engine,
    make_bootstrap_build,
    run_build_engine,
)

# Error handling and exit codes
from buildstack.build.errors import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    log_phase_event,
    phase_error,
    phase_warning,
)

# Optimization data
from buildstack.build.optimization import (
    FirstDropPolicy,
    OptimizationDrop,
    acquire_optimization_data,
    build_optimization_data,
    select_latest_drop,
)

# Pipeline controller
from buildstack.build.pipeline import Pipeline

# Process hygiene
from buildstack.build.processes import (
    list_build_processes,
    stop_build_servers,
    stop_processes,
)

# Test runs
from buildstack.build.testing import (
    build_runner_args,
    run_tests,
    select_test_binaries,
)

# External tools
from buildstack.build.tools import SubprocessRunner, ToolRunner, exec_tool
from buildstack.build.types import (
    Phase,
    PipelineResult,
    TestMode,
    TestSelection,
)

__all__ = [
    "DEPLOYMENT_ORDER",
    "EXIT_FAILURE",
    # Exit codes
    "EXIT_SUCCESS",
    # Types
    "BuildConfiguration",
    "BuildEngine",
    "BuildFlags",
    "FirstDropPolicy",
    "IdeInstance",
    "OptimizationDrop",
    "Phase",
    "Pipeline",
    "PipelineResult",
    "SubprocessRunner",
    "TestMode",
    "TestSelection",
    "ToolRunner",
    "acquire_optimization_data",
    "build_engine_args",
    "build_optimization_data",
    "build_runner_args",
    "deploy_extensions",
    "exec_tool",
    "is_help_requested",
    "list_build_processes",
    "locate_build_engine",
    "locate_ide_instance",
    # Error helpers
    "log_phase_event",
    "make_bootstrap_build",
    "phase_error",
    "phase_warning",
    "run_build_engine",
    "run_tests",
    "select_latest_drop",
    "select_test_binaries",
    "stop_build_servers",
    "stop_processes",
    "validate_arguments",
]
