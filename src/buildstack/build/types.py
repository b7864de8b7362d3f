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

"""Type definitions shared by the pipeline phases.

This module provides the enums and dataclasses that structure the data
passed between phases and returned to the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Phase(Enum):
    """Pipeline phases in their fixed execution order."""

    RESTORE = "restore"
    BUILD = "build"
    REBUILD = "rebuild"
    SIGN = "sign"
    PACK = "pack"
    PUBLISH = "publish"
    TEST = "test"
    LAUNCH = "launch"

    @classmethod
    def ordered(cls, phases: set[Phase]) -> list[Phase]:
        """Return ``phases`` sorted by pipeline order, ignoring request order."""
        order = list(cls)
        return sorted(phases, key=order.index)


class TestMode(Enum):
    """Which set of compiled test binaries the test engine runs."""

    __test__ = False

    DESKTOP = "desktop"
    CORECLR = "coreclr"
    INTEGRATION = "integration"
    VSI = "vsi"


@dataclass(frozen=True)
class TestSelection:
    """Mode and platform flags that drive test binary selection.

    Attributes:
        mode: Test mode; IOperation runs use DESKTOP with include_ioperation.
        bitness: 32 or 64.
        include_ioperation: Whether the extra IOperation validation is enabled.
    """

    __test__ = False

    mode: TestMode
    bitness: int = 32
    include_ioperation: bool = False


@dataclass
class PipelineResult:
    """Final outcome of one pipeline invocation.

    Attributes:
        exit_code: Process exit code (0 success, 1 failure).
        phases: Phases that ran, in order.
        error: Error message if the run failed.
    """

    exit_code: int
    phases: list[Phase] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the run summary."""
        return {
            "exit_code": self.exit_code,
            "phases": [p.value for p in self.phases],
            "error": self.error,
        }
