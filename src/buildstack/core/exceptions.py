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

"""Buildstack-specific exception types with associated exit codes."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class BuildstackError(Exception):
    """Base class for Buildstack errors with an exit code."""

    message: str = "An error occurred"
    exit_code: int = field(default=1)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.message} (exit {self.exit_code})"


@dataclass
class HelpRequested(BuildstackError):
    """Raised when usage should be printed and the run should end successfully."""

    message: str = "Help requested"
    exit_code: int = field(default=0)


@dataclass
class UsageError(BuildstackError):
    """Malformed or conflicting command-line flags."""

    exit_code: int = field(default=1)


@dataclass
class PreconditionError(BuildstackError):
    """Official-build fields are missing a required companion."""

    exit_code: int = field(default=1)


@dataclass
class ToolMissingError(BuildstackError):
    """A required external executable or tool package is absent."""

    exit_code: int = field(default=1)
    tool: str = ""


@dataclass
class ExternalToolError(BuildstackError):
    """An invoked external process returned a nonzero exit code."""

    exit_code: int = field(default=1)
    tool: str = ""
    returncode: int = 0


@dataclass
class DiscoveryError(BuildstackError):
    """A required external instance (e.g. the host IDE) could not be found."""

    exit_code: int = field(default=1)


@dataclass
class OptimizationDataError(BuildstackError):
    """Optimization data could not be acquired or generated."""

    exit_code: int = field(default=1)
