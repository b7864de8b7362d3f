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

"""Error handling utilities for pipeline phases.

Every phase reports progress the same way: a human-readable activity line on
the terminal plus a structured event in the run's events.jsonl.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from buildstack.core.run import activity

if TYPE_CHECKING:
    from buildstack.core.exceptions import BuildstackError
    from buildstack.core.run import RunContext

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def log_phase_event(
    run: RunContext,
    phase: str,
    message: str,
    event_key: str,
    **event_data: Any,
) -> None:
    """Log a phase activity message and structured event together.

    Args:
        run: RunContext for structured logging.
        phase: Phase name for activity logging (e.g., "restore", "test").
        message: Human-readable message for activity output.
        event_key: Event key for structured logging (e.g., "test.runner").
        **event_data: Additional data to include in the log event.
    """
    activity(phase, message)
    run.log_event({"event": event_key, **event_data})


def phase_error(
    run: RunContext,
    phase: str,
    error: BuildstackError,
    *,
    event_key: str | None = None,
    **event_data: Any,
) -> int:
    """Log a phase failure and write the summary, returning the exit code.

    The log event key defaults to "{phase}.error".

    Returns:
        The error's exit code, for use in ``return phase_error(...)``.
    """
    activity(phase, f"ERROR: {error.message}")
    run.log_event({
        "event": event_key or f"{phase}.error",
        "error_type": type(error).__name__,
        "message": error.message,
        "exit_code": error.exit_code,
        **event_data,
    })
    run.write_summary(
        status="failed",
        error=error.message,
        exit_code=error.exit_code,
    )
    return error.exit_code


def phase_warning(
    run: RunContext,
    phase: str,
    message: str,
    *,
    event_key: str | None = None,
    **event_data: Any,
) -> None:
    """Log a phase warning without affecting exit status."""
    activity(phase, f"Warning: {message}")
    run.log_event({
        "event": event_key or f"{phase}.warning",
        "message": message,
        **event_data,
    })
