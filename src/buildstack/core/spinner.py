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

"""TTY-aware spinner shown while Buildstack waits on downloads and discovery.

CI agents never get a TTY, so their logs receive a single plain line per
activity. Interactive terminals get a transient Rich spinner.
"""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Iterator

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner


def is_tty() -> bool:
    """Return True if the real stdout is a TTY."""
    try:
        if sys.__stdout__ is None:
            return False  # pragma: no cover
        return sys.__stdout__.isatty()
    except Exception:
        return False


@contextlib.contextmanager
def activity_spinner(phase: str, description: str, disable: bool = False) -> Iterator[None]:
    """Show a spinner for the duration of the wrapped block.

    Args:
        phase: Short phase label (e.g., "test", "deploy").
        description: Human-readable description of current activity.
        disable: Force plain output even on a TTY (``--ci`` runs pass True).
    """
    text = f"[{phase}] {description}"

    if disable or not is_tty():
        with contextlib.suppress(Exception):
            print(text, file=sys.__stdout__, flush=True)
        yield
        return

    console = Console(file=sys.__stdout__, force_terminal=True)
    with Live(Spinner("line", text=text), console=console, refresh_per_second=10, transient=True):
        yield

    with contextlib.suppress(Exception):
        print(text, file=sys.__stdout__, flush=True)
