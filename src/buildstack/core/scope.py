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

"""Scoped process state: working directory and environment variables."""

from __future__ import annotations

import contextlib
import os
from collections.abc import Iterator
from pathlib import Path


@contextlib.contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Change into ``path`` and always return to the previous directory."""
    previous = Path.cwd()
    os.chdir(path)
    try:
        yield previous
    finally:
        os.chdir(previous)


@contextlib.contextmanager
def scoped_env(name: str, value: str | None, restore: bool = True) -> Iterator[None]:
    """Set an environment variable for the duration of the block.

    A ``value`` of None leaves the variable untouched on entry. On exit the
    previous value is restored, or, with ``restore=False``, the variable is
    removed whatever it held before.
    """
    previous = os.environ.get(name)
    if value is not None:
        os.environ[name] = value
    try:
        yield
    finally:
        if value is not None or not restore:
            if restore and previous is not None:
                os.environ[name] = previous
            else:
                os.environ.pop(name, None)
