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

"""CLI application definition for Buildstack."""

from __future__ import annotations

from typer import Typer

from buildstack.commands.build import build

app: Typer = Typer(
    name="buildstack",
    help="A build pipeline controller for compiler repositories.",
    add_completion=False,
)

# Register commands. Unknown dash tokens such as "-help" reach the command as
# trailing arguments so they can be validated there.
app.command(
    name="build",
    context_settings={"ignore_unknown_options": True},
)(build)


@app.callback()
def main() -> None:
    """A build pipeline controller for compiler repositories."""
