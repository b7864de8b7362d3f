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

"""Pytest fixtures and configuration for Buildstack tests."""

from __future__ import annotations

import tempfile
from collections.abc import Callable, Generator, Mapping, Sequence
from pathlib import Path
from typing import Any
from unittest import mock

import pytest
import responses

from buildstack.build.configuration import BuildConfiguration, BuildFlags, validate_arguments
from buildstack.core.config import load_config
from buildstack.core.paths import RepoPaths, resolve_paths


class FakeRunner:
    """ToolRunner that records invocations instead of starting processes.

    ``returncodes`` maps an executable's file name to the exit code it
    should report; unlisted tools succeed.
    """

    def __init__(self, returncodes: Mapping[str, int] | None = None) -> None:
        self.returncodes = dict(returncodes or {})
        self.calls: list[tuple[str, list[str]]] = []
        self.envs: list[dict[str, str] | None] = []
        self.started: list[tuple[str, list[str]]] = []

    def run(
        self,
        executable: str | Path,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> int:
        self.calls.append((str(executable), list(args)))
        self.envs.append(dict(env) if env else None)
        return self.returncodes.get(Path(str(executable)).name, 0)

    def start(self, executable: str | Path, args: Sequence[str]) -> None:
        self.started.append((str(executable), list(args)))

    def names(self) -> list[str]:
        """File names of the executables run, in order."""
        return [Path(executable).name for executable, _ in self.calls]


@pytest.fixture
def temp_home(monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create a temporary home directory and set HOME/LOCALAPPDATA."""
    with tempfile.TemporaryDirectory() as tmpdir:
        home = Path(tmpdir)
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.setenv("LOCALAPPDATA", str(home / "AppData" / "Local"))
        # Also patch Path.home() to return our temp home
        monkeypatch.setattr(Path, "home", lambda: home)
        yield home


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def cfg() -> dict[str, Any]:
    """Default configuration, as loaded when no config file exists."""
    return load_config(None)


@pytest.fixture
def repo_paths(tmp_path: Path, cfg: dict[str, Any]) -> RepoPaths:
    """Repository layout rooted at tmp_path with a repo-local package cache."""
    return resolve_paths(tmp_path, "Debug", cfg, use_global_nuget_cache=False)


@pytest.fixture
def make_config() -> Callable[..., BuildConfiguration]:
    """Factory validating BuildFlags built from keyword arguments."""

    def _make(**kwargs: Any) -> BuildConfiguration:
        return validate_arguments(BuildFlags(**kwargs))

    return _make


@pytest.fixture
def package_tool() -> Callable[[Path, str, str, str], Path]:
    """Factory creating a tool file inside a restored package layout."""

    def _make(packages_dir: Path, package_id: str, version: str, relative_path: str) -> Path:
        tool = packages_dir / package_id.lower() / version / relative_path
        tool.parent.mkdir(parents=True, exist_ok=True)
        tool.write_text("")
        return tool

    return _make


@pytest.fixture
def mock_run() -> mock.MagicMock:
    """Stand-in RunContext that records events and summaries."""
    return mock.MagicMock()


@pytest.fixture
def mock_responses() -> Generator[responses.RequestsMock, None, None]:
    """Activate responses mock for HTTP requests."""
    with responses.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def non_tty_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock sys.__stdout__.isatty() to return False."""
    mock_stdout = mock.MagicMock()
    mock_stdout.isatty.return_value = False
    monkeypatch.setattr("sys.__stdout__", mock_stdout)


@pytest.fixture
def tty_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock sys.__stdout__.isatty() to return True."""
    mock_stdout = mock.MagicMock()
    mock_stdout.isatty.return_value = True
    mock_stdout.write = lambda x: None
    mock_stdout.flush = lambda: None
    monkeypatch.setattr("sys.__stdout__", mock_stdout)
