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

"""Tests for buildstack.build.tools module."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from buildstack.build import tools
from buildstack.core.exceptions import ExternalToolError, ToolMissingError


class TestExecTool:
    """Tests for exec_tool function."""

    def test_success(self, fake_runner) -> None:
        tools.exec_tool(fake_runner, Path("/tools/msbuild.exe"), ["/m"])

        assert fake_runner.calls == [("/tools/msbuild.exe", ["/m"])]

    def test_nonzero_exit_raises(self) -> None:
        runner = MagicMock()
        runner.run.return_value = 3

        with pytest.raises(ExternalToolError) as exc_info:
            tools.exec_tool(runner, Path("/tools/drop.exe"), ["list"])

        assert exc_info.value.returncode == 3
        assert exc_info.value.exit_code == 1
        assert exc_info.value.tool == "/tools/drop.exe"
        assert "drop.exe failed with exit code 3" in exc_info.value.message

    def test_passes_environment(self, fake_runner) -> None:
        tools.exec_tool(fake_runner, "tool", [], env={"A": "1"})

        assert fake_runner.envs == [{"A": "1"}]


class TestSubprocessRunner:
    """Tests for SubprocessRunner class."""

    def test_run_returns_exit_code(self) -> None:
        with patch("buildstack.build.tools.subprocess.run") as mock_run:
            mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=5)

            code = tools.SubprocessRunner().run("msbuild", ["/m"], env={"X": "1"})

        assert code == 5
        cmd = mock_run.call_args.args[0]
        assert cmd == ["msbuild", "/m"]
        assert mock_run.call_args.kwargs["env"]["X"] == "1"

    def test_run_missing_executable(self) -> None:
        with patch("buildstack.build.tools.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(ToolMissingError) as exc_info:
                tools.SubprocessRunner().run("nope.exe", [])

        assert exc_info.value.tool == "nope.exe"

    def test_start_does_not_wait(self) -> None:
        with patch("buildstack.build.tools.subprocess.Popen") as mock_popen:
            tools.SubprocessRunner().start(Path("devenv.exe"), ["/rootSuffix", "RoslynDev"])

        mock_popen.assert_called_once_with(["devenv.exe", "/rootSuffix", "RoslynDev"])
        mock_popen.return_value.wait.assert_not_called()

    def test_start_missing_executable(self) -> None:
        with patch("buildstack.build.tools.subprocess.Popen", side_effect=FileNotFoundError()):
            with pytest.raises(ToolMissingError):
                tools.SubprocessRunner().start("devenv.exe", [])


class TestRunCommand:
    """Tests for run_command function."""

    def test_captures_output(self) -> None:
        with patch("buildstack.build.tools.subprocess.run") as mock_run:
            mock_run.return_value = subprocess.CompletedProcess(
                args=[], returncode=0, stdout="[]", stderr=""
            )

            code, out, err = tools.run_command(["vswhere", "-latest"])

        assert (code, out, err) == (0, "[]", "")
        assert mock_run.call_args.kwargs["capture_output"] is True


class TestFindTool:
    """Tests for find_tool function."""

    def test_returns_path(self) -> None:
        with patch("buildstack.build.tools.shutil.which", return_value="/usr/bin/dotnet"):
            assert tools.find_tool("dotnet") == Path("/usr/bin/dotnet")

    def test_returns_none_for_missing(self) -> None:
        with patch("buildstack.build.tools.shutil.which", return_value=None):
            assert tools.find_tool("dotnet") is None


class TestFindPackageTool:
    """Tests for find_package_tool function."""

    def test_missing_package(self, tmp_path: Path) -> None:
        assert tools.find_package_tool(tmp_path, "Drop.App", "lib/net45/drop.exe") is None

    def test_lowercases_package_id(self, tmp_path: Path, package_tool) -> None:
        tool = package_tool(tmp_path, "Drop.App", "1.0.0", "lib/net45/drop.exe")

        assert tools.find_package_tool(tmp_path, "Drop.App", "lib/net45/drop.exe") == tool
        assert tool.relative_to(tmp_path).parts[0] == "drop.app"

    def test_last_version_wins(self, tmp_path: Path, package_tool) -> None:
        package_tool(tmp_path, "Drop.App", "1.0.0", "lib/net45/drop.exe")
        newer = package_tool(tmp_path, "Drop.App", "2.0.0", "lib/net45/drop.exe")

        assert tools.find_package_tool(tmp_path, "Drop.App", "lib/net45/drop.exe") == newer

    def test_skips_versions_without_tool(self, tmp_path: Path, package_tool) -> None:
        older = package_tool(tmp_path, "Drop.App", "1.0.0", "lib/net45/drop.exe")
        (tmp_path / "drop.app" / "2.0.0").mkdir()

        assert tools.find_package_tool(tmp_path, "Drop.App", "lib/net45/drop.exe") == older


class TestRequireTool:
    """Tests for require_tool function."""

    def test_existing(self, tmp_path: Path) -> None:
        tool = tmp_path / "devenv.exe"
        tool.write_text("")

        assert tools.require_tool(tool) == tool

    def test_missing_includes_hint(self, tmp_path: Path) -> None:
        with pytest.raises(ToolMissingError, match="Run build first"):
            tools.require_tool(tmp_path / "devenv.exe", "Run build first.")
