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

"""Tests for buildstack.build.testing module."""

from __future__ import annotations

import io
import os
import zipfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests
import responses

from buildstack.build import testing
from buildstack.build.types import TestMode, TestSelection
from buildstack.core.exceptions import ExternalToolError, ToolMissingError

BIN = Path("/repo/artifacts/bin")
UNIT = BIN / "Microsoft.CodeAnalysis.UnitTests/Debug/net472/Microsoft.CodeAnalysis.UnitTests.dll"
INTERACTIVE = BIN / "InteractiveHost.UnitTests/Debug/net472/InteractiveHost.UnitTests.dll"
CORE_UNIT = BIN / "Microsoft.CodeAnalysis.UnitTests/Debug/netcoreapp3.1/Microsoft.CodeAnalysis.UnitTests.dll"
REF_UNIT = BIN / "Microsoft.CodeAnalysis.UnitTests/Debug/net472/ref/Microsoft.CodeAnalysis.UnitTests.dll"
INTEGRATION = BIN / "Roslyn.VisualStudio.IntegrationTests/Debug/net472/Roslyn.VisualStudio.IntegrationTests.dll"
WORKSPACE = BIN / "Microsoft.CodeAnalysis.Workspaces.MSBuild.UnitTests/Debug/net472/Microsoft.CodeAnalysis.Workspaces.MSBuild.UnitTests.dll"

ALL_BINARIES = [UNIT, INTERACTIVE, CORE_UNIT, REF_UNIT, INTEGRATION]


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("")
    return path


def _procdump_zip() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("procdump.exe", b"MZ")
        archive.writestr("Eula.txt", b"eula")
    return buffer.getvalue()


class TestIsExcluded:
    """Tests for is_excluded function."""

    @pytest.mark.parametrize(
        "path",
        [
            "bin/X.UnitTests/Debug/netcoreapp3.1/X.UnitTests.dll",
            "bin\\X.UnitTests\\Debug\\net472\\ref\\X.UnitTests.dll",
            "bin/X.UnitTests/Debug/net472/ref/X.UnitTests.dll",
        ],
    )
    def test_excluded(self, path: str) -> None:
        assert testing.is_excluded(path)

    @pytest.mark.parametrize(
        "path",
        [
            "bin/X.UnitTests/Debug/net472/X.UnitTests.dll",
            "bin/Refactoring.UnitTests/Debug/net472/Refactoring.UnitTests.dll",
            "bin/X.UnitTests/Debug/net472/prefix/X.UnitTests.dll",
        ],
    )
    def test_included(self, path: str) -> None:
        assert not testing.is_excluded(path)


class TestSelectTestBinaries:
    """Tests for select_test_binaries function."""

    def test_desktop_32_bit_keeps_interactive_host(self) -> None:
        selected = testing.select_test_binaries(TestSelection(TestMode.DESKTOP, bitness=32), ALL_BINARIES)

        assert selected == [UNIT, INTERACTIVE]

    def test_desktop_64_bit_drops_interactive_host(self) -> None:
        selected = testing.select_test_binaries(TestSelection(TestMode.DESKTOP, bitness=64), ALL_BINARIES)

        assert selected == [UNIT]

    def test_integration(self) -> None:
        selected = testing.select_test_binaries(TestSelection(TestMode.INTEGRATION), ALL_BINARIES)

        assert selected == [INTEGRATION]

    def test_vsi_locally(self) -> None:
        selected = testing.select_test_binaries(
            TestSelection(TestMode.VSI), ALL_BINARIES, ci=False, workspace_binary=WORKSPACE
        )

        assert selected == [INTEGRATION]

    def test_vsi_on_ci_adds_workspace_binary_first(self) -> None:
        selected = testing.select_test_binaries(
            TestSelection(TestMode.VSI), ALL_BINARIES, ci=True, workspace_binary=WORKSPACE
        )

        assert selected == [WORKSPACE, INTEGRATION]


class TestDiscoverTestBinaries:
    """Tests for discover_test_binaries function."""

    def test_finds_test_assemblies(self, tmp_path: Path) -> None:
        unit = _touch(tmp_path / "A.UnitTests" / "Debug" / "net472" / "A.UnitTests.dll")
        integration = _touch(tmp_path / "B.IntegrationTests" / "Debug" / "net472" / "B.IntegrationTests.dll")
        _touch(tmp_path / "A" / "Debug" / "net472" / "A.dll")

        assert testing.discover_test_binaries(tmp_path) == sorted([unit, integration])

    def test_missing_bin_dir(self, tmp_path: Path) -> None:
        assert testing.discover_test_binaries(tmp_path / "bin") == []


class TestBuildRunnerArgs:
    """Tests for build_runner_args function."""

    def _args(self, config, repo_paths, cfg) -> list[str]:
        return testing.build_runner_args(
            config,
            repo_paths,
            cfg,
            xunit_dir=Path("/xunit/tools/net472"),
            procdump_dir=Path("/procdump"),
            binaries=[UNIT, INTERACTIVE],
        )

    def test_desktop_locally(self, make_config, repo_paths, cfg) -> None:
        args = self._args(make_config(test_desktop=True), repo_paths, cfg)

        assert args[0] == str(Path("/xunit/tools/net472"))
        assert f"-out:{repo_paths.test_results_dir}" in args
        assert f"-logs:{repo_paths.log_dir}" in args
        assert "-nocache" in args
        assert "-tfm:net472" in args
        assert "-test32" in args
        assert f"-procdumppath:{Path('/procdump')}" in args
        assert "-useprocdump" not in args
        assert "-xml" not in args
        assert not any(a.startswith("-trait:") for a in args)
        assert args[-2:] == [str(UNIT), str(INTERACTIVE)]

    def test_desktop_on_ci(self, make_config, repo_paths, cfg) -> None:
        args = self._args(make_config(test_desktop=True, test64=True, ci=True, procdump=True), repo_paths, cfg)

        assert "-test64" in args
        assert "-useprocdump" in args
        assert "-xml" in args
        assert "-timeout:65" in args

    def test_vsi_on_ci(self, make_config, repo_paths, cfg) -> None:
        args = self._args(make_config(test_vsi=True, ci=True), repo_paths, cfg)

        assert "-testVsi" in args
        assert "-timeout:110" in args
        assert args[-2:] == [str(UNIT), str(INTERACTIVE)]

    def test_default_mode_filters_core_feature(self, make_config, repo_paths, cfg) -> None:
        config = make_config()
        assert config.test_selection.mode is TestMode.INTEGRATION

        args = self._args(config, repo_paths, cfg)

        assert testing.CORE_FEATURE_TRAIT in args


class TestLocateTestRunner:
    """Tests for locate_test_runner function."""

    def test_found(self, make_config, repo_paths) -> None:
        runner_exe = _touch(repo_paths.project_output("RunTests", "Debug") / "RunTests.exe")

        assert testing.locate_test_runner(make_config(), repo_paths) == runner_exe

    def test_missing(self, make_config, repo_paths) -> None:
        with pytest.raises(ToolMissingError, match="Run build first"):
            testing.locate_test_runner(make_config(), repo_paths)


class TestEnsureProcdump:
    """Tests for ensure_procdump function."""

    def test_prefers_local_installation(self, tmp_path: Path, repo_paths, cfg) -> None:
        local = tmp_path / "SysInternals"
        _touch(local / "procdump.exe")
        cfg["tools"]["procdump_local_dir"] = str(local)

        assert testing.ensure_procdump(repo_paths, cfg) == local

    def test_downloads_once(
        self, tmp_path: Path, repo_paths, cfg, mock_responses: responses.RequestsMock, non_tty_stdout: None
    ) -> None:
        cfg["tools"]["procdump_local_dir"] = str(tmp_path / "missing")
        repo_paths.tools_dir.mkdir(parents=True)
        mock_responses.add(responses.GET, cfg["tools"]["procdump_url"], body=_procdump_zip())

        first = testing.ensure_procdump(repo_paths, cfg)
        second = testing.ensure_procdump(repo_paths, cfg)

        assert first == second == repo_paths.tools_dir / "ProcDump"
        assert (first / "procdump.exe").exists()
        assert len(mock_responses.calls) == 1

    def test_download_failure(
        self, tmp_path: Path, repo_paths, cfg, mock_responses: responses.RequestsMock, non_tty_stdout: None
    ) -> None:
        cfg["tools"]["procdump_local_dir"] = str(tmp_path / "missing")
        repo_paths.tools_dir.mkdir(parents=True)
        mock_responses.add(responses.GET, cfg["tools"]["procdump_url"], status=404)

        with pytest.raises(requests.HTTPError):
            testing.ensure_procdump(repo_paths, cfg)


class TestMinimizeAllWindows:
    """Tests for minimize_all_windows function."""

    def test_failure_is_only_logged(self) -> None:
        runner = MagicMock()
        runner.run.return_value = 1

        testing.minimize_all_windows(runner)

        assert runner.run.call_args.args[0] == "powershell"


@pytest.fixture
def built_layout(repo_paths, package_tool) -> dict[str, Path]:
    """Built test runner, restored xunit console and a unit test binary."""
    runner_exe = _touch(repo_paths.project_output("RunTests", "Debug") / "RunTests.exe")
    xunit_dir = package_tool(repo_paths.packages_dir, "xunit.runner.console", "2.4.1", "tools/net472/xunit.console.exe").parent
    unit = _touch(repo_paths.bin_dir / "A.UnitTests" / "Debug" / "net472" / "A.UnitTests.dll")
    integration = _touch(repo_paths.bin_dir / "B.IntegrationTests" / "Debug" / "net472" / "B.IntegrationTests.dll")
    return {"runner": runner_exe, "xunit": xunit_dir, "unit": unit, "integration": integration}


class TestRunTests:
    """Tests for run_tests function."""

    def test_runs_desktop_tests(self, fake_runner, make_config, repo_paths, cfg, built_layout, tmp_path: Path) -> None:
        with patch("buildstack.build.testing.stop_processes", return_value=[]) as mock_stop:
            binaries = testing.run_tests(
                fake_runner, make_config(test_desktop=True), repo_paths, cfg, procdump_dir=tmp_path
            )

        assert binaries == [built_layout["unit"]]
        executable, args = fake_runner.calls[0]
        assert executable == str(built_layout["runner"])
        assert args[0] == str(built_layout["xunit"])
        assert args[-1] == str(built_layout["unit"])
        mock_stop.assert_called_once_with("xunit")

    def test_kills_workers_after_failure(self, make_config, repo_paths, cfg, built_layout, tmp_path: Path) -> None:
        runner = MagicMock()
        runner.run.return_value = 1

        with patch("buildstack.build.testing.stop_processes", return_value=[]) as mock_stop:
            with pytest.raises(ExternalToolError):
                testing.run_tests(runner, make_config(test_desktop=True), repo_paths, cfg, procdump_dir=tmp_path)

        mock_stop.assert_called_once_with("xunit")

    def test_ioperation_variable_scoped(
        self, make_config, repo_paths, cfg, built_layout, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        variable = cfg["test"]["ioperation_variable"]
        monkeypatch.setenv(variable, "stale")
        seen: list[str | None] = []
        runner = MagicMock()
        runner.run.side_effect = lambda *a, **kw: seen.append(os.environ.get(variable)) or 0

        with patch("buildstack.build.testing.stop_processes", return_value=[]):
            testing.run_tests(runner, make_config(test_ioperation=True), repo_paths, cfg, procdump_dir=tmp_path)

        assert seen == ["true"]
        assert variable not in os.environ

    def test_variable_untouched_for_plain_desktop(
        self, make_config, repo_paths, cfg, built_layout, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        variable = cfg["test"]["ioperation_variable"]
        monkeypatch.setenv(variable, "user-set")

        with patch("buildstack.build.testing.stop_processes", return_value=[]):
            testing.run_tests(MagicMock(**{"run.return_value": 0}), make_config(test_desktop=True), repo_paths, cfg, procdump_dir=tmp_path)

        assert os.environ[variable] == "user-set"

    def test_ioperation_variable_cleared_after_failure(
        self, make_config, repo_paths, cfg, built_layout, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        variable = cfg["test"]["ioperation_variable"]
        monkeypatch.setenv(variable, "stale")
        runner = MagicMock()
        runner.run.return_value = 1

        with patch("buildstack.build.testing.stop_processes", return_value=[]) as mock_stop:
            with pytest.raises(ExternalToolError):
                testing.run_tests(runner, make_config(test_ioperation=True), repo_paths, cfg, procdump_dir=tmp_path)

        mock_stop.assert_called_once_with("xunit")
        assert variable not in os.environ

    def test_vsi_deploys_first(self, fake_runner, make_config, repo_paths, cfg, built_layout, tmp_path: Path) -> None:
        deploy = MagicMock()

        with patch("buildstack.build.testing.stop_processes", return_value=[]):
            binaries = testing.run_tests(
                fake_runner, make_config(test_vsi=True, ci=True), repo_paths, cfg, procdump_dir=tmp_path, deploy=deploy
            )

        deploy.assert_called_once_with(fake_runner, repo_paths, cfg)
        # CI minimizes windows before running the integration tests
        assert fake_runner.names()[0] == "powershell"
        assert binaries[-1] == built_layout["integration"]
        assert binaries[0].name == "Microsoft.CodeAnalysis.Workspaces.MSBuild.UnitTests.dll"

    def test_missing_xunit(self, fake_runner, make_config, repo_paths, cfg, tmp_path: Path) -> None:
        _touch(repo_paths.project_output("RunTests", "Debug") / "RunTests.exe")

        with pytest.raises(ToolMissingError, match="xunit.runner.console"):
            testing.run_tests(fake_runner, make_config(test_desktop=True), repo_paths, cfg, procdump_dir=tmp_path)

        assert fake_runner.calls == []
