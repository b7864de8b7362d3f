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

"""Process hygiene for CI machines.

Lists build-related processes for diagnostics and kills leftovers (test
runner workers, build servers) after a run. Nothing here influences the
pipeline's exit code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import psutil

from buildstack.core.run import activity

logger = logging.getLogger(__name__)

# Build engine host, compiler server host, IDE
BUILD_PROCESS_NAMES = ("msbuild", "vbcscompiler", "devenv")
# dotnet processes only count when they host the compiler server
COMPILER_SERVER_HOST = "dotnet"
COMPILER_SERVER_MODULE = "vbcscompiler.dll"

TEST_WORKER_PREFIX = "xunit"


@dataclass(frozen=True)
class ProcessInfo:
    """A running process of interest."""

    pid: int
    name: str

    def __str__(self) -> str:
        return f"{self.name} (pid {self.pid})"


def _base_name(name: str) -> str:
    name = name.lower()
    return name[:-4] if name.endswith(".exe") else name


def _hosts_module(proc: psutil.Process, module: str) -> bool:
    try:
        return any(m.path.lower().endswith(module) for m in proc.memory_maps())
    except (psutil.Error, OSError):
        return False


def list_build_processes() -> list[ProcessInfo]:
    """Return running build engine, compiler server and IDE processes."""
    found: list[ProcessInfo] = []
    for proc in psutil.process_iter(["pid", "name"]):
        name = proc.info.get("name") or ""
        base = _base_name(name)
        if base in BUILD_PROCESS_NAMES:
            found.append(ProcessInfo(pid=proc.info["pid"], name=name))
        elif base == COMPILER_SERVER_HOST and _hosts_module(proc, COMPILER_SERVER_MODULE):
            found.append(ProcessInfo(pid=proc.info["pid"], name=name))
    return found


def report_build_processes() -> list[ProcessInfo]:
    """Print related running processes. Diagnostic only."""
    activity("ci", "Listing running build processes...")
    try:
        processes = list_build_processes()
    except psutil.Error as e:
        logger.warning(f"Process enumeration failed: {e}")
        return []
    for info in processes:
        activity("ci", f"  {info}")
    if not processes:
        activity("ci", "  (none)")
    return processes


def stop_processes(prefix: str) -> list[ProcessInfo]:
    """Forcibly kill every process whose name starts with ``prefix``.

    Returns:
        The processes that were killed.
    """
    prefix = prefix.lower()
    killed: list[ProcessInfo] = []
    for proc in psutil.process_iter(["pid", "name"]):
        name = proc.info.get("name") or ""
        if not name.lower().startswith(prefix):
            continue
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            logger.warning(f"Failed to kill {name} (pid {proc.info['pid']}): {e}")
            continue
        info = ProcessInfo(pid=proc.info["pid"], name=name)
        logger.info(f"Killed {info}")
        killed.append(info)
    return killed


def stop_build_servers() -> list[ProcessInfo]:
    """Kill build engine and compiler server processes left on the machine."""
    killed: list[ProcessInfo] = []
    for name in ("msbuild", "vbcscompiler"):
        killed.extend(stop_processes(name))
    return killed
