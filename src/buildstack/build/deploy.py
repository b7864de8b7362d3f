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

"""Extension deployment into a host IDE instance.

Deployment is an alternative to deploying at build time: the stale
per-instance extension cache is removed and every extension package is
installed again, into an isolated root suffix, in DEPLOYMENT_ORDER.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from buildstack.build.tools import (
    ToolRunner,
    exec_tool,
    find_package_tool,
    find_tool,
    run_command,
)
from buildstack.core.exceptions import DiscoveryError, ToolMissingError
from buildstack.core.paths import RepoPaths
from buildstack.core.run import activity

logger = logging.getLogger(__name__)

# Later packages depend on earlier ones being registered first.
DEPLOYMENT_ORDER: tuple[str, ...] = (
    "Roslyn.Compilers.Extension.vsix",
    "Roslyn.VisualStudio.Setup.vsix",
    "Roslyn.VisualStudio.Setup.Dependencies.vsix",
    "Roslyn.VisualStudio.InteractiveComponents.vsix",
    "ExpressionEvaluatorPackage.vsix",
    "Roslyn.VisualStudio.DiagnosticsWindow.vsix",
    "Microsoft.VisualStudio.IntegrationTest.Setup.vsix",
)

INSTALLER_PACKAGE = "RoslynTools.VSIXExpInstaller"
INSTALLER_RELATIVE_PATH = "tools/VsixExpInstaller.exe"


@dataclass(frozen=True)
class IdeInstance:
    """A discovered host IDE installation.

    Attributes:
        installation_path: Root directory of the installation.
        instance_id: Installer-assigned instance identifier.
        installation_version: Full version, e.g. "17.9.34607.119".
    """

    installation_path: Path
    instance_id: str
    installation_version: str

    @property
    def major_version(self) -> str:
        return self.installation_version.split(".")[0]

    @classmethod
    def from_vswhere(cls, data: Mapping[str, Any]) -> IdeInstance:
        return cls(
            installation_path=Path(str(data["installationPath"]).rstrip("\\/")),
            instance_id=str(data["instanceId"]),
            installation_version=str(data["installationVersion"]),
        )


def _find_vswhere(cfg: Mapping[str, Any]) -> Path | None:
    configured = Path(str(cfg["tools"]["vswhere"]))
    if configured.exists():
        return configured
    return find_tool("vswhere")


def locate_ide_instance(cfg: Mapping[str, Any]) -> IdeInstance:
    """Locate the latest host IDE installation with vswhere.

    Raises:
        DiscoveryError: No installation could be found.
    """
    vswhere = _find_vswhere(cfg)
    if vswhere is None:
        raise DiscoveryError(message="Unable to locate required Visual Studio installation (vswhere not found)")

    returncode, stdout, stderr = run_command([
        str(vswhere),
        "-latest",
        "-prerelease",
        "-format",
        "json",
        "-requires",
        "Microsoft.Component.MSBuild",
    ])
    if returncode != 0:
        raise DiscoveryError(message=f"vswhere failed with exit code {returncode}: {stderr.strip()}")

    try:
        instances = json.loads(stdout or "[]")
    except json.JSONDecodeError as e:
        raise DiscoveryError(message=f"Unable to parse vswhere output: {e}") from e

    if not instances:
        raise DiscoveryError(message="Unable to locate required Visual Studio installation")
    if len(instances) > 1:
        logger.debug(f"vswhere returned {len(instances)} instances, using the first")

    return IdeInstance.from_vswhere(instances[0])


def extension_cache_dir(instance: IdeInstance, root_suffix: str, local_app_data: Path | None = None) -> Path:
    """Return the per-instance extension cache for a root suffix."""
    if local_app_data is None:
        local_app_data = Path(os.environ.get("LOCALAPPDATA") or Path.home() / "AppData" / "Local")
    return (
        local_app_data
        / "Microsoft"
        / "VisualStudio"
        / f"{instance.major_version}.0_{instance.instance_id}{root_suffix}"
    )


def uninstall_extensions(cache_dir: Path) -> list[str]:
    """Remove the extension cache, returning the package directories it held."""
    if not cache_dir.exists():
        return []

    activity("deploy", "Uninstalling old extensions")
    removed = sorted(d.name for d in cache_dir.iterdir() if d.is_dir())
    for name in removed:
        activity("deploy", f"  Uninstalling {name}")
    shutil.rmtree(cache_dir)
    return removed


def order_packages(available: Iterable[Path]) -> list[Path]:
    """Return the packages to install in DEPLOYMENT_ORDER.

    The order of ``available`` is irrelevant. Packages not named in
    DEPLOYMENT_ORDER are ignored.

    Raises:
        ToolMissingError: A package named in DEPLOYMENT_ORDER is not available.
    """
    by_name = {p.name: p for p in available}
    missing = [name for name in DEPLOYMENT_ORDER if name not in by_name]
    if missing:
        raise ToolMissingError(
            message=f"Extension packages not found: {', '.join(missing)}. Run build first.",
            tool=missing[0],
        )
    return [by_name[name] for name in DEPLOYMENT_ORDER]


def install_extensions(
    runner: ToolRunner,
    installer: Path,
    instance: IdeInstance,
    packages: list[Path],
    root_suffix: str,
) -> list[str]:
    """Install each package in order; the first failure aborts the rest.

    Raises:
        ExternalToolError: The installer failed for a package.
    """
    activity("deploy", "Installing all extensions")
    base_args = [f"/rootSuffix:{root_suffix}", f"/vsInstallDir:{instance.installation_path}"]
    installed: list[str] = []
    for package in packages:
        activity("deploy", f"  Installing {package.name}")
        exec_tool(runner, installer, [*base_args, str(package)])
        installed.append(package.name)
    return installed


def deploy_extensions(
    runner: ToolRunner,
    paths: RepoPaths,
    cfg: Mapping[str, Any],
    instance: IdeInstance | None = None,
    local_app_data: Path | None = None,
) -> list[str]:
    """Reinstall all extensions into the host IDE's isolated root suffix.

    Returns:
        Names of the installed packages, in install order.
    """
    installer = find_package_tool(paths.packages_dir, INSTALLER_PACKAGE, INSTALLER_RELATIVE_PATH)
    if installer is None:
        raise ToolMissingError(
            message=f"{INSTALLER_PACKAGE} not found under '{paths.packages_dir}'. Run restore first.",
            tool=INSTALLER_PACKAGE,
        )

    if instance is None:
        instance = locate_ide_instance(cfg)
    root_suffix = str(cfg["deploy"]["root_suffix"])
    activity("deploy", f"Using VS instance {instance.instance_id} at \"{instance.installation_path}\"")

    uninstall_extensions(extension_cache_dir(instance, root_suffix, local_app_data))

    available = paths.vssetup_dir.glob("*.vsix") if paths.vssetup_dir.exists() else []
    packages = order_packages(available)
    return install_extensions(runner, installer, instance, packages, root_suffix)
