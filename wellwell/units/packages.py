"""
Package-manager units: install the packages contributed for a manager.

Each manager is described by a PackageManagerSpec; ``make_package_manager_unit``
turns it into a unit. The unit reads the packages contributed under its
manager key, compares them with what the manager reports as installed,
and installs what is missing one package at a time.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass

from wellwell.core.context import Context
from wellwell.core.models.contribution import PackageEntry
from wellwell.core.models.results import ModuleResult, PlanResult, StatusResult
from wellwell.core.models.unit import Unit
from wellwell.units.runner import Runner, Which, run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageManagerSpec:
    unit_id: str
    name: str                          # display name
    manager: str                       # contribution key
    command: str                       # executable that must be on PATH
    install: tuple[str, ...]
    list_installed: tuple[str, ...]    # prints one package name per line
    platforms: tuple[str, ...]
    update: tuple[str, ...] | None = None
    requires_sudo: bool = False
    description: str = ""
    depends_on: tuple[str, ...] = ("core:packages",)


HOMEBREW = PackageManagerSpec(
    unit_id="packages:homebrew",
    name="Homebrew",
    manager="homebrew",
    command="brew",
    install=("brew", "install"),
    list_installed=("brew", "list", "-1"),
    platforms=("macos",),
    description="Homebrew package manager for macOS",
)

APT = PackageManagerSpec(
    unit_id="packages:apt",
    name="APT",
    manager="apt",
    command="apt-get",
    install=("apt-get", "install", "-y"),
    list_installed=("dpkg-query", "-W", "-f=${Package}\\n"),
    platforms=("ubuntu",),
    update=("apt-get", "update"),
    requires_sudo=True,
    description="APT package manager for Ubuntu/Debian",
)

YUM = PackageManagerSpec(
    unit_id="packages:yum",
    name="YUM",
    manager="yum",
    command="yum",
    install=("yum", "install", "-y"),
    list_installed=("rpm", "-qa", "--qf", "%{NAME}\\n"),
    platforms=("al2",),
    requires_sudo=True,
    description="YUM package manager for Amazon Linux 2",
)


def make_package_manager_unit(
    spec: PackageManagerSpec,
    runner: Runner = run_command,
    which: Which = shutil.which,
) -> Unit:
    """Build the unit that installs contributed packages for ``spec.manager``."""

    def wanted(ctx: Context) -> list[PackageEntry]:
        return ctx.contributions.packages.resolve_for(spec.manager)

    def installed() -> set[str]:
        result = runner(list(spec.list_installed))
        if not result["ok"]:
            logger.warning("Cannot list %s packages: %s", spec.name, result.get("error"))
            return set()
        return {line.strip() for line in result.get("stdout", "").splitlines() if line.strip()}

    def missing(ctx: Context) -> list[str]:
        have = installed()
        return [p.name for p in wanted(ctx) if p.name not in have]

    def is_applicable(ctx: Context) -> bool:
        return ctx.platform in spec.platforms and which(spec.command) is not None

    def plan(ctx: Context) -> PlanResult:
        todo = missing(ctx)
        if not todo:
            return PlanResult()
        return PlanResult.of(f"Install {len(todo)} {spec.name} packages: {', '.join(todo)}")

    def apply(ctx: Context) -> ModuleResult:
        todo = missing(ctx)
        if not todo:
            return ModuleResult.ok(changed=False, message=f"{spec.name} up to date")

        if spec.update:
            ctx.progress(spec.unit_id, f"Updating {spec.name} package cache...")
            result = runner(list(spec.update), needs_sudo=spec.requires_sudo)
            if not result["ok"]:
                logger.warning("%s cache update failed: %s", spec.name, result.get("error"))

        done: list[str] = []
        failed: list[str] = []
        for name in todo:
            ctx.progress(spec.unit_id, f"Installing {name}")
            result = runner(list(spec.install) + [name], needs_sudo=spec.requires_sudo)
            if result["ok"]:
                done.append(name)
            else:
                logger.warning("Failed to install %s via %s: %s", name, spec.name, result.get("error"))
                failed.append(name)

        return ModuleResult(
            success=not failed,
            changed=bool(done),
            message=f"Installed {len(done)}/{len(todo)} packages",
            error=f"Failed to install: {', '.join(failed)}" if failed else None,
        )

    def status(ctx: Context) -> StatusResult:
        todo = missing(ctx)
        if todo:
            return StatusResult(status="stale", message=f"{len(todo)} packages missing")
        return StatusResult(status="applied", message="All packages installed")

    def capture_state(ctx: Context) -> dict:
        have = installed()
        names = sorted(p.name for p in wanted(ctx))
        return {
            "installed": [n for n in names if n in have],
            "missing": [n for n in names if n not in have],
        }

    def get_expected_state(ctx: Context) -> dict:
        return {"installed": sorted(p.name for p in wanted(ctx)), "missing": []}

    def get_details(ctx: Context) -> list[str]:
        packages = wanted(ctx)
        if not packages:
            return ["No packages configured"]
        return [f"Managing {len(packages)} packages:"] + [f"  • {pkg.name}" for pkg in packages]

    return Unit(
        id=spec.unit_id,
        description=spec.description,
        depends_on=spec.depends_on,
        is_applicable=is_applicable,
        plan=plan,
        apply=apply,
        status=status,
        capture_state=capture_state,
        get_expected_state=get_expected_state,
        get_details=get_details,
    )
