"""
App units: declare an application and what it contributes.

An app unit installs nothing itself. It contributes the packages it
needs (picked up by the package-manager units) plus any aliases,
environment variables, PATH entries and shell-init snippets, and
reports ``applied`` once its command is on PATH.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from wellwell.core.context import Context
from wellwell.core.models.contribution import (
    AliasEntry,
    EnvVarEntry,
    PackageEntry,
    PathEntry,
    ShellInitEntry,
)
from wellwell.core.models.results import ModuleResult, PlanResult, StatusResult
from wellwell.core.models.unit import Unit
from wellwell.units.runner import Which, command_exists

logger = logging.getLogger(__name__)

DEFAULT_MANAGERS = {
    "macos": "homebrew",
    "ubuntu": "apt",
    "al2": "yum",
}


def infer_package_manager(platform: str) -> str | None:
    """The native package manager of a platform, if it has one."""
    return DEFAULT_MANAGERS.get(platform)


def cross_platform_packages(name: str) -> dict[str, tuple[str, str]]:
    """Same package name on every platform's native manager."""
    return {platform: (name, manager) for platform, manager in DEFAULT_MANAGERS.items()}


@dataclass(frozen=True)
class AppSpec:
    """Declaration of one application."""

    unit_id: str
    package: str
    description: str = ""
    command: str | None = None        # executable looked up on PATH (default: package)
    # platform → (package name, manager); overrides package/manager
    packages: Mapping[str, tuple[str, str]] | None = None
    manager: str | None = None        # default: inferred from the platform
    platforms: tuple[str, ...] | None = None
    depends_on: tuple[str, ...] = ()
    aliases: Mapping[str, str] = field(default_factory=dict)
    env_vars: Mapping[str, str] = field(default_factory=dict)
    paths: tuple[str, ...] = ()
    shell_init: Mapping[str, str] = field(default_factory=dict)
    details: tuple[str, ...] = ()

    @property
    def executable(self) -> str:
        return self.command or self.package


def contribute(spec: AppSpec, ctx: Context) -> int:
    """Register every contribution of ``spec``. Returns how many were new."""
    store = ctx.contributions
    added = 0

    if spec.packages:
        for platform, (name, manager) in spec.packages.items():
            added += store.packages.add(PackageEntry(name=name, manager=manager), [platform])
    else:
        manager = spec.manager or infer_package_manager(ctx.platform)
        if manager:
            added += store.packages.add(PackageEntry(name=spec.package, manager=manager), spec.platforms)
        else:
            logger.debug("No package manager for %s on %s", spec.package, ctx.platform)

    for name, value in spec.aliases.items():
        added += store.aliases.add(AliasEntry(name=name, value=value))
    for name, value in spec.env_vars.items():
        added += store.env_vars.add(EnvVarEntry(name=name, value=value))
    for path in spec.paths:
        if path.startswith("~"):
            path = f"{ctx.home_dir}{path[1:]}"
        added += store.paths.add(PathEntry(path=path))
    for name, code in spec.shell_init.items():
        added += store.shell_init.add(ShellInitEntry(name=name, init_code=code))

    return added


def make_app_unit(spec: AppSpec, which: Which | None = None) -> Unit:
    """Build an app unit from its declaration."""
    is_installed = (lambda name: which(name) is not None) if which else command_exists

    def is_applicable(ctx: Context) -> bool:
        return spec.platforms is None or ctx.platform in spec.platforms

    def plan(ctx: Context) -> PlanResult:
        contribute(spec, ctx)
        return PlanResult()

    def apply(ctx: Context) -> ModuleResult:
        added = contribute(spec, ctx)
        if added:
            ctx.progress(spec.unit_id, f"Contributed {added} entries")
        return ModuleResult.ok(changed=False, message="Package requirements contributed")

    def status(ctx: Context) -> StatusResult:
        if is_installed(spec.executable):
            return StatusResult(status="applied", message=f"{spec.package} available")
        return StatusResult(status="stale", message=f"{spec.executable} not found in PATH")

    def get_details(ctx: Context) -> list[str]:
        if spec.details:
            return list(spec.details)
        return [spec.description or spec.package]

    return Unit(
        id=spec.unit_id,
        description=spec.description,
        depends_on=spec.depends_on,
        is_applicable=is_applicable,
        plan=plan,
        apply=apply,
        status=status,
        get_details=get_details,
    )
