"""
Mise unit: install the mise version manager and the language runtimes
contributed under the ``mise`` manager key.

Runtimes are contributed as PackageEntry(name=<language>, manager="mise",
language=..., version=...). A requested version is satisfied by an
exact match, by any installed ``<version>.x`` release, or, for ``lts``
and ``latest``, by any installed version of that language.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Sequence

from wellwell.core.context import Context
from wellwell.core.models.contribution import PackageEntry, ShellInitEntry
from wellwell.core.models.results import ModuleResult, PlanResult, StatusResult
from wellwell.core.models.unit import Unit
from wellwell.units.runner import Runner, Which, run_command

logger = logging.getLogger(__name__)

UNIT_ID = "packages:mise"
MANAGER = "mise"
INSTALL_SCRIPT = "curl -fsSL https://mise.run | sh"
SHELL_INIT = 'command -v mise >/dev/null && eval "$(mise activate zsh)"'

DEFAULT_VERSIONS = (
    ("node", "lts"),
    ("python", "3.11"),
)

_LIST_LINE = re.compile(r"^(\S+)\s+(\S+)")


def parse_installed(stdout: str) -> dict[str, list[str]]:
    """Parse ``mise list`` output into language → installed versions."""
    languages: dict[str, list[str]] = {}
    for line in stdout.splitlines():
        match = _LIST_LINE.match(line.strip())
        if match:
            language, version = match.groups()
            languages.setdefault(language, []).append(version)
    return languages


def version_satisfied(requested: str, installed: Sequence[str]) -> bool:
    if requested in ("lts", "latest"):
        return len(installed) > 0
    return any(v == requested or v.startswith(requested + ".") for v in installed)


def make_mise_unit(
    runner: Runner = run_command,
    which: Which = shutil.which,
    *,
    depends_on: Sequence[str] = (),
    defaults: Sequence[tuple[str, str]] = DEFAULT_VERSIONS,
) -> Unit:
    """Build the mise unit. ``depends_on`` lists units that contribute runtimes."""

    def mise_bin(ctx: Context) -> str | None:
        found = which("mise")
        if found:
            return found
        # The installer drops the binary here without touching PATH.
        local = ctx.home_dir / ".local" / "bin" / "mise"
        return str(local) if local.is_file() else None

    def contribute(ctx: Context) -> None:
        store = ctx.contributions
        for language, version in defaults:
            store.packages.add(PackageEntry(name=language, manager=MANAGER, language=language, version=version))
        store.shell_init.add(ShellInitEntry(name="mise", init_code=SHELL_INIT))

    def wanted(ctx: Context) -> list[PackageEntry]:
        return [p for p in ctx.contributions.packages.resolve_for(MANAGER) if p.language and p.version]

    def installed(binary: str | None) -> dict[str, list[str]]:
        if binary is None:
            return {}
        result = runner([binary, "list"])
        if not result["ok"]:
            logger.warning("Cannot list mise runtimes: %s", result.get("error"))
            return {}
        return parse_installed(result.get("stdout", ""))

    def missing(ctx: Context, have: dict[str, list[str]]) -> list[PackageEntry]:
        return [p for p in wanted(ctx) if not version_satisfied(p.version, have.get(p.language, []))]

    def plan(ctx: Context) -> PlanResult:
        contribute(ctx)
        binary = mise_bin(ctx)
        summaries = []
        if binary is None:
            summaries.append("Install mise version manager")
        todo = missing(ctx, installed(binary))
        if todo:
            summaries.append(
                f"Install {len(todo)} language versions: {', '.join(f'{p.language}@{p.version}' for p in todo)}"
            )
        return PlanResult.of(*summaries)

    def apply(ctx: Context) -> ModuleResult:
        contribute(ctx)
        binary = mise_bin(ctx)
        changed = False
        if binary is None:
            ctx.progress(UNIT_ID, "Installing mise...")
            result = runner(["sh", "-c", INSTALL_SCRIPT])
            binary = mise_bin(ctx) if result["ok"] else None
            if binary is None:
                return ModuleResult.failure(result.get("error") or "mise not found after install")
            changed = True

        have = installed(binary)
        todo = missing(ctx, have)
        done: list[str] = []
        failed: list[str] = []
        for pkg in todo:
            spec = f"{pkg.language}@{pkg.version}"
            ctx.progress(UNIT_ID, f"Installing {spec}")
            if not runner([binary, "install", spec])["ok"]:
                failed.append(spec)
                continue
            done.append(spec)
            if not have.get(pkg.language):
                result = runner([binary, "use", "--global", spec])
                if not result["ok"]:
                    logger.warning("Could not set %s as global: %s", spec, result.get("error"))

        if failed:
            logger.warning("Some language versions failed to install: %s", ", ".join(failed))
        if not todo:
            return ModuleResult.ok(changed=changed, message="Mise up to date")
        return ModuleResult(
            success=not failed,
            changed=changed or bool(done),
            message=f"Installed {len(done)}/{len(todo)} language versions",
            error=f"Failed to install: {', '.join(failed)}" if failed else None,
        )

    def status(ctx: Context) -> StatusResult:
        contribute(ctx)
        binary = mise_bin(ctx)
        if binary is None:
            return StatusResult(status="stale", message="Mise not installed")
        todo = missing(ctx, installed(binary))
        if todo:
            return StatusResult(status="stale", message=f"{len(todo)} language versions missing")
        return StatusResult(status="applied", message="All language versions installed")

    def capture_state(ctx: Context) -> dict:
        contribute(ctx)
        binary = mise_bin(ctx)
        have = installed(binary)
        return {
            "installed": binary is not None,
            "missing": sorted(f"{p.language}@{p.version}" for p in missing(ctx, have)),
        }

    def get_expected_state(ctx: Context) -> dict:
        return {"installed": True, "missing": []}

    def get_details(ctx: Context) -> list[str]:
        contribute(ctx)
        packages = wanted(ctx)
        if not packages:
            return ["No language versions configured"]
        return [f"Managing {len(packages)} language versions:"] + [
            f"  • {p.language}@{p.version}" for p in packages
        ]

    return Unit(
        id=UNIT_ID,
        description="Mise version manager for Node.js, Python, etc.",
        depends_on=tuple(depends_on),
        is_applicable=lambda ctx: ctx.platform != "unknown",
        plan=plan,
        apply=apply,
        status=status,
        capture_state=capture_state,
        get_expected_state=get_expected_state,
        get_details=get_details,
    )
