"""
Default unit set: what ``wellwell`` manages out of the box.

Order of registration doubles as the tie-break for execution order.
Contributors come first (the theme, apps, rendered app configs and
mise), then the resolvers that depend on them, then the package
managers and finally the shell config.
"""

from __future__ import annotations

from pathlib import Path

from wellwell.core.context import Context
from wellwell.core.models.contribution import PathEntry
from wellwell.core.models.results import ModuleResult, PlanResult, StatusResult
from wellwell.core.models.unit import Unit
from wellwell.units.app_config import (
    THEMES_UNIT_ID,
    AppConfigSpec,
    make_app_config_unit,
    package_deps,
)
from wellwell.units.apps import AppSpec, cross_platform_packages, make_app_unit
from wellwell.units.mise import UNIT_ID as MISE_ID
from wellwell.units.mise import make_mise_unit
from wellwell.units.packages import APT, HOMEBREW, YUM, make_package_manager_unit
from wellwell.units.resolvers import (
    common_aliases,
    common_env_vars,
    common_paths,
    make_resolver_unit,
)
from wellwell.units.shell import ShellConfigSpec, make_shell_config_unit
from wellwell.units.themes import THEMES

HOMEBIN_ID = "common:homebin"


def make_homebin_unit() -> Unit:
    """Ensure ``~/bin`` exists and is on PATH."""

    def target(ctx: Context) -> Path:
        return ctx.home_dir / "bin"

    def plan(ctx: Context) -> PlanResult:
        ctx.contributions.paths.add(PathEntry(path=str(target(ctx)), prepend=True))
        if target(ctx).is_dir():
            return PlanResult()
        return PlanResult.of(f"Create directory {target(ctx)}")

    def apply(ctx: Context) -> ModuleResult:
        ctx.contributions.paths.add(PathEntry(path=str(target(ctx)), prepend=True))
        existed = target(ctx).is_dir()
        target(ctx).mkdir(parents=True, exist_ok=True)
        return ModuleResult.ok(changed=not existed, message=f"Ensured {target(ctx)}")

    def status(ctx: Context) -> StatusResult:
        return StatusResult(status="applied" if target(ctx).is_dir() else "stale")

    return Unit(
        id=HOMEBIN_ID,
        description="Ensure ~/bin exists and is on PATH",
        is_applicable=lambda ctx: True,
        plan=plan,
        apply=apply,
        status=status,
    )


APPS = (
    AppSpec(
        unit_id="apps:ripgrep",
        package="ripgrep",
        command="rg",
        description="Ripgrep - fast text search tool",
        packages=cross_platform_packages("ripgrep"),
    ),
    AppSpec(
        unit_id="apps:eza",
        package="eza",
        description="Eza - modern replacement for ls",
        packages=cross_platform_packages("eza"),
        aliases={"ls": "eza", "tree": "eza --tree"},
        details=(
            "Modern ls replacement:",
            "  • Colorized output with file type indicators",
            "  • Git integration showing file status",
        ),
    ),
    AppSpec(
        unit_id="apps:fzf",
        package="fzf",
        description="Fzf - command-line fuzzy finder",
        packages=cross_platform_packages("fzf"),
        depends_on=("apps:ripgrep",),
        env_vars={"FZF_DEFAULT_COMMAND": "rg --files --hidden --follow --glob '!.git/*'"},
        shell_init={"fzf": 'command -v fzf >/dev/null && source <(fzf --zsh)'},
    ),
    AppSpec(
        unit_id="apps:bat",
        package="bat",
        description="Bat - cat with syntax highlighting",
        packages=cross_platform_packages("bat"),
        aliases={"cat": "bat --paging=never"},
    ),
)

THEMES_CONFIG = AppConfigSpec(
    unit_id=THEMES_UNIT_ID,
    config_dir=".wellwell",
    config_file="theme.zsh",
    template="theme.zsh.j2",
    description="Base16 color scheme management",
    shell_init={"theme": '[ -f "$HOME/.wellwell/theme.zsh" ] && source "$HOME/.wellwell/theme.zsh"'},
    depends_on=(),
    details=("Base16 color scheme management", "Available themes:")
    + tuple(f"  • {theme.name} - {theme.description}" for theme in THEMES),
)

APP_CONFIGS = (
    AppConfigSpec(
        unit_id="apps:kitty",
        config_dir=".config/kitty",
        config_file="kitty.conf",
        template="kitty.conf.j2",
        description="Kitty terminal emulator with a themed configuration (macOS only)",
        platforms=("macos",),
        packages=package_deps(("kitty", "homebrew", ("macos",))),
        details=(
            "Modern GPU-accelerated terminal:",
            "  • Base16 colors from the active theme",
            "  • Powerline tab bar with slanted style",
            "  • macOS key mappings (cmd+c/v, tab navigation)",
        ),
    ),
    AppConfigSpec(
        unit_id="apps:nvim",
        config_dir=".config/nvim",
        config_file="init.lua",
        template="nvim-init.lua.j2",
        description="Neovim editor with a themed init.lua",
        packages=package_deps(
            ("neovim", "homebrew", ("macos",)),
            ("fd", "homebrew", ("macos",)),
            ("neovim", "apt", ("ubuntu",)),
            ("fd-find", "apt", ("ubuntu",)),
            ("epel-release", "yum", ("al2",)),
            ("neovim", "yum", ("al2",)),
        ),
    ),
)

APP_IDS = tuple(spec.unit_id for spec in APPS)
CONFIG_IDS = tuple(spec.unit_id for spec in APP_CONFIGS)
CONTRIBUTORS = (HOMEBIN_ID,) + APP_IDS


def default_units() -> list[Unit]:
    """The built-in units, in registration order."""
    units = [make_homebin_unit(), make_app_config_unit(THEMES_CONFIG)]
    units += [make_app_unit(spec) for spec in APPS]
    units += [make_app_config_unit(spec) for spec in APP_CONFIGS]
    units.append(make_mise_unit(depends_on=APP_IDS))
    units += [
        make_resolver_unit("core:packages", "packages", depends_on=APP_IDS + CONFIG_IDS + (MISE_ID,)),
        make_resolver_unit("core:paths", "paths", depends_on=CONTRIBUTORS, defaults=common_paths),
        make_resolver_unit("core:aliases", "aliases", depends_on=APP_IDS, defaults=common_aliases),
        make_resolver_unit("core:env-vars", "env_vars", depends_on=APP_IDS, defaults=common_env_vars),
        make_resolver_unit(
            "core:shell-init", "shell_init", depends_on=(THEMES_UNIT_ID,) + APP_IDS + (MISE_ID,),
        ),
    ]
    units += [make_package_manager_unit(spec) for spec in (HOMEBREW, APT, YUM)]
    units.append(make_shell_config_unit(ShellConfigSpec(unit_id="shell:zshrc")))
    return units
