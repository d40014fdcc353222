"""
Shell config units: keep a managed block inside a shell rc file.

The block sits between two marker lines and is rendered from the
resolved paths, environment variables, aliases and shell-init snippets.
Anything outside the markers belongs to the user and is never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from wellwell.core.context import Context
from wellwell.core.models.results import ModuleResult, PlanResult, StatusResult
from wellwell.core.models.unit import Unit

logger = logging.getLogger(__name__)

MARKER_START = "# === wellwell:begin ==="
MARKER_END = "# === wellwell:end ==="

OVERRIDES_TEMPLATE = """\
#!/usr/bin/env zsh
# Local machine-specific overrides for wellwell.
# Add aliases, environment variables and other shell customizations here.
# wellwell creates this file once and never rewrites it.
"""


@dataclass(frozen=True)
class ShellConfigSpec:
    unit_id: str
    shell_file: str = ".zshrc"
    marker_start: str = MARKER_START
    marker_end: str = MARKER_END
    platforms: tuple[str, ...] = ("macos", "ubuntu", "al2")
    overrides_file: str | None = ".ww-overrides.zsh"
    description: str = ""
    depends_on: tuple[str, ...] = (
        "common:homebin",
        "core:paths",
        "core:aliases",
        "core:env-vars",
        "core:shell-init",
    )


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def render_block(spec: ShellConfigSpec, ctx: Context) -> str:
    """Render the managed block, markers included, with a trailing newline."""
    store = ctx.contributions
    paths = store.paths.read() or []
    env_vars = store.env_vars.read() or {}
    aliases = store.aliases.read() or {}
    shell_init = store.shell_init.read() or []

    if paths:
        path_export = f'export PATH="{_quote(":".join(paths))}:$PATH"'
    else:
        path_export = 'export PATH="$HOME/bin:$PATH"'

    lines = [spec.marker_start, path_export]
    lines += [f'export {name}="{_quote(value)}"' for name, value in env_vars.items()]
    if ctx.platform == "macos":
        lines.append('export BROWSER="open"')
    lines += [f'alias {name}="{_quote(value)}"' for name, value in aliases.items()]
    lines.append("")
    lines += [entry.init_code for entry in shell_init]
    if spec.overrides_file:
        overrides = f"$HOME/{spec.overrides_file}"
        lines.append(f'[ -f "{overrides}" ] && source "{overrides}"')
    lines += [spec.marker_end, ""]
    return "\n".join(lines)


def _block_span(content: str, start: str, end: str) -> tuple[int, int] | None:
    """Span of the managed block: the last start marker and the end marker after it.

    A stray start marker with no end after it is ignored, so an appended
    block always becomes the one that is found.
    """
    start_idx = content.rfind(start)
    if start_idx == -1:
        return None
    end_idx = content.find(end, start_idx + len(start))
    if end_idx == -1:
        return None
    return start_idx, end_idx + len(end)


def extract_block(content: str, start: str, end: str) -> str | None:
    """The existing managed block, markers included, or None."""
    span = _block_span(content, start, end)
    if span is None:
        return None
    return content[span[0]:span[1]]


def block_is_current(content: str, block: str, start: str, end: str) -> bool:
    """Whether ``content`` already holds ``block`` as its managed block."""
    return extract_block(content, start, end) == block.rstrip("\n")


def upsert_block(content: str, block: str, start: str, end: str) -> str:
    """Replace the managed block in ``content``, or append it."""
    span = _block_span(content, start, end)
    if span is not None:
        head, tail = content[:span[0]], content[span[1]:]
        if block.endswith("\n") and tail.startswith("\n"):
            tail = tail[1:]
        return head + block + tail
    if content and not content.endswith("\n"):
        content += "\n"
    return content + block


def make_shell_config_unit(spec: ShellConfigSpec) -> Unit:
    """Build the unit that maintains ``~/<spec.shell_file>``."""

    def target(ctx: Context) -> Path:
        return ctx.home_dir / spec.shell_file

    def read_target(ctx: Context) -> str:
        path = target(ctx)
        if not path.is_file():
            return ""
        return path.read_text(encoding="utf-8")

    def is_applicable(ctx: Context) -> bool:
        return ctx.platform != "unknown" and ctx.platform in spec.platforms

    def is_current(ctx: Context) -> bool:
        return block_is_current(read_target(ctx), render_block(spec, ctx), spec.marker_start, spec.marker_end)

    def plan(ctx: Context) -> PlanResult:
        if is_current(ctx):
            return PlanResult()
        return PlanResult.of(f"Update {target(ctx)} with wellwell block")

    def apply(ctx: Context) -> ModuleResult:
        path = target(ctx)
        block = render_block(spec, ctx)

        path.parent.mkdir(parents=True, exist_ok=True)
        if path.is_symlink() and not path.exists():
            logger.warning("Replacing broken symlink %s", path)
            path.unlink()

        content = read_target(ctx)
        changed = not block_is_current(content, block, spec.marker_start, spec.marker_end)
        if changed:
            path.write_text(upsert_block(content, block, spec.marker_start, spec.marker_end), encoding="utf-8")
            ctx.progress(spec.unit_id, f"Updated {path}")

        if spec.overrides_file:
            overrides = ctx.home_dir / spec.overrides_file
            if not overrides.exists():
                try:
                    overrides.write_text(OVERRIDES_TEMPLATE, encoding="utf-8")
                except OSError as e:
                    logger.warning("Could not create overrides file %s: %s", overrides, e)

        return ModuleResult.ok(
            changed=changed,
            message=f"{spec.shell_file} updated" if changed else "no changes",
        )

    def status(ctx: Context) -> StatusResult:
        if is_current(ctx):
            return StatusResult(status="applied")
        return StatusResult(status="stale", message=f"{spec.shell_file} block out of date")

    def capture_state(ctx: Context) -> dict:
        return {"block": extract_block(read_target(ctx), spec.marker_start, spec.marker_end)}

    def get_expected_state(ctx: Context) -> dict:
        return {"block": render_block(spec, ctx).rstrip("\n")}

    def get_details(ctx: Context) -> list[str]:
        return [
            f"Managed block in ~/{spec.shell_file}:",
            "  • PATH management",
            "  • Environment variables",
            "  • Aliases",
            "  • Shell initializations",
        ]

    return Unit(
        id=spec.unit_id,
        description=spec.description or f"Managed block in ~/{spec.shell_file}",
        depends_on=spec.depends_on,
        is_applicable=is_applicable,
        plan=plan,
        apply=apply,
        status=status,
        capture_state=capture_state,
        get_expected_state=get_expected_state,
        get_details=get_details,
    )
