"""
Tests for rendered config units: templates, themes, app configs and mise.
"""

import pytest

from wellwell.core.engine.executor import Engine
from wellwell.core.models.contribution import PackageEntry
from wellwell.core.persistence.state_file import MemoryStateStore
from wellwell.core.rendering import RenderError, available_templates, render_template
from wellwell.units.app_config import AppConfigSpec, make_app_config_unit, package_deps, render_config
from wellwell.units.defaults import APP_CONFIGS, THEMES_CONFIG, default_units
from wellwell.units.mise import MANAGER, make_mise_unit, parse_installed, version_satisfied
from wellwell.units.themes import (
    DEFAULT_THEME,
    THEME_STATE_KEY,
    UnknownThemeError,
    current_theme_name,
    get_theme,
    switch_theme,
    theme_context,
)

KITTY = next(spec for spec in APP_CONFIGS if spec.unit_id == "apps:kitty")
NVIM = next(spec for spec in APP_CONFIGS if spec.unit_id == "apps:nvim")


# ── Rendering ────────────────────────────────────────────────────────


class TestRendering:
    def test_bundled_templates(self):
        assert {"kitty.conf.j2", "nvim-init.lua.j2", "theme.zsh.j2"} <= set(available_templates())

    def test_renders_theme_colors(self):
        out = render_template("theme.zsh.j2", theme_context(get_theme("nord")))
        assert 'export WELLWELL_THEME="nord"' in out
        assert "bg:#2e3440" in out

    def test_missing_template(self):
        with pytest.raises(RenderError, match="ghost.j2"):
            render_template("ghost.j2", {})

    def test_missing_variable(self):
        with pytest.raises(RenderError):
            render_template("theme.zsh.j2", {"theme_name": "x"})


# ── Themes ───────────────────────────────────────────────────────────


class TestThemes:
    def test_default_when_unset(self):
        assert current_theme_name(MemoryStateStore()) == DEFAULT_THEME

    def test_switch_records_name(self):
        state = MemoryStateStore()
        theme = switch_theme(state, "gruvbox-dark")
        assert theme.name == "gruvbox-dark"
        assert state.get(THEME_STATE_KEY) == "gruvbox-dark"
        assert current_theme_name(state) == "gruvbox-dark"

    def test_unknown_theme(self):
        state = MemoryStateStore()
        with pytest.raises(UnknownThemeError, match="available: dracula"):
            switch_theme(state, "neon")
        assert state.get(THEME_STATE_KEY) is None

    def test_every_theme_defines_all_colors(self):
        keys = {f"base0{d}" for d in "0123456789ABCDEF"}
        for name in ("dracula", "gruvbox-dark", "solarized-dark", "nord"):
            assert set(get_theme(name).colors) == keys


# ── App configs ──────────────────────────────────────────────────────


class TestAppConfigUnit:
    def test_create_then_idempotent(self, make_context, home_dir):
        ctx = make_context("macos")
        unit = make_app_config_unit(KITTY)
        assert unit.plan(ctx).summaries == ["Create kitty.conf configuration"]
        assert unit.status(ctx).status == "stale"

        result = unit.apply(ctx)
        assert result.success and result.changed
        content = (home_dir / ".config/kitty/kitty.conf").read_text()
        assert "background            #282936" in content

        assert not unit.plan(ctx).has_changes
        assert unit.apply(ctx).changed is False
        assert unit.status(ctx).status == "applied"

    def test_user_edit_is_reported_with_diff(self, make_context, home_dir):
        ctx = make_context("ubuntu")
        unit = make_app_config_unit(NVIM)
        unit.apply(ctx)
        path = home_dir / ".config/nvim/init.lua"
        path.write_text(path.read_text() + "vim.opt.number = false\n")

        assert unit.plan(ctx).summaries == ["Update init.lua configuration"]
        status = unit.status(ctx)
        assert status.status == "stale"
        assert "-vim.opt.number = false" in status.details.diff

        unit.apply(ctx)
        assert "vim.opt.number = false" not in path.read_text()

    def test_platform_restriction(self, make_context):
        unit = make_app_config_unit(KITTY)
        assert unit.is_applicable(make_context("macos"))
        assert not unit.is_applicable(make_context("ubuntu"))
        assert make_app_config_unit(NVIM).is_applicable(make_context("al2"))

    def test_contributes_packages_for_platform(self, make_context):
        ctx = make_context("ubuntu")
        make_app_config_unit(NVIM).plan(ctx)
        names = {(p.manager, p.name) for p in ctx.contributions.packages.list()}
        assert names == {("apt", "neovim"), ("apt", "fd-find")}

    def test_unthemed_config_gets_no_theme_variables(self, make_context):
        spec = AppConfigSpec(
            unit_id="apps:plain",
            config_dir=".plain",
            config_file="plain.conf",
            template="theme.zsh.j2",
            themed=False,
            depends_on=(),
        )
        with pytest.raises(RenderError):
            render_config(spec, make_context())

    def test_replaces_broken_symlink(self, make_context, home_dir):
        ctx = make_context("macos")
        path = home_dir / ".wellwell/theme.zsh"
        path.parent.mkdir(parents=True)
        path.symlink_to(home_dir / "gone")
        assert make_app_config_unit(THEMES_CONFIG).apply(ctx).success
        assert not path.is_symlink()
        assert "WELLWELL_THEME" in path.read_text()

    def test_package_deps_helper(self):
        deps = package_deps(("kitty", "homebrew", ("macos",)), ("fd", "apt", None))
        assert deps[0].platforms == ("macos",)
        assert deps[1].platforms is None


@pytest.fixture
def themed_engine(engine):
    engine.register(make_app_config_unit(THEMES_CONFIG))
    engine.register(make_app_config_unit(KITTY))
    return engine


class TestThemeSwitching:
    def test_switch_makes_themed_configs_stale(self, themed_engine, memory_state, home_dir):
        assert themed_engine.run_apply().all_ok
        statuses = themed_engine.detailed_statuses()
        assert statuses["apps:kitty"].status == "applied"

        switch_theme(memory_state, "nord")
        statuses = themed_engine.detailed_statuses()
        assert statuses["themes:base16"].status == "stale"
        assert statuses["apps:kitty"].status == "stale"

        assert themed_engine.run_apply().all_ok
        assert "#2e3440" in (home_dir / ".config/kitty/kitty.conf").read_text()
        assert all(s.status == "applied" for s in themed_engine.detailed_statuses().values())

    def test_unknown_stored_theme_fails_and_skips_dependents(self, themed_engine, memory_state):
        memory_state.set(THEME_STATE_KEY, "neon")
        summary = themed_engine.run_apply()
        assert not summary.results["themes:base16"].success
        assert summary.skipped_by == {"apps:kitty": "themes:base16"}


# ── Mise ─────────────────────────────────────────────────────────────


class FakeMise:
    """Stands in for ``run_command`` for the mise binary and its installer."""

    def __init__(self, home_dir, installed=None, broken=(), present=True):
        self.home_dir = home_dir
        self.installed = {k: list(v) for k, v in (installed or {}).items()}
        self.broken = set(broken)
        self.calls = []
        if present:
            self._drop_binary()

    def _drop_binary(self):
        binary = self.home_dir / ".local/bin/mise"
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_text("")

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        if cmd[0] == "sh":
            self._drop_binary()
            return {"ok": True, "stdout": ""}
        if cmd[1] == "list":
            lines = [f"{lang}  {v}" for lang, versions in self.installed.items() for v in versions]
            return {"ok": True, "stdout": "\n".join(lines)}
        if cmd[1] == "install":
            if cmd[2] in self.broken:
                return {"ok": False, "error": f"cannot install {cmd[2]}"}
            lang, version = cmd[2].split("@")
            self.installed.setdefault(lang, []).append(version)
        return {"ok": True, "stdout": ""}


class TestMiseParsing:
    def test_parse_installed(self):
        out = "node    20.11.0  ~/.config/mise/config.toml  lts\npython  3.11.7\n\n"
        assert parse_installed(out) == {"node": ["20.11.0"], "python": ["3.11.7"]}

    @pytest.mark.parametrize(
        "requested, installed, ok",
        [
            ("3.11", ["3.11.7"], True),
            ("3.11", ["3.12.1"], False),
            ("3.1", ["3.11.7"], False),
            ("lts", ["20.11.0"], True),
            ("latest", [], False),
            ("20.11.0", ["20.11.0"], True),
        ],
    )
    def test_version_satisfied(self, requested, installed, ok):
        assert version_satisfied(requested, installed) is ok


class TestMiseUnit:
    def test_plan_lists_missing(self, make_context, home_dir):
        fake = FakeMise(home_dir, installed={"node": ["20.11.0"]})
        unit = make_mise_unit(fake, which=lambda name: None)
        assert unit.plan(make_context()).summaries == ["Install 1 language versions: python@3.11"]

    def test_installs_mise_when_absent(self, make_context, home_dir):
        fake = FakeMise(home_dir, present=False)
        unit = make_mise_unit(fake, which=lambda name: None)
        ctx = make_context()
        assert unit.plan(ctx).summaries[0] == "Install mise version manager"

        result = unit.apply(ctx)
        assert result.success and result.changed
        assert fake.calls[0][0] == "sh"
        binary = str(home_dir / ".local/bin/mise")
        assert [binary, "use", "--global", "node@lts"] in fake.calls
        assert [binary, "use", "--global", "python@3.11"] in fake.calls
        assert unit.status(ctx).status == "applied"

    def test_status_without_plan_sees_defaults(self, make_context, home_dir):
        unit = make_mise_unit(FakeMise(home_dir), which=lambda name: None)
        assert unit.status(make_context()).status == "stale"

    def test_up_to_date(self, make_context, home_dir):
        fake = FakeMise(home_dir, installed={"node": ["20.11.0"], "python": ["3.11.7"]})
        unit = make_mise_unit(fake, which=lambda name: None)
        result = unit.apply(make_context())
        assert result.changed is False
        assert not any(call[1] == "install" for call in fake.calls)

    def test_partial_failure(self, make_context, home_dir):
        fake = FakeMise(home_dir, broken=("python@3.11",))
        result = make_mise_unit(fake, which=lambda name: None).apply(make_context())
        assert result.success is False
        assert result.changed is True
        assert result.error == "Failed to install: python@3.11"

    def test_contributed_runtimes(self, make_context, home_dir):
        ctx = make_context()
        ctx.contributions.packages.add(PackageEntry(name="go", manager=MANAGER, language="go", version="1.22"))
        fake = FakeMise(home_dir, installed={"node": ["20.11.0"], "python": ["3.11.7"]})
        unit = make_mise_unit(fake, which=lambda name: None)
        assert unit.plan(ctx).summaries == ["Install 1 language versions: go@1.22"]
        assert "  • go@1.22" in unit.get_details(ctx)

    def test_contributes_shell_init(self, make_context, home_dir):
        ctx = make_context()
        make_mise_unit(FakeMise(home_dir), which=lambda name: None).plan(ctx)
        assert [e.name for e in ctx.contributions.shell_init.list()] == ["mise"]


# ── Default wiring ───────────────────────────────────────────────────


class TestDefaultRenderedUnits:
    def test_ordering(self, home_dir):
        engine = Engine(MemoryStateStore(), platform="macos", home_dir=home_dir, is_ci=False)
        engine.register_all(default_units())
        order = engine.order()
        for unit_id in ("apps:kitty", "apps:nvim", "core:shell-init"):
            assert order.index("themes:base16") < order.index(unit_id)
        assert order.index("packages:mise") < order.index("core:shell-init")
        assert order.index("packages:mise") < order.index("core:packages")
        assert order.index("apps:nvim") < order.index("core:packages")

    def test_details_list_themes(self, home_dir):
        engine = Engine(MemoryStateStore(), platform="macos", home_dir=home_dir, is_ci=False)
        engine.register_all(default_units())
        lines = engine.details("themes:base16")
        assert "  • nord - Nord theme - arctic-inspired" in lines
        assert "  • Theme: dracula" in lines
