"""
Base16 themes: one global color scheme shared by every themed config.

The active theme name is kept in the state store under
``themes.current``. Switching it changes the rendered content of every
themed config file, so units that were applied under the old theme
report ``stale`` until the next apply.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from wellwell.core.context import Context
from wellwell.core.persistence.state_file import StateStore

logger = logging.getLogger(__name__)

THEME_STATE_KEY = "themes.current"
DEFAULT_THEME = "dracula"


class UnknownThemeError(ValueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown theme: {name} (available: {', '.join(theme_names())})")


@dataclass(frozen=True)
class Base16Theme:
    name: str
    description: str
    # base00..base0F
    colors: Mapping[str, str]


THEMES = (
    Base16Theme(
        name="dracula",
        description="Dracula theme - dark purple",
        colors={
            "base00": "#282936", "base01": "#3a3c4e", "base02": "#4d4f68", "base03": "#626483",
            "base04": "#62d6e8", "base05": "#e9e9f4", "base06": "#f1f2f8", "base07": "#f7f7fb",
            "base08": "#ea51b2", "base09": "#b45bcf", "base0A": "#00f769", "base0B": "#ebff87",
            "base0C": "#a1efe4", "base0D": "#62d6e8", "base0E": "#b45bcf", "base0F": "#00f769",
        },
    ),
    Base16Theme(
        name="gruvbox-dark",
        description="Gruvbox dark theme",
        colors={
            "base00": "#282828", "base01": "#3c3836", "base02": "#504945", "base03": "#665c54",
            "base04": "#bdae93", "base05": "#d5c4a1", "base06": "#ebdbb2", "base07": "#fbf1c7",
            "base08": "#fb4934", "base09": "#fe8019", "base0A": "#fabd2f", "base0B": "#b8bb26",
            "base0C": "#8ec07c", "base0D": "#83a598", "base0E": "#d3869b", "base0F": "#d65d0e",
        },
    ),
    Base16Theme(
        name="solarized-dark",
        description="Solarized dark theme",
        colors={
            "base00": "#002b36", "base01": "#073642", "base02": "#586e75", "base03": "#657b83",
            "base04": "#839496", "base05": "#93a1a1", "base06": "#eee8d5", "base07": "#fdf6e3",
            "base08": "#dc322f", "base09": "#cb4b16", "base0A": "#b58900", "base0B": "#859900",
            "base0C": "#2aa198", "base0D": "#268bd2", "base0E": "#6c71c4", "base0F": "#d33682",
        },
    ),
    Base16Theme(
        name="nord",
        description="Nord theme - arctic-inspired",
        colors={
            "base00": "#2e3440", "base01": "#3b4252", "base02": "#434c5e", "base03": "#4c566a",
            "base04": "#d8dee9", "base05": "#e5e9f0", "base06": "#eceff4", "base07": "#8fbcbb",
            "base08": "#bf616a", "base09": "#d08770", "base0A": "#ebcb8b", "base0B": "#a3be8c",
            "base0C": "#88c0d0", "base0D": "#81a1c1", "base0E": "#b48ead", "base0F": "#5e81ac",
        },
    ),
)

_BY_NAME = {theme.name: theme for theme in THEMES}


def theme_names() -> list[str]:
    return list(_BY_NAME)


def get_theme(name: str) -> Base16Theme:
    """Look up a theme by name.

    Raises:
        UnknownThemeError: If no theme has that name.
    """
    try:
        return _BY_NAME[name]
    except KeyError:
        raise UnknownThemeError(name) from None


def current_theme_name(state: StateStore) -> str:
    name = state.get(THEME_STATE_KEY)
    return name if isinstance(name, str) and name else DEFAULT_THEME


def current_theme(ctx: Context) -> Base16Theme:
    return get_theme(current_theme_name(ctx.state))


def switch_theme(state: StateStore, name: str) -> Base16Theme:
    """Make ``name`` the active theme. The caller flushes the store."""
    theme = get_theme(name)
    previous = current_theme_name(state)
    state.set(THEME_STATE_KEY, theme.name)
    if previous != theme.name:
        logger.info("Theme switched: %s → %s", previous, theme.name)
    return theme


def theme_context(theme: Base16Theme) -> dict[str, str]:
    """Template variables for ``theme``: the base16 colors plus its name."""
    return {**theme.colors, "theme_name": theme.name}
