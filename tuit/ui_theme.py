"""UI theme definitions and selection helpers.

Themes are ANSI palettes keyed by what is drawn (tabs, tree rows, session
states, popups), not by color.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UITheme:
    """Semantic ANSI palette used by renderers."""

    name: str
    divider: str
    reverse: str
    reset: str
    tab_active: str
    tab_inactive: str
    tree_dir: str
    tree_file: str
    tree_symlink: str
    tree_selected: str
    tree_search_hit: str
    tree_error: str
    size: str
    state_running: str
    state_done: str
    state_failed: str
    state_cancelled: str
    progress_fill: str
    progress_empty: str
    status_message: str
    status_error: str
    help_heading: str
    help_key: str
    help_dim: str
    modal_title: str
    modal_border: str


DEFAULT_THEME = UITheme(
    name="default",
    divider="\033[2m",
    reverse="\033[7m",
    reset="\033[0m",
    tab_active="\033[1;38;5;81m",
    tab_inactive="\033[2;38;5;250m",
    tree_dir="\033[1;34m",
    tree_file="\033[38;5;252m",
    tree_symlink="\033[38;5;176m",
    tree_selected="\033[38;5;42m",
    tree_search_hit="\033[1;38;5;229m",
    tree_error="\033[38;5;203m",
    size="\033[38;5;109m",
    state_running="\033[38;5;81m",
    state_done="\033[38;5;42m",
    state_failed="\033[38;5;203m",
    state_cancelled="\033[38;5;214m",
    progress_fill="\033[38;5;44m",
    progress_empty="\033[2;38;5;240m",
    status_message="\033[38;5;250m",
    status_error="\033[1;38;5;203m",
    help_heading="\033[1;38;5;81m",
    help_key="\033[38;5;229m",
    help_dim="\033[2;38;5;250m",
    modal_title="\033[1;38;5;45m",
    modal_border="\033[38;5;45m",
)

OCEAN_THEME = UITheme(
    name="ocean",
    divider="\033[2;38;5;31m",
    reverse="\033[7m",
    reset="\033[0m",
    tab_active="\033[1;38;5;45m",
    tab_inactive="\033[2;38;5;110m",
    tree_dir="\033[1;38;5;45m",
    tree_file="\033[38;5;252m",
    tree_symlink="\033[38;5;141m",
    tree_selected="\033[38;5;84m",
    tree_search_hit="\033[1;38;5;153m",
    tree_error="\033[38;5;209m",
    size="\033[38;5;73m",
    state_running="\033[38;5;39m",
    state_done="\033[38;5;84m",
    state_failed="\033[38;5;209m",
    state_cancelled="\033[38;5;215m",
    progress_fill="\033[38;5;39m",
    progress_empty="\033[2;38;5;24m",
    status_message="\033[38;5;110m",
    status_error="\033[1;38;5;209m",
    help_heading="\033[1;38;5;45m",
    help_key="\033[38;5;153m",
    help_dim="\033[2;38;5;110m",
    modal_title="\033[1;38;5;39m",
    modal_border="\033[38;5;39m",
)

PLAIN_THEME = UITheme(
    name="plain",
    divider="",
    reverse="\033[7m",
    reset="\033[0m",
    tab_active="",
    tab_inactive="",
    tree_dir="",
    tree_file="",
    tree_symlink="",
    tree_selected="",
    tree_search_hit="",
    tree_error="",
    size="",
    state_running="",
    state_done="",
    state_failed="",
    state_cancelled="",
    progress_fill="",
    progress_empty="",
    status_message="",
    status_error="",
    help_heading="",
    help_key="",
    help_dim="",
    modal_title="",
    modal_border="",
)

_THEMES: dict[str, UITheme] = {
    DEFAULT_THEME.name: DEFAULT_THEME,
    OCEAN_THEME.name: OCEAN_THEME,
    PLAIN_THEME.name: PLAIN_THEME,
}


def available_theme_names() -> tuple[str, ...]:
    """Return selectable theme names in cycling order."""
    return (DEFAULT_THEME.name, OCEAN_THEME.name, PLAIN_THEME.name)


def normalize_theme_name(name: str | None) -> str:
    """Return a valid theme name, falling back to default."""
    if not name:
        return DEFAULT_THEME.name
    candidate = str(name).strip().lower()
    if candidate in _THEMES:
        return candidate
    return DEFAULT_THEME.name


def resolve_theme(name: str | None) -> UITheme:
    return _THEMES[normalize_theme_name(name)]


def next_theme_name(name: str | None) -> str:
    names = available_theme_names()
    current = normalize_theme_name(name)
    return names[(names.index(current) + 1) % len(names)]


__all__ = [
    "UITheme",
    "DEFAULT_THEME",
    "OCEAN_THEME",
    "PLAIN_THEME",
    "available_theme_names",
    "normalize_theme_name",
    "resolve_theme",
    "next_theme_name",
]
