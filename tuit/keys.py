"""Key-combo registry and the named key presets.

A preset maps action names to key tokens produced by ``read_key``. The UI
controller owns the action handlers; presets only decide which keys reach
them.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass

DEFAULT_PRESET = "arrows"

_COMMON: dict[str, tuple[str, ...]] = {
    "quit": ("q", "CTRL_C"),
    "help": ("?",),
    "next_tab": ("TAB",),
    "prev_tab": ("SHIFT_TAB",),
    "cycle_theme": ("t",),
    "cycle_key_preset": ("K",),
    "page_up": ("PAGE_UP",),
    "page_down": ("PAGE_DOWN",),
    "home": ("HOME",),
    "end": ("END",),
    "toggle_select": (" ",),
    "select_all": ("a",),
    "clear_selection": ("A",),
    "search": ("/",),
    "send": ("s",),
    "toggle_hidden": (".",),
    "toggle_symlinks": ("L",),
    "reload": ("CTRL_R",),
    "cancel": ("x", "DELETE"),
    "resend": ("r",),
    "next_match": ("n",),
    "prev_match": ("N",),
}

KEY_PRESETS: dict[str, dict[str, tuple[str, ...]]] = {
    "arrows": {
        **_COMMON,
        "move_up": ("UP",),
        "move_down": ("DOWN",),
        "expand": ("RIGHT", "ENTER"),
        "collapse": ("LEFT",),
    },
    "vim": {
        **_COMMON,
        "move_up": ("k", "UP"),
        "move_down": ("j", "DOWN"),
        "expand": ("l", "RIGHT", "ENTER"),
        "collapse": ("h", "LEFT"),
        "page_up": ("CTRL_U", "PAGE_UP"),
        "page_down": ("CTRL_D", "PAGE_DOWN"),
        "home": ("g", "HOME"),
        "end": ("G", "END"),
    },
}


@dataclass(frozen=True)
class KeyComboBinding:
    """Mapping from one or more key tokens to a single action callback."""

    combos: tuple[str, ...]
    handler: Callable[[], bool | None]


class KeyComboRegistry:
    """Small key-dispatch table."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[], bool | None]] = {}

    def register_binding(self, binding: KeyComboBinding) -> KeyComboRegistry:
        """Register one binding, overwriting existing handlers for same combos."""
        for combo in binding.combos:
            self._handlers[combo] = binding.handler
        return self

    def register_bindings(self, *bindings: KeyComboBinding) -> KeyComboRegistry:
        for binding in bindings:
            self.register_binding(binding)
        return self

    def dispatch(self, key: str) -> bool | None:
        """Invoke bound handler for ``key``; ``None`` means no binding."""
        handler = self._handlers.get(key)
        if handler is None:
            return None
        return handler()


def available_preset_names() -> tuple[str, ...]:
    return tuple(KEY_PRESETS)


def normalize_preset_name(name: str | None) -> str:
    if isinstance(name, str) and name.strip().lower() in KEY_PRESETS:
        return name.strip().lower()
    return DEFAULT_PRESET


def next_preset_name(name: str | None) -> str:
    names = available_preset_names()
    current = normalize_preset_name(name)
    return names[(names.index(current) + 1) % len(names)]


def keys_for(preset: str, action: str) -> tuple[str, ...]:
    return KEY_PRESETS[normalize_preset_name(preset)].get(action, ())


def build_registry(preset: str, handlers: Mapping[str, Callable[[], bool | None]]) -> KeyComboRegistry:
    """Bind every handler in ``handlers`` to the keys ``preset`` gives its action."""
    table = KEY_PRESETS[normalize_preset_name(preset)]
    registry = KeyComboRegistry()
    for action, handler in handlers.items():
        combos = table.get(action)
        if combos:
            registry.register_binding(KeyComboBinding(combos, handler))
    return registry


__all__ = [
    "DEFAULT_PRESET",
    "KEY_PRESETS",
    "KeyComboBinding",
    "KeyComboRegistry",
    "available_preset_names",
    "normalize_preset_name",
    "next_preset_name",
    "keys_for",
    "build_registry",
]
