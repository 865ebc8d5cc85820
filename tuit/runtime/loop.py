"""Main interactive event loop for the terminal UI.

Polls keys with a short timeout so worker events are applied and progress
repainted even while the user is idle. Feature logic lives in the controller.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass

from ..input import read_key
from ..terminal import TerminalController
from .controller import AppController
from .render import render_screen


@dataclass(frozen=True)
class RuntimeLoopTiming:
    """Timing constants controlling interactive loop behavior."""

    key_timeout_ms: int = 100
    status_clear_ticks: int = 40


@dataclass(frozen=True)
class RuntimeLoopCallbacks:
    """Injected terminal operations used by ``run_main_loop``."""

    read_key: Callable[[int, int | None], str]
    terminal_size: Callable[[], os.terminal_size]
    write_frame: Callable[[list[str]], None]


def default_callbacks(terminal: TerminalController) -> RuntimeLoopCallbacks:
    return RuntimeLoopCallbacks(
        read_key=read_key,
        terminal_size=lambda: shutil.get_terminal_size((80, 24)),
        write_frame=terminal.write_frame,
    )


def run_main_loop(
    app: AppController,
    stdin_fd: int,
    callbacks: RuntimeLoopCallbacks,
    timing: RuntimeLoopTiming | None = None,
) -> None:
    """Run until the controller requests quit.

    Each iteration applies pending session events, repaints when something
    changed or the terminal was resized, then waits briefly for one key.
    """
    timing = timing or RuntimeLoopTiming()
    last_size: tuple[int, int] | None = None
    status_age = 0
    last_status = ""

    while not app.state.quit:
        app.tick()
        term = callbacks.terminal_size()
        size = (term.columns, term.lines)
        if size != last_size:
            last_size = size
            app.state.dirty = True

        if app.state.status != last_status:
            last_status = app.state.status
            status_age = 0
        elif app.state.status:
            status_age += 1
            if status_age >= timing.status_clear_ticks and not app.state.status_is_error:
                app.state.status = ""
                last_status = ""
                app.state.dirty = True

        if app.state.dirty:
            callbacks.write_frame(render_screen(app, size[0], size[1]))
            app.state.dirty = False

        key = callbacks.read_key(stdin_fd, timing.key_timeout_ms)
        if key:
            app.handle_key(key)


__all__ = [
    "RuntimeLoopTiming",
    "RuntimeLoopCallbacks",
    "default_callbacks",
    "run_main_loop",
]
