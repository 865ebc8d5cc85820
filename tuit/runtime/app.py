"""Runtime composition layer for tuit.

Builds the tree model, history log, transport and session manager from the
startup config, wires them into the controller, and starts the loop.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger

from ..errors import IoError
from ..file_tree_model import FileTreeModel
from ..history import HistoryLog
from ..terminal import TerminalController
from ..transfer import LocalTransport, SessionManager, Transport
from .config import SPOOL_DIR, AppConfig
from .controller import AppController
from .loop import default_callbacks, run_main_loop


def build_app(
    start_dir: Path,
    config: AppConfig,
    receive_dir: Path,
    *,
    transport: Transport | None = None,
) -> AppController:
    """Assemble every runtime component without touching the terminal."""
    tree = FileTreeModel(
        show_hidden=config.preferences.show_hidden,
        follow_symlinks=config.preferences.follow_symlinks,
    )
    root = tree.load_root(start_dir)
    root_error: IoError | None = None
    try:
        tree.expand(root.node_id)
    except IoError as exc:
        root_error = exc
    tree.move_cursor_to(0)

    history = HistoryLog(config.history_path)
    loaded = history.load()
    logger.info("loaded {} history record(s)", loaded)

    manager = SessionManager(
        transport if transport is not None else LocalTransport(SPOOL_DIR),
        receive_dir=receive_dir,
        limits=config.transfer.limits,
        conflict_mode=config.transfer.conflict_mode,
        ask_scope=config.transfer.conflict_ask_scope,
        history=history,
        follow_symlinks=config.preferences.follow_symlinks,
    )
    app = AppController(config, tree, manager, history)
    if root_error is not None:
        app.flash_error(str(root_error))
    return app


def run_app(start_dir: Path, config: AppConfig, receive_dir: Path) -> int:
    """Run the interactive UI and return the process exit code."""
    if not os.isatty(sys.stdin.fileno()) or not os.isatty(sys.stdout.fileno()):
        print("tuit: an interactive terminal is required", file=sys.stderr)
        return 1

    app = build_app(start_dir, config, receive_dir)
    stdin_fd = sys.stdin.fileno()
    terminal = TerminalController(stdin_fd, sys.stdout.fileno())
    logger.info("started in {} (receive dir {}, mode {})", start_dir, receive_dir, config.mode.value)
    try:
        with terminal.raw_mode():
            run_main_loop(app, stdin_fd, default_callbacks(terminal))
    finally:
        app.manager.shutdown()
        logger.info("exiting")
    return 0


__all__ = ["build_app", "run_app"]
