"""Command-line front door for tuit.

Parses CLI options, loads the startup config and logging, validates the
start and receive directories, then dispatches into the interactive runtime.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from . import __version__
from .errors import ConfigError, IoError
from .file_tree_model import check_readable_directory
from .log import setup_logging
from .runtime import run_app
from .runtime.config import AppConfig, load_config, resolve_receive_dir


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tuit",
        description="Browse local files and send or receive them with a one-time ticket.",
    )
    parser.add_argument("path", nargs="?", default=None, help="Directory to browse. Defaults to current directory.")
    parser.add_argument(
        "--incognito",
        action="store_true",
        help="Ignore the config file and write no history, logs or preferences.",
    )
    parser.add_argument("--config", type=Path, default=None, metavar="PATH", help="Config file to read.")
    parser.add_argument(
        "--receive-dir",
        type=Path,
        default=None,
        metavar="PATH",
        help="Directory received files are written to.",
    )
    parser.add_argument("--version", action="version", version=f"tuit {__version__}")
    return parser


def _startup_config(args: argparse.Namespace) -> AppConfig:
    if args.incognito:
        return AppConfig.incognito()
    return load_config(args.config)


def main(argv: Sequence[str] | None = None) -> int:
    """Parse CLI arguments and launch the UI; returns the exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = _startup_config(args)
    except ConfigError as exc:
        print(f"tuit: {exc}", file=sys.stderr)
        return 1
    setup_logging(config)

    start = Path(args.path) if args.path is not None else Path.cwd()
    receive_dir = resolve_receive_dir(args.receive_dir, config)
    try:
        start = check_readable_directory(start)
        receive_dir = check_readable_directory(receive_dir)
    except IoError as exc:
        logger.error("startup failed: {}", exc)
        print(f"tuit: {exc}", file=sys.stderr)
        return 1

    return run_app(start, config, receive_dir)


__all__ = ["build_parser", "main"]
