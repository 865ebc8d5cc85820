"""Flatten a tree selection into the file list offered by a send."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from ..errors import EmptySelectionError
from .conflict import next_available_name
from .transport import SendItem


def _walk_files(directory: Path, follow_symlinks: bool) -> list[Path]:
    files: list[Path] = []
    seen_dirs: set[Path] = set()

    def on_error(exc: OSError) -> None:
        logger.warning("skipping unreadable directory {}: {}", exc.filename, exc.strerror or exc)

    for dirpath, dirnames, filenames in os.walk(directory, onerror=on_error, followlinks=follow_symlinks):
        base = Path(dirpath)
        if follow_symlinks:
            real = base.resolve()
            if real in seen_dirs:
                # Link cycle back into something already walked.
                dirnames[:] = []
                continue
            seen_dirs.add(real)
        else:
            dirnames[:] = [name for name in dirnames if not (base / name).is_symlink()]
        dirnames.sort(key=str.lower)
        for filename in sorted(filenames, key=str.lower):
            path = base / filename
            if not follow_symlinks and path.is_symlink():
                continue
            if path.is_file():
                files.append(path)
    return files


def _drop_nested(paths: Iterable[Path]) -> list[Path]:
    """Keep only selections that are not inside another selected directory."""
    ordered = sorted({Path(os.path.abspath(p)) for p in paths}, key=lambda p: (len(p.parts), str(p)))
    kept: list[Path] = []
    for path in ordered:
        if any(path != parent and path.is_relative_to(parent) for parent in kept):
            continue
        kept.append(path)
    return sorted(kept)


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    return next_available_name(Path(name), lambda candidate: candidate.as_posix() in taken).as_posix()


def expand_selection(paths: Iterable[Path], follow_symlinks: bool = False) -> list[SendItem]:
    """Turn selected files and directories into a flat, de-duplicated file list.

    Names are relative to each selection's parent, so selecting ``photos/``
    offers ``photos/a.jpg``. Symlinks (selected or found while walking) are
    left out unless ``follow_symlinks`` is on. Raises ``EmptySelectionError``
    when nothing expands to a file.
    """
    items: list[SendItem] = []
    taken_names: set[str] = set()
    seen_files: set[Path] = set()

    for selected in _drop_nested(paths):
        if selected.is_symlink() and not follow_symlinks:
            logger.info("not sending symlink {} (follow symlinks is off)", selected)
            continue
        if selected.is_dir():
            found = _walk_files(selected, follow_symlinks)
        elif selected.is_file():
            found = [selected]
        else:
            logger.warning("selection {} is neither a file nor a directory", selected)
            continue

        parent = selected.parent
        for path in found:
            real = path.resolve()
            if real in seen_files:
                continue
            try:
                size = int(path.stat().st_size)
            except OSError as exc:
                logger.warning("skipping {}: {}", path, exc.strerror or exc)
                continue
            seen_files.add(real)
            name = _unique_name(path.relative_to(parent).as_posix(), taken_names)
            taken_names.add(name)
            items.append(SendItem(name=name, path=path, size=size))

    if not items:
        raise EmptySelectionError("nothing to send: the selection contains no files")
    return items


__all__ = ["expand_selection"]
