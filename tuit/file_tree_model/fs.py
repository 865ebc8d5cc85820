"""Filesystem listing helpers for lazy tree expansion."""

from __future__ import annotations

import os
import stat as stat_module
from dataclasses import dataclass
from pathlib import Path

from ..errors import IoError
from .types import NodeKind


@dataclass(frozen=True)
class DirectoryChild:
    """One directory entry with the metadata observed at listing time."""

    name: str
    path: Path
    kind: NodeKind
    size: int | None
    mtime_ns: int | None
    target_is_dir: bool = False


def safe_file_size(path: Path) -> int | None:
    """Return file size without following symlinks, or ``None`` on stat failure."""
    try:
        return int(path.lstat().st_size)
    except OSError:
        return None


def check_readable_directory(path: Path) -> Path:
    """Resolve ``path`` and verify it is a directory we can list.

    Raises ``IoError`` (or ``PermissionDenied``) when it cannot be listed.
    """
    try:
        resolved = path.resolve(strict=True)
    except OSError as exc:
        raise IoError.from_os_error(path, exc) from exc
    if not resolved.is_dir():
        raise IoError(path, "not a directory")
    try:
        with os.scandir(resolved) as entries:
            next(entries, None)
    except OSError as exc:
        raise IoError.from_os_error(path, exc) from exc
    return resolved


def _classify(entry: os.DirEntry[str]) -> tuple[NodeKind, int | None, int | None, bool]:
    try:
        st = entry.stat(follow_symlinks=False)
    except OSError:
        return NodeKind.FILE, None, None, False

    if stat_module.S_ISLNK(st.st_mode):
        try:
            target_is_dir = entry.is_dir(follow_symlinks=True)
        except OSError:
            target_is_dir = False
        return NodeKind.SYMLINK, None, int(st.st_mtime_ns), target_is_dir
    if stat_module.S_ISDIR(st.st_mode):
        return NodeKind.DIRECTORY, None, int(st.st_mtime_ns), False
    return NodeKind.FILE, int(st.st_size), int(st.st_mtime_ns), False


def list_directory_children(
    directory: Path,
    show_hidden: bool,
    include_symlinks: bool,
) -> list[DirectoryChild]:
    """List immediate children sorted directories-first, then by folded name.

    Symlinks are reported as ``NodeKind.SYMLINK`` and dropped entirely unless
    ``include_symlinks`` is set. Raises ``IoError``/``PermissionDenied`` when the
    directory itself cannot be scanned.
    """
    children: list[DirectoryChild] = []
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                name = entry.name
                if not show_hidden and name.startswith("."):
                    continue
                kind, size, mtime_ns, target_is_dir = _classify(entry)
                if kind is NodeKind.SYMLINK and not include_symlinks:
                    continue
                children.append(
                    DirectoryChild(
                        name=name,
                        path=Path(entry.path),
                        kind=kind,
                        size=size,
                        mtime_ns=mtime_ns,
                        target_is_dir=target_is_dir,
                    )
                )
    except OSError as exc:
        raise IoError.from_os_error(directory, exc) from exc

    def sort_key(child: DirectoryChild) -> tuple[bool, str, str]:
        is_dir = child.kind is NodeKind.DIRECTORY or child.target_is_dir
        return (not is_dir, child.name.lower(), child.name)

    children.sort(key=sort_key)
    return children


__all__ = [
    "DirectoryChild",
    "safe_file_size",
    "check_readable_directory",
    "list_directory_children",
]
