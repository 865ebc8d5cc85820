"""Domain datatypes for the arena-backed file tree."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class NodeKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass
class FileNode:
    """One filesystem entry owned by ``FileTreeModel``.

    ``path`` is relative to the tree root (the root itself is ``Path(".")``).
    ``children`` holds arena ids and stays ``None`` until the directory is
    expanded; a loaded list is the order-stable snapshot taken at load time.
    """

    node_id: int
    path: Path
    kind: NodeKind
    parent_id: int | None
    depth: int = 0
    size: int | None = None
    mtime_ns: int | None = None
    target_is_dir: bool = False
    children: list[int] | None = None
    expanded: bool = False
    matched: bool = False
    selected: bool = False
    error: str | None = None

    @property
    def name(self) -> str:
        return self.path.name or "."

    @property
    def is_dir(self) -> bool:
        """True for directories and for symlinks that point at one."""
        if self.kind is NodeKind.DIRECTORY:
            return True
        return self.kind is NodeKind.SYMLINK and self.target_is_dir


@dataclass(frozen=True)
class TreeRow:
    """One visible row of the tree view."""

    node_id: int
    path: Path
    depth: int
    kind: NodeKind
    is_dir: bool
    expanded: bool
    selected: bool
    matched: bool
    size: int | None = None
    error: str | None = None


__all__ = [
    "NodeKind",
    "FileNode",
    "TreeRow",
]
