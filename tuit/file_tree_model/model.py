"""Arena-backed lazy file tree with selection and fuzzy-search merge.

Nodes live in one dict keyed by integer id; parents and children refer to each
other only by id, and the UI refers to nodes by id or root-relative path.
Search is computed from already-loaded nodes and never touches the disk.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from ..errors import IoError, PermissionDenied
from ..search import rank_paths
from .fs import DirectoryChild, check_readable_directory, list_directory_children
from .types import FileNode, NodeKind, TreeRow

ROOT_PATH = Path(".")
NodeRef = int | Path


def _depth_key(path: Path) -> tuple[int, str]:
    return (len(path.parts), path.as_posix())


@dataclass
class SearchState:
    """Active query, ranked matches, and the pre-search view snapshot."""

    query: str = ""
    matches: list[Path] = field(default_factory=list)
    scores: dict[Path, int] = field(default_factory=dict)
    cursor: int = 0
    expanded_snapshot: frozenset[Path] | None = None
    selection_snapshot: frozenset[Path] | None = None
    cursor_snapshot: Path | None = None

    @property
    def active(self) -> bool:
        return bool(self.query)

    def current_match(self) -> Path | None:
        if not self.matches:
            return None
        return self.matches[max(0, min(self.cursor, len(self.matches) - 1))]


class FileTreeModel:
    """Own the tree rooted at one directory.

    The model is single-writer: only the UI thread calls its mutators.
    """

    def __init__(self, *, show_hidden: bool = False, follow_symlinks: bool = False) -> None:
        self.show_hidden = show_hidden
        self.follow_symlinks = follow_symlinks
        self.root_dir: Path | None = None
        self.root_id: int | None = None
        self.cursor_id: int | None = None
        self.selected: set[Path] = set()
        self.search_state = SearchState()
        self._nodes: dict[int, FileNode] = {}
        self._ids_by_path: dict[Path, int] = {}
        self._id_counter = itertools.count()

    # -- lookup -----------------------------------------------------------

    def __contains__(self, ref: object) -> bool:
        if isinstance(ref, int):
            return ref in self._nodes
        if isinstance(ref, Path):
            return self._relative(ref) in self._ids_by_path
        return False

    def __len__(self) -> int:
        return len(self._nodes)

    def _relative(self, path: Path) -> Path:
        if path.is_absolute() and self.root_dir is not None:
            try:
                rel = path.relative_to(self.root_dir)
            except ValueError:
                return path
            return rel if rel.parts else ROOT_PATH
        return path

    def node(self, ref: NodeRef) -> FileNode:
        """Return the node for an id or root-relative path; ``KeyError`` if not loaded."""
        if isinstance(ref, int):
            return self._nodes[ref]
        return self._nodes[self._ids_by_path[self._relative(ref)]]

    def root(self) -> FileNode:
        if self.root_id is None:
            raise RuntimeError("no root loaded")
        return self._nodes[self.root_id]

    def absolute_path(self, ref: NodeRef) -> Path:
        if self.root_dir is None:
            raise RuntimeError("no root loaded")
        rel = self.node(ref).path
        return self.root_dir if rel == ROOT_PATH else self.root_dir / rel

    def iter_nodes(self) -> Iterator[FileNode]:
        """Yield loaded nodes in display (depth-first, listing) order."""
        if self.root_id is None:
            return
        stack = [self.root_id]
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            if node.children:
                stack.extend(reversed(node.children))

    def expanded_paths(self) -> frozenset[Path]:
        return frozenset(node.path for node in self._nodes.values() if node.expanded)

    # -- construction -----------------------------------------------------

    def load_root(self, path: Path | str) -> FileNode:
        """Reset the tree to ``path``; children stay unloaded until ``expand``."""
        resolved = check_readable_directory(Path(path))
        self._nodes.clear()
        self._ids_by_path.clear()
        self.selected.clear()
        self.search_state = SearchState()
        self.root_dir = resolved
        root = self._add_node(
            path=ROOT_PATH,
            kind=NodeKind.DIRECTORY,
            parent_id=None,
            depth=-1,
        )
        self.root_id = root.node_id
        self.cursor_id = root.node_id
        logger.debug("tree root loaded: {}", resolved)
        return root

    def _add_node(
        self,
        *,
        path: Path,
        kind: NodeKind,
        parent_id: int | None,
        depth: int,
        size: int | None = None,
        mtime_ns: int | None = None,
        target_is_dir: bool = False,
    ) -> FileNode:
        node = FileNode(
            node_id=next(self._id_counter),
            path=path,
            kind=kind,
            parent_id=parent_id,
            depth=depth,
            size=size,
            mtime_ns=mtime_ns,
            target_is_dir=target_is_dir,
            selected=path in self.selected,
        )
        self._nodes[node.node_id] = node
        self._ids_by_path[path] = node.node_id
        return node

    def _child_from_listing(self, parent: FileNode, child: DirectoryChild) -> FileNode:
        rel = child.name if parent.path == ROOT_PATH else parent.path / child.name
        return self._add_node(
            path=Path(rel),
            kind=child.kind,
            parent_id=parent.node_id,
            depth=parent.depth + 1,
            size=child.size,
            mtime_ns=child.mtime_ns,
            target_is_dir=child.target_is_dir,
        )

    # -- expansion --------------------------------------------------------

    def expand(self, ref: NodeRef) -> FileNode:
        """List the directory's immediate entries and mark it expanded.

        Re-expanding a loaded directory is a no-op. ``PermissionDenied`` and
        ``IoError`` propagate after the node's ``error`` marker is set.
        """
        node = self.node(ref)
        if not node.is_dir:
            return node
        if node.kind is NodeKind.SYMLINK and not self.follow_symlinks:
            return node
        if node.children is not None:
            node.expanded = True
            return node

        try:
            listing = list_directory_children(
                self.absolute_path(node.node_id),
                show_hidden=self.show_hidden,
                include_symlinks=self.follow_symlinks,
            )
        except PermissionDenied:
            node.error = "permission denied"
            raise
        except IoError as exc:
            node.error = str(exc)
            raise

        node.error = None
        node.children = [self._child_from_listing(node, child).node_id for child in listing]
        node.expanded = True
        if self.search_state.active:
            self._refresh_search()
        return node

    def collapse(self, ref: NodeRef) -> FileNode:
        """Drop loaded children; the next ``expand`` re-lists from disk."""
        node = self.node(ref)
        if node.children:
            for child_id in list(node.children):
                self._discard_subtree(child_id)
        node.children = None
        node.expanded = False
        if self.cursor_id is not None and self.cursor_id not in self._nodes:
            self.cursor_id = node.node_id
        if self.search_state.active:
            self._refresh_search()
        return node

    def _discard_subtree(self, node_id: int) -> None:
        stack = [node_id]
        while stack:
            node = self._nodes.pop(stack.pop())
            self._ids_by_path.pop(node.path, None)
            if node.children:
                stack.extend(node.children)

    def toggle_expanded(self, ref: NodeRef) -> FileNode:
        node = self.node(ref)
        if node.expanded:
            return self.collapse(node.node_id)
        return self.expand(node.node_id)

    def reload(self) -> list[IoError]:
        """Re-list every expanded directory, keeping expansion, selection and cursor.

        Used after toggling hidden-file or symlink visibility. Failures are
        collected and returned rather than raised.
        """
        if self.root_id is None:
            return []
        expanded = sorted(self.expanded_paths(), key=_depth_key)
        cursor_path = self._nodes[self.cursor_id].path if self.cursor_id in self._nodes else None
        self.collapse(self.root_id)
        errors = self._expand_paths(expanded)
        self.cursor_id = self._ids_by_path.get(cursor_path, self.root_id) if cursor_path else self.root_id
        return errors

    def _expand_paths(self, paths: list[Path]) -> list[IoError]:
        errors: list[IoError] = []
        for path in paths:
            node_id = self._ids_by_path.get(path)
            if node_id is None:
                continue
            try:
                self.expand(node_id)
            except IoError as exc:
                logger.warning("could not re-expand {}: {}", path, exc)
                errors.append(exc)
        return errors

    def set_follow_symlinks(self, enabled: bool) -> list[IoError]:
        if enabled == self.follow_symlinks:
            return []
        self.follow_symlinks = enabled
        if not enabled:
            self.selected = {path for path in self.selected if not self._under_symlink(path)}
        return self.reload()

    def set_show_hidden(self, enabled: bool) -> list[IoError]:
        if enabled == self.show_hidden:
            return []
        self.show_hidden = enabled
        return self.reload()

    def _under_symlink(self, path: Path) -> bool:
        node_id = self._ids_by_path.get(path)
        while node_id is not None:
            node = self._nodes[node_id]
            if node.kind is NodeKind.SYMLINK:
                return True
            node_id = node.parent_id
        return False

    # -- selection --------------------------------------------------------

    def toggle_selection(self, ref: NodeRef) -> FileNode:
        """Flip one node's selected flag; directories are not selected recursively."""
        node = self.node(ref)
        node.selected = not node.selected
        if node.selected:
            self.selected.add(node.path)
        else:
            self.selected.discard(node.path)
        return node

    def select_all(self) -> int:
        """Select every loaded node (or every match while a search is active)."""
        count = 0
        for node in self.iter_nodes():
            if node.node_id == self.root_id:
                continue
            if self.search_state.active and not node.matched:
                continue
            if not node.selected:
                node.selected = True
                self.selected.add(node.path)
                count += 1
        return count

    def clear_selection(self) -> int:
        """Deselect loaded nodes; selections under collapsed directories remain."""
        count = 0
        for node in self._nodes.values():
            if node.selected:
                node.selected = False
                self.selected.discard(node.path)
                count += 1
        return count

    def selected_paths(self) -> list[Path]:
        """Absolute paths of the selection set in stable path order."""
        if self.root_dir is None:
            return []
        root = self.root_dir
        return [root if rel == ROOT_PATH else root / rel for rel in sorted(self.selected, key=Path.as_posix)]

    # -- search -----------------------------------------------------------

    def search(self, query: str) -> list[Path]:
        """Match ``query`` against loaded names and merge hits into the view.

        The first non-empty query of a search session snapshots the expansion
        set, selection and cursor; an empty query restores them exactly and ends
        the session.
        """
        state = self.search_state
        if not query:
            self._end_search()
            return []

        if state.expanded_snapshot is None:
            state.expanded_snapshot = self.expanded_paths()
            state.selection_snapshot = frozenset(self.selected)
            cursor = self._nodes.get(self.cursor_id) if self.cursor_id is not None else None
            state.cursor_snapshot = cursor.path if cursor is not None else None
        state.query = query
        state.cursor = 0
        self._refresh_search()
        first = state.current_match()
        if first is not None:
            self.cursor_id = self._ids_by_path[first]
        return list(state.matches)

    def _refresh_search(self) -> None:
        state = self.search_state
        for node in self._nodes.values():
            node.matched = False
        candidates = (node.path for node in self._nodes.values() if node.node_id != self.root_id)
        ranked = rank_paths(state.query, candidates)
        state.matches = [path for path, _ in ranked]
        state.scores = dict(ranked)
        for path in state.matches:
            self._nodes[self._ids_by_path[path]].matched = True
        if state.matches:
            state.cursor = max(0, min(state.cursor, len(state.matches) - 1))
        else:
            state.cursor = 0

    def _end_search(self) -> None:
        state = self.search_state
        for node in self._nodes.values():
            node.matched = False
        snapshot = state.expanded_snapshot
        cursor_path = self._nodes[self.cursor_id].path if self.cursor_id in self._nodes else None
        self.search_state = SearchState()
        if snapshot is None:
            return

        self._restore_selection(state.selection_snapshot or frozenset())
        current = self.expanded_paths()
        for path in sorted(current - snapshot, key=_depth_key):
            node_id = self._ids_by_path.get(path)
            if node_id is not None:
                self.collapse(node_id)
        self._expand_paths(sorted(snapshot - self.expanded_paths(), key=_depth_key))

        for candidate in (cursor_path, state.cursor_snapshot):
            if candidate is not None and candidate in self._ids_by_path:
                if self._is_visible(self._ids_by_path[candidate]):
                    self.cursor_id = self._ids_by_path[candidate]
                    return
        self.cursor_id = self.root_id

    def _restore_selection(self, snapshot: frozenset[Path]) -> None:
        self.selected = set(snapshot)
        for node in self._nodes.values():
            node.selected = node.path in self.selected

    def move_search_cursor(self, step: int) -> Path | None:
        """Advance the search cursor with wrap-around and follow it with the tree cursor."""
        state = self.search_state
        if not state.matches:
            return None
        state.cursor = (state.cursor + step) % len(state.matches)
        path = state.matches[state.cursor]
        self.cursor_id = self._ids_by_path[path]
        return path

    # -- view -------------------------------------------------------------

    def _search_visible_ids(self) -> set[int]:
        visible: set[int] = set()
        for path in self.search_state.matches:
            node_id: int | None = self._ids_by_path[path]
            while node_id is not None and node_id not in visible and node_id != self.root_id:
                visible.add(node_id)
                node_id = self._nodes[node_id].parent_id
        return visible

    def _is_visible(self, node_id: int) -> bool:
        node = self._nodes[node_id]
        if node_id == self.root_id:
            return True
        parent_id = node.parent_id
        while parent_id is not None:
            parent = self._nodes[parent_id]
            if not parent.expanded:
                return False
            parent_id = parent.parent_id
        return True

    def visible_rows(self) -> list[TreeRow]:
        """Rows for rendering.

        Without a search this is the expanded tree below the root. With an
        active search it is the matches merged with their ancestor chains, so
        every hit is reachable in place.
        """
        if self.root_id is None:
            return []
        filter_ids = self._search_visible_ids() if self.search_state.active else None
        rows: list[TreeRow] = []
        root = self._nodes[self.root_id]
        stack = list(reversed(root.children or []))
        while stack:
            node = self._nodes[stack.pop()]
            if filter_ids is not None and node.node_id not in filter_ids:
                continue
            rows.append(
                TreeRow(
                    node_id=node.node_id,
                    path=node.path,
                    depth=node.depth,
                    kind=node.kind,
                    is_dir=node.is_dir,
                    expanded=node.expanded,
                    selected=node.selected,
                    matched=node.matched,
                    size=node.size,
                    error=node.error,
                )
            )
            if node.expanded and node.children:
                stack.extend(reversed(node.children))
        return rows

    def cursor_index(self, rows: list[TreeRow] | None = None) -> int:
        rows = self.visible_rows() if rows is None else rows
        for idx, row in enumerate(rows):
            if row.node_id == self.cursor_id:
                return idx
        return 0

    def move_cursor(self, delta: int) -> int | None:
        """Move the cursor by ``delta`` visible rows, clamped; return the new id."""
        rows = self.visible_rows()
        if not rows:
            return None
        if self.cursor_id in {row.node_id for row in rows}:
            target = max(0, min(len(rows) - 1, self.cursor_index(rows) + delta))
        else:
            target = 0 if delta >= 0 else len(rows) - 1
        self.cursor_id = rows[target].node_id
        return self.cursor_id

    def move_cursor_to(self, index: int) -> int | None:
        rows = self.visible_rows()
        if not rows:
            return None
        self.cursor_id = rows[max(0, min(len(rows) - 1, index))].node_id
        return self.cursor_id

    def cursor_node(self) -> FileNode | None:
        if self.cursor_id is None or self.cursor_id == self.root_id:
            return None
        return self._nodes.get(self.cursor_id)


__all__ = [
    "ROOT_PATH",
    "NodeRef",
    "SearchState",
    "FileTreeModel",
]
