"""Domain model for the browsable file tree.

This package contains non-UI tree primitives:
- node datatypes stored in an integer-keyed arena
- lazy ``os.scandir`` listing with symlink tagging
- the ``FileTreeModel`` owning expansion, selection and search state
"""

from __future__ import annotations

from .types import FileNode, NodeKind, TreeRow
from .fs import DirectoryChild, check_readable_directory, list_directory_children, safe_file_size
from .model import ROOT_PATH, FileTreeModel, NodeRef, SearchState

__all__ = [
    "FileNode",
    "NodeKind",
    "TreeRow",
    "DirectoryChild",
    "check_readable_directory",
    "list_directory_children",
    "safe_file_size",
    "ROOT_PATH",
    "FileTreeModel",
    "NodeRef",
    "SearchState",
]
