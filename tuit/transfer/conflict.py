"""Per-file destination policy for incoming files.

Everything here is a pure decision over the filesystem state observed at call
time. Nothing is cached between files: the containment check runs for every
file because symlinks under the receive root can change between them.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath

from loguru import logger

from ..errors import PathTraversalError

MAX_RENAME_ATTEMPTS = 10_000


class ConflictMode(str, Enum):
    """Policy applied when an incoming file's destination already exists."""

    ASK = "ask"
    OVERWRITE = "overwrite"
    RENAME = "rename"
    SKIP = "skip"

    @classmethod
    def from_name(cls, name: object, default: ConflictMode | None = None) -> ConflictMode:
        fallback = cls.ASK if default is None else default
        if not isinstance(name, str):
            return fallback
        try:
            return cls(name.strip().lower())
        except ValueError:
            return fallback


class AskScope(str, Enum):
    """How far one answer to a conflict prompt reaches by default."""

    PER_FILE = "per_file"
    REMAINING = "remaining"

    @classmethod
    def from_name(cls, name: object) -> AskScope:
        if isinstance(name, str):
            try:
                return cls(name.strip().lower())
            except ValueError:
                pass
        return cls.PER_FILE


class ConflictChoice(str, Enum):
    """Answer given by the user to an ``AskUser`` decision."""

    RENAME = "rename"
    OVERWRITE = "overwrite"
    SKIP = "skip"
    CANCEL = "cancel"

    def as_mode(self) -> ConflictMode | None:
        return {
            ConflictChoice.RENAME: ConflictMode.RENAME,
            ConflictChoice.OVERWRITE: ConflictMode.OVERWRITE,
            ConflictChoice.SKIP: ConflictMode.SKIP,
        }.get(self)


@dataclass(frozen=True)
class ExistingFile:
    size: int
    mtime_ns: int


@dataclass(frozen=True)
class Proceed:
    """Write to ``path``; ``overwrite`` is set only when replacing an existing file."""

    path: Path
    overwrite: bool = False


@dataclass(frozen=True)
class Skip:
    reason: str = "exists"
    error: PathTraversalError | None = None


@dataclass(frozen=True)
class AskUser:
    """Placement of this one file waits for a ``ConflictChoice``."""

    path: Path
    existing: ExistingFile


ConflictDecision = Proceed | Skip | AskUser


def existing_metadata(path: Path) -> ExistingFile | None:
    """Return size/mtime of whatever occupies ``path`` (symlinks included)."""
    try:
        st = path.lstat()
    except FileNotFoundError:
        return None
    except OSError:
        # Unstat-able but present: treat as occupied so nothing clobbers it.
        return ExistingFile(size=0, mtime_ns=0)
    return ExistingFile(size=int(st.st_size), mtime_ns=int(st.st_mtime_ns))


def next_available_name(path: Path, exists: Callable[[Path], bool] | None = None) -> Path:
    """Return ``stem (n)ext`` for the smallest ``n >= 1`` that is free.

    ``a.txt`` becomes ``a (1).txt``, then ``a (2).txt``; names without an
    extension get the suffix at the end. Dotfiles like ``.bashrc`` keep the
    whole name as the stem.
    """
    occupied = exists if exists is not None else os.path.lexists
    stem = path.stem
    suffix = path.suffix
    for n in range(1, MAX_RENAME_ATTEMPTS + 1):
        candidate = path.with_name(f"{stem} ({n}){suffix}")
        if not occupied(candidate):
            return candidate
    raise FileExistsError(f"no free name for {path} after {MAX_RENAME_ATTEMPTS} attempts")


def ensure_within_root(root: Path, destination: Path) -> Path:
    """Normalize ``destination`` and verify it stays under ``root``.

    Existing symlinks along the path are resolved, so a link that points
    outside the root is treated as an escape.
    """
    resolved_root = root.resolve()
    normalized = Path(os.path.normpath(destination if destination.is_absolute() else root / destination))
    resolved = normalized.resolve()
    if resolved == resolved_root or not resolved.is_relative_to(resolved_root):
        raise PathTraversalError(str(destination), root)
    return normalized


def destination_for(root: Path, name: str) -> Path:
    """Map a transport-supplied relative name (``/``-separated) onto ``root``.

    Rejects absolute names, empty components, ``.``/``..`` components and
    backslashes before joining, then runs the containment check.
    """
    if not name or name.startswith("/") or "\\" in name:
        raise PathTraversalError(name, root)
    parts = PurePosixPath(name).parts
    raw_parts = name.split("/")
    if any(part in {"", ".", ".."} for part in raw_parts) or not parts:
        raise PathTraversalError(name, root)
    return ensure_within_root(root, root.joinpath(*parts))


def resolve(
    destination: Path,
    mode: ConflictMode,
    existing: ExistingFile | None,
    *,
    root: Path | None = None,
    exists: Callable[[Path], bool] | None = None,
) -> ConflictDecision:
    """Decide where one incoming file goes.

    ``existing`` describes what currently occupies ``destination`` (``None``
    when free). When ``root`` is given, the final path is re-validated against
    it and any escape yields ``Skip`` carrying the ``PathTraversalError``.
    """
    if existing is None:
        decision: ConflictDecision = Proceed(destination)
    elif mode is ConflictMode.OVERWRITE:
        decision = Proceed(destination, overwrite=True)
    elif mode is ConflictMode.SKIP:
        decision = Skip()
    elif mode is ConflictMode.RENAME:
        decision = Proceed(next_available_name(destination, exists))
    else:
        decision = AskUser(destination, existing)

    if root is not None and isinstance(decision, Proceed | AskUser):
        try:
            ensure_within_root(root, decision.path)
        except PathTraversalError as exc:
            logger.warning("refusing receive destination: {}", exc)
            return Skip(reason="path traversal", error=exc)
    return decision


def resolve_incoming(root: Path, name: str, mode: ConflictMode) -> ConflictDecision:
    """Full per-file pipeline: name → contained destination → policy decision."""
    try:
        destination = destination_for(root, name)
    except PathTraversalError as exc:
        logger.warning("refusing receive destination: {}", exc)
        return Skip(reason="path traversal", error=exc)
    return resolve(destination, mode, existing_metadata(destination), root=root)


def apply_choice(decision: AskUser, choice: ConflictChoice, root: Path | None = None) -> ConflictDecision:
    """Turn an answered ``AskUser`` into a final decision.

    ``CANCEL`` is not a placement decision; callers handle it before this.
    """
    mode = choice.as_mode()
    if mode is None:
        raise ValueError("cancel is handled by the session, not the resolver")
    return resolve(decision.path, mode, existing_metadata(decision.path), root=root)


__all__ = [
    "MAX_RENAME_ATTEMPTS",
    "ConflictMode",
    "AskScope",
    "ConflictChoice",
    "ExistingFile",
    "Proceed",
    "Skip",
    "AskUser",
    "ConflictDecision",
    "existing_metadata",
    "next_available_name",
    "ensure_within_root",
    "destination_for",
    "resolve",
    "resolve_incoming",
    "apply_choice",
]
