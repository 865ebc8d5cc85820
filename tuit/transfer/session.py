"""Transfer session state machine.

A ``TransferSession`` is plain data owned by the ``SessionManager``; only the
UI thread mutates it, by applying worker events. Workers never touch it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

from .transport import ConnectionKind


class SessionState(str, Enum):
    CREATED = "created"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_running(self) -> bool:
        return self in (SessionState.NEGOTIATING, SessionState.ACTIVE)


_TERMINAL = frozenset({SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED})

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.CREATED: frozenset({SessionState.NEGOTIATING, SessionState.FAILED, SessionState.CANCELLED}),
    SessionState.NEGOTIATING: frozenset({SessionState.ACTIVE, SessionState.FAILED, SessionState.CANCELLED}),
    SessionState.ACTIVE: frozenset({SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}),
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
    SessionState.CANCELLED: frozenset(),
}


class Direction(str, Enum):
    SEND = "send"
    RECEIVE = "receive"


class ItemState(str, Enum):
    PENDING = "pending"
    WAITING = "waiting"
    ACTIVE = "active"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


class InvalidTransition(ValueError):
    def __init__(self, current: SessionState, target: SessionState) -> None:
        super().__init__(f"cannot move session from {current.value} to {target.value}")
        self.current = current
        self.target = target


@dataclass
class TransferItem:
    """One file of a session. ``source`` is set for sends, ``destination`` for receives."""

    name: str
    size: int
    source: Path | None = None
    destination: Path | None = None
    state: ItemState = ItemState.PENDING
    error: str | None = None


@dataclass
class TransferSession:
    session_id: int
    direction: Direction
    items: list[TransferItem] = field(default_factory=list)
    state: SessionState = SessionState.CREATED
    transferred_bytes: int = 0
    rate_bps: int = 0
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    ended_at: float | None = None
    connection: ConnectionKind | None = None
    error: str | None = None
    ticket: str | None = None
    queue_position: int | None = None
    source_paths: tuple[Path, ...] = ()
    receive_root: Path | None = None

    # -- transitions -------------------------------------------------------

    def transition(self, target: SessionState, *, now: float | None = None) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, target)
        stamp = time.time() if now is None else now
        if target is SessionState.NEGOTIATING:
            self.started_at = stamp
            self.queue_position = None
        if target.is_terminal:
            self.ended_at = stamp
            self.queue_position = None
            self.rate_bps = 0
        self.state = target

    def begin_negotiating(self, *, now: float | None = None) -> None:
        self.transition(SessionState.NEGOTIATING, now=now)

    def mark_active(self, connection: ConnectionKind | None = None) -> None:
        if connection is not None:
            self.connection = connection
        if self.state is SessionState.NEGOTIATING:
            self.transition(SessionState.ACTIVE)

    def finish(self, outcome: SessionState, error: str | None = None, *, now: float | None = None) -> None:
        """Move to a terminal state. A session still negotiating passes through Active on success."""
        if not outcome.is_terminal:
            raise ValueError(f"{outcome.value} is not a terminal state")
        if outcome is SessionState.COMPLETED and self.state is SessionState.NEGOTIATING:
            self.transition(SessionState.ACTIVE, now=now)
        self.transition(outcome, now=now)
        self.error = error if outcome is SessionState.FAILED else None

    def record_progress(self, transferred_bytes: int, rate_bps: int | None = None) -> bool:
        """Apply a progress sample; regressions are ignored. Returns True if the counter advanced."""
        if rate_bps is not None and not self.state.is_terminal:
            self.rate_bps = max(0, int(rate_bps))
        if transferred_bytes <= self.transferred_bytes:
            return False
        self.transferred_bytes = int(transferred_bytes)
        return True

    def set_items(self, files: list[tuple[str, int]]) -> None:
        self.items = [TransferItem(name=name, size=size) for name, size in files]

    def update_item(
        self,
        index: int,
        state: ItemState,
        *,
        destination: Path | None = None,
        error: str | None = None,
    ) -> None:
        if not 0 <= index < len(self.items):
            return
        item = self.items[index]
        item.state = state
        if destination is not None:
            item.destination = destination
        item.error = error

    # -- derived views -----------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_queued(self) -> bool:
        return self.state is SessionState.CREATED and self.queue_position is not None

    @property
    def total_bytes(self) -> int:
        """Bytes this session will move; skipped items do not count."""
        return sum(item.size for item in self.items if item.state is not ItemState.SKIPPED)

    @property
    def remaining_bytes(self) -> int:
        return max(0, self.total_bytes - self.transferred_bytes)

    @property
    def progress_percent(self) -> float:
        total = self.total_bytes
        if total <= 0:
            return 100.0 if self.state is SessionState.COMPLETED else 0.0
        return min(100.0, self.transferred_bytes * 100.0 / total)

    @property
    def eta_seconds(self) -> float | None:
        if self.state is not SessionState.ACTIVE or self.rate_bps <= 0:
            return None
        return self.remaining_bytes / self.rate_bps

    @property
    def elapsed_seconds(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.ended_at if self.ended_at is not None else time.time()
        return max(0.0, end - self.started_at)

    @property
    def current_item(self) -> TransferItem | None:
        """The item in flight, falling back to the first one still pending."""
        for item in self.items:
            if item.state is ItemState.ACTIVE:
                return item
        for item in self.items:
            if item.state is ItemState.PENDING:
                return item
        return None

    def count_items(self, state: ItemState) -> int:
        return sum(1 for item in self.items if item.state is state)

    @property
    def display_name(self) -> str:
        return display_name_for([item.name for item in self.items])


def display_name_for(names: list[str]) -> str:
    """``report.pdf`` for one file, ``photos/`` for one top folder, else ``N files``."""
    if not names:
        return "(no files)"
    if len(names) == 1:
        return PurePosixPath(names[0]).name
    tops = {PurePosixPath(name).parts[0] for name in names}
    if len(tops) == 1 and all(len(PurePosixPath(name).parts) > 1 for name in names):
        return f"{next(iter(tops))}/"
    return f"{len(names)} files"


__all__ = [
    "SessionState",
    "Direction",
    "ItemState",
    "InvalidTransition",
    "TransferItem",
    "TransferSession",
    "display_name_for",
]
