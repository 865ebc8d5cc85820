"""Messages posted by transfer workers onto the manager's shared queue.

Every message carries its session id so one ``Queue`` can multiplex all
sessions while keeping per-session order.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .conflict import ExistingFile
from .session import ItemState, SessionState
from .transport import ConnectionKind


@dataclass(frozen=True)
class SessionEvent:
    session_id: int


@dataclass(frozen=True)
class TicketReady(SessionEvent):
    ticket: str


@dataclass(frozen=True)
class FileListed(SessionEvent):
    files: tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class Connected(SessionEvent):
    connection: ConnectionKind


@dataclass(frozen=True)
class Progress(SessionEvent):
    transferred_bytes: int
    rate_bps: int = 0


@dataclass(frozen=True)
class ItemChanged(SessionEvent):
    index: int
    state: ItemState
    destination: Path | None = None
    error: str | None = None


@dataclass(frozen=True)
class ConflictPending(SessionEvent):
    index: int
    name: str
    destination: Path
    existing: ExistingFile


@dataclass(frozen=True)
class Finished(SessionEvent):
    outcome: SessionState
    error: str | None = None


__all__ = [
    "SessionEvent",
    "TicketReady",
    "FileListed",
    "Connected",
    "Progress",
    "ItemChanged",
    "ConflictPending",
    "Finished",
]
