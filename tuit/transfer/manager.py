"""Owner of all transfer sessions for one process run.

Workers run on daemon threads and report over a single session-tagged
``Queue``. ``pump()`` drains it on the UI thread, which is the only place
session state changes, so terminal transitions and history appends happen in
one order.
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from queue import Empty, Queue
from typing import TYPE_CHECKING

from loguru import logger

from ..errors import EmptySelectionError
from .conflict import AskScope, ConflictChoice, ConflictMode
from .events import (
    Connected,
    ConflictPending,
    FileListed,
    Finished,
    ItemChanged,
    Progress,
    SessionEvent,
    TicketReady,
)
from .expand import expand_selection
from .session import Direction, ItemState, SessionState, TransferItem, TransferSession
from .transport import ConnectionKind, Transport
from .workers import DISK_RESERVE_BYTES, ConflictAnswer, WorkerContext, run_receive, run_send

if TYPE_CHECKING:
    from ..history import HistoryLog, HistoryRecord

DEFAULT_MAX_CONCURRENT = 50

SpawnWorker = Callable[[str, Callable[[], None]], threading.Thread | None]


@dataclass(frozen=True)
class TransferLimits:
    max_concurrent_sends: int = DEFAULT_MAX_CONCURRENT
    max_concurrent_receives: int = DEFAULT_MAX_CONCURRENT

    def for_direction(self, direction: Direction) -> int:
        if direction is Direction.SEND:
            return max(1, self.max_concurrent_sends)
        return max(1, self.max_concurrent_receives)


class ConnectionStatus(str, Enum):
    """Aggregate link state across live sessions, for the status bar."""

    READY = "ready"
    CONNECTING = "connecting"
    DIRECT = "direct"
    RELAYED = "relayed"


def _spawn_daemon(name: str, target: Callable[[], None]) -> threading.Thread:
    worker = threading.Thread(target=target, name=name, daemon=True)
    worker.start()
    return worker


@dataclass
class _Running:
    context: WorkerContext
    start: Callable[[], None]
    thread: threading.Thread | None = None


class SessionManager:
    """Creates, schedules, cancels and records transfer sessions."""

    def __init__(
        self,
        transport: Transport,
        *,
        receive_dir: Path,
        limits: TransferLimits | None = None,
        conflict_mode: ConflictMode = ConflictMode.ASK,
        ask_scope: AskScope = AskScope.PER_FILE,
        history: HistoryLog | None = None,
        follow_symlinks: bool = False,
        disk_reserve: int = DISK_RESERVE_BYTES,
        spawn: SpawnWorker | None = None,
    ) -> None:
        self.transport = transport
        self.receive_dir = receive_dir
        self.limits = limits if limits is not None else TransferLimits()
        self.conflict_mode = conflict_mode
        self.ask_scope = ask_scope
        self.history = history
        self.follow_symlinks = follow_symlinks
        self.disk_reserve = disk_reserve
        self._spawn = spawn if spawn is not None else _spawn_daemon
        self._ids = itertools.count(1)
        self._sessions: dict[int, TransferSession] = {}
        self._queues: dict[Direction, deque[int]] = {d: deque() for d in Direction}
        self._workers: dict[int, _Running] = {}
        self._events: Queue[SessionEvent] = Queue()
        self._conflicts: dict[tuple[int, int], ConflictPending] = {}
        self._closing = False

    # -- queries -----------------------------------------------------------

    def get(self, session_id: int) -> TransferSession | None:
        return self._sessions.get(session_id)

    def sessions(self) -> list[TransferSession]:
        return list(self._sessions.values())

    def live_sessions(self) -> list[TransferSession]:
        return [s for s in self._sessions.values() if not s.is_terminal]

    def running_count(self, direction: Direction) -> int:
        return sum(1 for s in self._sessions.values() if s.direction is direction and s.state.is_running)

    def queued_ids(self, direction: Direction) -> list[int]:
        return list(self._queues[direction])

    def pending_conflicts(self) -> list[ConflictPending]:
        return list(self._conflicts.values())

    def aggregate_connection(self) -> ConnectionStatus:
        running = [s for s in self._sessions.values() if s.state.is_running]
        if any(s.state is SessionState.ACTIVE and s.connection is ConnectionKind.DIRECT for s in running):
            return ConnectionStatus.DIRECT
        if any(s.state is SessionState.ACTIVE and s.connection is ConnectionKind.RELAYED for s in running):
            return ConnectionStatus.RELAYED
        if running:
            return ConnectionStatus.CONNECTING
        return ConnectionStatus.READY

    # -- commands ----------------------------------------------------------

    def start_send(self, paths: Iterable[Path], follow_symlinks: bool | None = None) -> TransferSession:
        """Expand ``paths`` into files and submit a send session.

        Raises ``EmptySelectionError`` before any session exists when the
        selection holds no files.
        """
        selection = [Path(p) for p in paths]
        if not selection:
            raise EmptySelectionError("nothing selected")
        follow = self.follow_symlinks if follow_symlinks is None else follow_symlinks
        send_items = expand_selection(selection, follow_symlinks=follow)

        session = TransferSession(
            session_id=next(self._ids),
            direction=Direction.SEND,
            items=[TransferItem(name=item.name, size=item.size, source=item.path) for item in send_items],
            source_paths=tuple(selection),
        )
        context = self._context(session.session_id)
        self._submit(session, context, lambda: run_send(context, send_items))
        return session

    def start_receive(self, ticket: str, receive_dir: Path | None = None) -> TransferSession:
        """Validate ``ticket`` and submit a receive session into ``receive_dir``.

        Raises ``InvalidTicketError`` before any session exists.
        """
        normalized = self.transport.validate_ticket(ticket.strip())
        root = receive_dir if receive_dir is not None else self.receive_dir
        session = TransferSession(
            session_id=next(self._ids),
            direction=Direction.RECEIVE,
            ticket=normalized,
            receive_root=root,
        )
        context = self._context(session.session_id)
        mode = self.conflict_mode
        scope = self.ask_scope
        reserve = self.disk_reserve
        self._submit(session, context, lambda: run_receive(context, normalized, root, mode, scope, reserve))
        return session

    def resend(self, record: HistoryRecord) -> TransferSession:
        """Start a new send of the paths a previous send offered."""
        if record.direction is not Direction.SEND or not record.source_paths:
            raise EmptySelectionError("history entry has nothing to resend")
        return self.start_send([Path(p) for p in record.source_paths])

    def cancel(self, session_id: int) -> bool:
        """Cancel a queued or running session. Returns False if it was already terminal."""
        session = self._sessions.get(session_id)
        if session is None or session.is_terminal:
            return False
        queue = self._queues[session.direction]
        if session_id in queue:
            queue.remove(session_id)
        running = self._workers.get(session_id)
        if running is not None:
            running.context.cancelled.set()
            if running.thread is None:
                del self._workers[session_id]
        session.finish(SessionState.CANCELLED)
        logger.info("session {} cancelled by user", session_id)
        self._finalize(session)
        return True

    def resolve_conflict(
        self,
        session_id: int,
        index: int,
        choice: ConflictChoice,
        apply_to_all: bool = False,
    ) -> bool:
        """Answer a pending conflict prompt. ``CANCEL`` cancels the whole session."""
        if (session_id, index) not in self._conflicts:
            return False
        if choice is ConflictChoice.CANCEL:
            return self.cancel(session_id)
        running = self._workers.get(session_id)
        if running is None:
            return False
        del self._conflicts[(session_id, index)]
        if apply_to_all or self.ask_scope is AskScope.REMAINING:
            for key in [key for key in self._conflicts if key[0] == session_id]:
                del self._conflicts[key]
        running.context.answers.put(ConflictAnswer(index, choice, apply_to_all))
        return True

    def post(self, event: SessionEvent) -> None:
        """Thread-safe entry point for worker events."""
        self._events.put(event)

    def pump(self, max_events: int | None = None) -> list[SessionEvent]:
        """Apply queued worker events on the calling (UI) thread."""
        applied: list[SessionEvent] = []
        while max_events is None or len(applied) < max_events:
            try:
                event = self._events.get_nowait()
            except Empty:
                break
            if self._apply(event):
                applied.append(event)
        return applied

    def shutdown(self, timeout: float = 2.0) -> None:
        """Cancel everything still live and wait briefly for worker threads."""
        self._closing = True
        for session in self.live_sessions():
            self.cancel(session.session_id)
        for running in list(self._workers.values()):
            if running.thread is not None:
                running.thread.join(timeout)
        self._workers.clear()

    # -- internals ---------------------------------------------------------

    def _context(self, session_id: int) -> WorkerContext:
        return WorkerContext(session_id=session_id, transport=self.transport, post=self.post)

    def _submit(self, session: TransferSession, context: WorkerContext, start: Callable[[], None]) -> None:
        self._sessions[session.session_id] = session
        self._workers[session.session_id] = _Running(context=context, start=start)
        self._queues[session.direction].append(session.session_id)
        logger.info("session {} ({}) submitted", session.session_id, session.direction.value)
        self._admit(session.direction)

    def _admit(self, direction: Direction) -> None:
        queue = self._queues[direction]
        if self._closing:
            return
        limit = self.limits.for_direction(direction)
        while queue and self.running_count(direction) < limit:
            session = self._sessions[queue.popleft()]
            session.begin_negotiating()
            running = self._workers[session.session_id]
            name = f"tuit-{direction.value}-{session.session_id}"
            running.thread = self._spawn(name, running.start)
            logger.info("session {} negotiating", session.session_id)
        for position, session_id in enumerate(queue, start=1):
            self._sessions[session_id].queue_position = position

    def _finalize(self, session: TransferSession) -> None:
        for key in [key for key in self._conflicts if key[0] == session.session_id]:
            del self._conflicts[key]
        if session.state is SessionState.FAILED:
            logger.error("session {} failed: {}", session.session_id, session.error)
        else:
            logger.info("session {} {}", session.session_id, session.state.value)
        if self.history is not None:
            self.history.record_session(session)
        self._admit(session.direction)

    def _apply(self, event: SessionEvent) -> bool:
        session = self._sessions.get(event.session_id)
        if session is None:
            return False
        if session.is_terminal:
            if isinstance(event, Finished):
                self._workers.pop(session.session_id, None)
            return False

        if isinstance(event, TicketReady):
            session.ticket = event.ticket
        elif isinstance(event, FileListed):
            session.set_items(list(event.files))
        elif isinstance(event, Connected):
            was = session.state
            session.mark_active(event.connection)
            if was is not session.state:
                logger.info("session {} active ({})", session.session_id, event.connection.value)
        elif isinstance(event, Progress):
            session.record_progress(event.transferred_bytes, event.rate_bps)
        elif isinstance(event, ItemChanged):
            session.update_item(event.index, event.state, destination=event.destination, error=event.error)
            if event.state is not ItemState.WAITING:
                self._conflicts.pop((session.session_id, event.index), None)
        elif isinstance(event, ConflictPending):
            self._conflicts[(session.session_id, event.index)] = event
        elif isinstance(event, Finished):
            session.finish(event.outcome, event.error)
            self._workers.pop(session.session_id, None)
            self._finalize(session)
        return True


__all__ = [
    "DEFAULT_MAX_CONCURRENT",
    "TransferLimits",
    "ConnectionStatus",
    "SessionManager",
]
