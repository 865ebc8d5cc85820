"""Worker-thread bodies for send and receive sessions.

Workers own the transport handle and the files they write. They report
everything through ``post`` and never touch ``TransferSession`` objects.
"""

from __future__ import annotations

import os
import queue
import shutil
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from ..errors import TransportError
from .conflict import (
    AskScope,
    AskUser,
    ConflictChoice,
    ConflictDecision,
    ConflictMode,
    Proceed,
    Skip,
    apply_choice,
    next_available_name,
    resolve_incoming,
)
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
from .progress import SpeedTracker, format_size
from .session import ItemState, SessionState
from .transport import ReceiveHandle, SendItem, Transport, TransportDone

POLL_INTERVAL = 0.1
DISK_RESERVE_BYTES = 1024 * 1024 * 1024
PARTIAL_SUFFIX = ".tuit-part"


@dataclass(frozen=True)
class ConflictAnswer:
    index: int
    choice: ConflictChoice
    apply_to_all: bool = False


@dataclass
class WorkerContext:
    session_id: int
    transport: Transport
    post: Callable[[SessionEvent], None]
    cancelled: threading.Event = field(default_factory=threading.Event)
    answers: queue.Queue[ConflictAnswer] = field(default_factory=queue.Queue)


def run_send(ctx: WorkerContext, items: Sequence[SendItem]) -> None:
    sid = ctx.session_id
    handle = None
    try:
        handle = ctx.transport.create_send(items, ctx.cancelled)
        if ctx.cancelled.is_set():
            handle.cancel()
            ctx.post(Finished(sid, SessionState.CANCELLED))
            return
        ctx.post(TicketReady(sid, handle.ticket))

        tracker = SpeedTracker()
        connected = False
        done_items = 0
        while True:
            if ctx.cancelled.is_set():
                handle.cancel()
                ctx.post(Finished(sid, SessionState.CANCELLED))
                return
            update = handle.poll(POLL_INTERVAL)
            if update is None:
                continue
            if isinstance(update, TransportDone):
                if update.error is not None:
                    ctx.post(Finished(sid, SessionState.FAILED, update.error))
                    return
                for index in range(done_items, len(items)):
                    ctx.post(ItemChanged(sid, index, ItemState.DONE))
                ctx.post(Progress(sid, sum(item.size for item in items)))
                ctx.post(Finished(sid, SessionState.COMPLETED))
                return
            if not connected and update.connection is not None:
                connected = True
                ctx.post(Connected(sid, update.connection))
            for index in range(done_items, min(update.completed_items, len(items))):
                ctx.post(ItemChanged(sid, index, ItemState.DONE))
            done_items = max(done_items, update.completed_items)
            tracker.add_sample(update.transferred_bytes)
            rate = update.rate_bps if update.rate_bps is not None else tracker.rate_bps()
            ctx.post(Progress(sid, update.transferred_bytes, rate))
    except TransportError as exc:
        if ctx.cancelled.is_set():
            ctx.post(Finished(sid, SessionState.CANCELLED))
        else:
            logger.error("send session {} failed: {}", sid, exc)
            ctx.post(Finished(sid, SessionState.FAILED, str(exc)))
    except Exception as exc:
        logger.exception("send session {} crashed", sid)
        ctx.post(Finished(sid, SessionState.FAILED, str(exc) or type(exc).__name__))
    finally:
        if handle is not None:
            handle.close()


class _Receiver:
    """State of one receive while its files are placed."""

    def __init__(
        self,
        ctx: WorkerContext,
        handle: ReceiveHandle,
        root: Path,
        mode: ConflictMode,
        ask_scope: AskScope,
    ) -> None:
        self.ctx = ctx
        self.handle = handle
        self.root = root
        self.mode = mode
        self.ask_scope = ask_scope
        self.states = [ItemState.PENDING] * len(handle.files)
        self.errors: list[str] = []
        self.deferred: dict[int, AskUser] = {}
        self.tracker = SpeedTracker()
        self.reported = 0

    def _set(self, index: int, state: ItemState, destination: Path | None = None, error: str | None = None) -> None:
        self.states[index] = state
        if error is not None and state is ItemState.FAILED:
            self.errors.append(error)
        self.ctx.post(ItemChanged(self.ctx.session_id, index, state, destination, error))

    def _progress(self, total: int) -> None:
        if total < self.reported:
            return
        self.reported = total
        self.tracker.add_sample(total)
        self.ctx.post(Progress(self.ctx.session_id, total, self.tracker.rate_bps()))

    def place_all(self) -> None:
        for index, inbound in enumerate(self.handle.files):
            if self.ctx.cancelled.is_set():
                return
            self.drain_answers(block=False)
            decision = resolve_incoming(self.root, inbound.name, self.mode)
            self.apply(index, decision)

        while self.deferred and not self.ctx.cancelled.is_set():
            self.drain_answers(block=True)

    def apply(self, index: int, decision: ConflictDecision) -> None:
        inbound = self.handle.files[index]
        if isinstance(decision, AskUser):
            self.deferred[index] = decision
            self._set(index, ItemState.WAITING, decision.path)
            self.ctx.post(ConflictPending(self.ctx.session_id, index, inbound.name, decision.path, decision.existing))
            return
        if isinstance(decision, Skip):
            error = str(decision.error) if decision.error is not None else None
            logger.warning("skipping {} ({})", inbound.name, decision.reason)
            self.handle.skip(index)
            self._set(index, ItemState.SKIPPED, error=error or decision.reason)
            return
        self.write(index, decision)

    def drain_answers(self, *, block: bool) -> None:
        while self.deferred:
            try:
                answer = self.ctx.answers.get(timeout=POLL_INTERVAL) if block else self.ctx.answers.get_nowait()
            except queue.Empty:
                return
            block = False
            self.answer(answer)

    def answer(self, answer: ConflictAnswer) -> None:
        pending = self.deferred.pop(answer.index, None)
        if pending is None or answer.choice is ConflictChoice.CANCEL:
            return
        self.apply(answer.index, apply_choice(pending, answer.choice, root=self.root))
        if answer.apply_to_all or self.ask_scope is AskScope.REMAINING:
            mode = answer.choice.as_mode()
            if mode is None:
                return
            self.mode = mode
            for index in sorted(self.deferred):
                if self.ctx.cancelled.is_set():
                    return
                waiting = self.deferred.pop(index)
                self.apply(index, apply_choice(waiting, answer.choice, root=self.root))

    def write(self, index: int, decision: Proceed) -> None:
        inbound = self.handle.files[index]
        destination = decision.path
        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
        base = self.reported
        self._set(index, ItemState.ACTIVE, destination)
        committed = False
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            for written in self.handle.fetch(index, partial, self.ctx.cancelled):
                self._progress(base + written)
            if self.ctx.cancelled.is_set():
                return
            if not decision.overwrite and os.path.lexists(destination):
                # Something appeared at the destination while we were writing.
                destination = next_available_name(destination)
            partial.replace(destination)
            committed = True
        except (TransportError, OSError) as exc:
            message = str(exc) if isinstance(exc, TransportError) else f"{inbound.name}: {exc.strerror or exc}"
            logger.error("receive of {} failed: {}", inbound.name, message)
            self._set(index, ItemState.FAILED, destination, message)
            return
        finally:
            if not committed:
                partial.unlink(missing_ok=True)
        self._progress(base + inbound.size)
        self._set(index, ItemState.DONE, destination)


def _check_disk_space(root: Path, payload: int, reserve: int) -> str | None:
    try:
        free = shutil.disk_usage(root).free
    except OSError as exc:
        return f"cannot check free space in {root}: {exc.strerror or exc}"
    needed = payload + reserve
    if free < needed:
        return f"not enough disk space: need {format_size(needed)}, {format_size(free)} free"
    return None


def run_receive(
    ctx: WorkerContext,
    ticket: str,
    root: Path,
    mode: ConflictMode,
    ask_scope: AskScope,
    disk_reserve: int = DISK_RESERVE_BYTES,
) -> None:
    sid = ctx.session_id
    handle = None
    try:
        handle = ctx.transport.accept_receive(ticket, ctx.cancelled)
        ctx.post(FileListed(sid, tuple((f.name, f.size) for f in handle.files)))
        if ctx.cancelled.is_set():
            handle.cancel()
            ctx.post(Finished(sid, SessionState.CANCELLED))
            return
        problem = _check_disk_space(root, sum(f.size for f in handle.files), disk_reserve)
        if problem is not None:
            handle.cancel()
            ctx.post(Finished(sid, SessionState.FAILED, problem))
            return
        ctx.post(Connected(sid, handle.connection))

        receiver = _Receiver(ctx, handle, root, mode, ask_scope)
        receiver.place_all()
        if ctx.cancelled.is_set():
            handle.cancel()
            ctx.post(Finished(sid, SessionState.CANCELLED))
            return

        failed = receiver.states.count(ItemState.FAILED)
        done = receiver.states.count(ItemState.DONE)
        if failed and not done:
            handle.cancel()
            ctx.post(Finished(sid, SessionState.FAILED, receiver.errors[0]))
            return
        handle.finish()
        ctx.post(Finished(sid, SessionState.COMPLETED))
    except TransportError as exc:
        if ctx.cancelled.is_set():
            ctx.post(Finished(sid, SessionState.CANCELLED))
        else:
            logger.error("receive session {} failed: {}", sid, exc)
            ctx.post(Finished(sid, SessionState.FAILED, str(exc)))
    except Exception as exc:
        logger.exception("receive session {} crashed", sid)
        ctx.post(Finished(sid, SessionState.FAILED, str(exc) or type(exc).__name__))
    finally:
        if handle is not None:
            handle.close()


__all__ = [
    "POLL_INTERVAL",
    "DISK_RESERVE_BYTES",
    "PARTIAL_SUFFIX",
    "ConflictAnswer",
    "WorkerContext",
    "run_send",
    "run_receive",
]
