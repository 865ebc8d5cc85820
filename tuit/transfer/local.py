"""Same-machine loopback transport over a spool directory.

A send writes ``<ticket>.json`` (the manifest: names, sizes, SHA-256 digests
and source paths) into the spool. A receive on the same machine reads the
manifest, copies each source while hashing it, and reports progress to the
sender through ``<ticket>.status.json``. Both files are replaced atomically.
"""

from __future__ import annotations

import base64
import hashlib
import json
import os
import re
import secrets
import tempfile
import threading
import time
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from loguru import logger

from ..errors import InvalidTicketError, TransportError
from .transport import (
    ConnectionKind,
    InboundFile,
    ReceiveHandle,
    SendHandle,
    SendItem,
    Transport,
    TransportDone,
    TransportProgress,
)

TICKET_PREFIX = "tuit1"
TICKET_PATTERN = re.compile(r"^tuit1[a-z2-7]{32}$")
CHUNK_SIZE = 256 * 1024
MANIFEST_VERSION = 1
STATUS_WRITE_INTERVAL = 0.1


def new_ticket() -> str:
    token = base64.b32encode(secrets.token_bytes(20)).decode("ascii").rstrip("=").lower()
    return f"{TICKET_PREFIX}{token}"


def _write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path) -> dict[str, Any] | None:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return raw if isinstance(raw, dict) else None


def _hash_file(path: Path, cancelled: threading.Event) -> str | None:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while chunk := handle.read(CHUNK_SIZE):
            if cancelled.is_set():
                return None
            digest.update(chunk)
    return digest.hexdigest()


class LocalSendHandle(SendHandle):
    def __init__(self, spool_dir: Path, ticket: str, item_count: int) -> None:
        self.ticket = ticket
        self._manifest_path = spool_dir / f"{ticket}.json"
        self._status_path = spool_dir / f"{ticket}.status.json"
        self._item_count = item_count
        self._last: tuple[int, int] | None = None

    def poll(self, timeout: float) -> TransportProgress | TransportDone | None:
        deadline = time.monotonic() + max(0.0, timeout)
        while True:
            status = _read_json(self._status_path)
            if status is not None:
                update = self._interpret(status)
                if update is not None:
                    return update
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(0.05, remaining))

    def _interpret(self, status: dict[str, Any]) -> TransportProgress | TransportDone | None:
        error = status.get("error")
        if isinstance(error, str) and error:
            return TransportDone(error=error)
        if status.get("done") is True:
            return TransportDone()
        transferred = status.get("transferred")
        completed = status.get("completed_items")
        if not isinstance(transferred, int) or not isinstance(completed, int):
            return None
        snapshot = (transferred, completed)
        if snapshot == self._last:
            return None
        self._last = snapshot
        return TransportProgress(
            transferred_bytes=transferred,
            connection=ConnectionKind.DIRECT,
            completed_items=min(completed, self._item_count),
        )

    def cancel(self) -> None:
        self.close()

    def close(self) -> None:
        self._manifest_path.unlink(missing_ok=True)
        self._status_path.unlink(missing_ok=True)


class LocalReceiveHandle(ReceiveHandle):
    def __init__(self, spool_dir: Path, ticket: str, manifest: list[dict[str, Any]]) -> None:
        self._status_path = spool_dir / f"{ticket}.status.json"
        self._manifest = manifest
        self.files = [InboundFile(name=entry["name"], size=entry["size"]) for entry in manifest]
        self.connection = ConnectionKind.DIRECT
        self._completed_bytes = 0
        self._completed_items = 0
        self._last_status_write = 0.0
        self._report(0, force=True)

    def _report(self, in_flight: int, *, force: bool = False, **extra: Any) -> None:
        now = time.monotonic()
        if not force and now - self._last_status_write < STATUS_WRITE_INTERVAL:
            return
        self._last_status_write = now
        payload: dict[str, Any] = {
            "transferred": self._completed_bytes + in_flight,
            "completed_items": self._completed_items,
        }
        payload.update(extra)
        try:
            _write_json_atomic(self._status_path, payload)
        except OSError as exc:
            logger.debug("could not update transfer status {}: {}", self._status_path, exc)

    def fetch(self, index: int, target: Path, cancelled: threading.Event) -> Iterator[int]:
        entry = self._manifest[index]
        source = Path(entry["path"])
        digest = hashlib.sha256()
        written = 0
        try:
            with source.open("rb") as reader, target.open("wb") as writer:
                while chunk := reader.read(CHUNK_SIZE):
                    if cancelled.is_set():
                        return
                    writer.write(chunk)
                    digest.update(chunk)
                    written += len(chunk)
                    self._report(written)
                    yield written
        except OSError as exc:
            raise TransportError(f"{entry['name']}: {exc.strerror or exc}") from exc

        if written != entry["size"] or digest.hexdigest() != entry["sha256"]:
            raise TransportError(f"{entry['name']}: content verification failed")
        self._completed_bytes += written
        self._completed_items += 1
        self._report(0, force=True)
        if written == 0:
            yield 0

    def skip(self, index: int) -> None:
        """Count a file the receiver declined so the sender's totals still add up."""
        self._completed_bytes += int(self._manifest[index]["size"])
        self._completed_items += 1
        self._report(0, force=True)

    def finish(self) -> None:
        self._report(0, force=True, done=True)

    def cancel(self) -> None:
        self._report(0, force=True, error="receiver cancelled the transfer")


class LocalTransport(Transport):
    """Loopback ``Transport`` for one machine; both peers share ``spool_dir``."""

    def __init__(self, spool_dir: Path) -> None:
        self.spool_dir = spool_dir

    def validate_ticket(self, ticket: str) -> str:
        normalized = "".join(ticket.split()).lower()
        if not TICKET_PATTERN.match(normalized):
            raise InvalidTicketError(f"not a valid ticket: {ticket.strip()[:48]!r}")
        return normalized

    def create_send(self, items: Sequence[SendItem], cancelled: threading.Event) -> LocalSendHandle:
        entries: list[dict[str, Any]] = []
        for item in items:
            try:
                digest = _hash_file(item.path, cancelled)
            except OSError as exc:
                raise TransportError(f"{item.name}: {exc.strerror or exc}") from exc
            if digest is None:
                raise TransportError("cancelled while preparing files")
            entries.append({"name": item.name, "size": item.size, "sha256": digest, "path": str(item.path)})

        ticket = new_ticket()
        try:
            _write_json_atomic(
                self.spool_dir / f"{ticket}.json",
                {"version": MANIFEST_VERSION, "files": entries},
            )
        except OSError as exc:
            raise TransportError(f"cannot publish transfer: {exc.strerror or exc}") from exc
        logger.debug("published {} file(s) under ticket {}", len(entries), ticket)
        return LocalSendHandle(self.spool_dir, ticket, len(entries))

    def accept_receive(self, ticket: str, cancelled: threading.Event) -> LocalReceiveHandle:
        ticket = self.validate_ticket(ticket)
        manifest = _read_json(self.spool_dir / f"{ticket}.json")
        if manifest is None:
            raise TransportError("no sender is offering this ticket")
        if manifest.get("version") != MANIFEST_VERSION:
            raise TransportError("sender uses an unsupported transfer version")
        files = manifest.get("files")
        if not isinstance(files, list) or not all(_valid_entry(entry) for entry in files):
            raise TransportError("sender sent a malformed file list")
        return LocalReceiveHandle(self.spool_dir, ticket, files)


def _valid_entry(entry: object) -> bool:
    return (
        isinstance(entry, dict)
        and isinstance(entry.get("name"), str)
        and isinstance(entry.get("size"), int)
        and isinstance(entry.get("sha256"), str)
        and isinstance(entry.get("path"), str)
    )


__all__ = [
    "TICKET_PREFIX",
    "LocalTransport",
    "LocalSendHandle",
    "LocalReceiveHandle",
    "new_ticket",
]
