"""Write-once transfer history persisted as a JSON list."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from .transfer.session import Direction, SessionState, TransferSession

MAX_HISTORY_RECORDS = 100
MAX_STORED_FILES = 15


@dataclass(frozen=True)
class HistoryFile:
    name: str
    size: int


@dataclass(frozen=True)
class HistoryRecord:
    """Immutable snapshot of a session taken at its terminal transition."""

    session_id: int
    direction: Direction
    state: SessionState
    name: str
    total_bytes: int
    transferred_bytes: int
    started_at: float | None
    ended_at: float | None
    connection: str | None = None
    error: str | None = None
    ticket: str | None = None
    files: tuple[HistoryFile, ...] = ()
    additional_files: int = 0
    source_paths: tuple[str, ...] = ()
    receive_root: str | None = None

    @classmethod
    def from_session(cls, session: TransferSession) -> HistoryRecord:
        files = tuple(HistoryFile(item.name, item.size) for item in session.items[:MAX_STORED_FILES])
        return cls(
            session_id=session.session_id,
            direction=session.direction,
            state=session.state,
            name=session.display_name,
            total_bytes=session.total_bytes,
            transferred_bytes=session.transferred_bytes,
            started_at=session.started_at,
            ended_at=session.ended_at,
            connection=session.connection.value if session.connection is not None else None,
            error=session.error,
            ticket=session.ticket,
            files=files,
            additional_files=max(0, len(session.items) - MAX_STORED_FILES),
            source_paths=tuple(str(path) for path in session.source_paths),
            receive_root=str(session.receive_root) if session.receive_root is not None else None,
        )

    @property
    def file_count(self) -> int:
        return len(self.files) + self.additional_files

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return max(0.0, self.ended_at - self.started_at)

    def to_json(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "direction": self.direction.value,
            "state": self.state.value,
            "name": self.name,
            "total_bytes": self.total_bytes,
            "transferred_bytes": self.transferred_bytes,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "connection": self.connection,
            "error": self.error,
            "ticket": self.ticket,
            "files": [{"name": f.name, "size": f.size} for f in self.files],
            "additional_files": self.additional_files,
            "source_paths": list(self.source_paths),
            "receive_root": self.receive_root,
        }

    @classmethod
    def from_json(cls, raw: object) -> HistoryRecord | None:
        """Decode one stored record; ``None`` when it is not usable."""
        if not isinstance(raw, dict):
            return None
        try:
            direction = Direction(raw["direction"])
            state = SessionState(raw["state"])
        except (KeyError, ValueError):
            return None
        if not state.is_terminal:
            return None

        def _opt_str(key: str) -> str | None:
            value = raw.get(key)
            return value if isinstance(value, str) else None

        def _opt_float(key: str) -> float | None:
            value = raw.get(key)
            return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None

        def _int(key: str) -> int:
            value = raw.get(key)
            return value if isinstance(value, int) and not isinstance(value, bool) and value >= 0 else 0

        files: list[HistoryFile] = []
        raw_files = raw.get("files")
        if isinstance(raw_files, list):
            for entry in raw_files[:MAX_STORED_FILES]:
                if isinstance(entry, dict) and isinstance(entry.get("name"), str) and isinstance(entry.get("size"), int):
                    files.append(HistoryFile(entry["name"], entry["size"]))
        raw_sources = raw.get("source_paths")
        sources = tuple(p for p in raw_sources if isinstance(p, str)) if isinstance(raw_sources, list) else ()

        return cls(
            session_id=_int("session_id"),
            direction=direction,
            state=state,
            name=_opt_str("name") or "(unnamed)",
            total_bytes=_int("total_bytes"),
            transferred_bytes=_int("transferred_bytes"),
            started_at=_opt_float("started_at"),
            ended_at=_opt_float("ended_at"),
            connection=_opt_str("connection"),
            error=_opt_str("error"),
            ticket=_opt_str("ticket"),
            files=tuple(files),
            additional_files=_int("additional_files"),
            source_paths=sources,
            receive_root=_opt_str("receive_root"),
        )


class HistoryLog:
    """Ordered history; ``path=None`` keeps it in memory only."""

    def __init__(self, path: Path | None, max_records: int = MAX_HISTORY_RECORDS) -> None:
        self.path = path
        self.max_records = max_records
        self._records: list[HistoryRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[HistoryRecord]:
        return iter(self._records)

    @property
    def records(self) -> tuple[HistoryRecord, ...]:
        return tuple(self._records)

    def newest_first(self) -> list[HistoryRecord]:
        return list(reversed(self._records))

    def load(self) -> int:
        """Read the stored log. A corrupt file is logged and treated as empty."""
        if self.path is None:
            return 0
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return 0
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("ignoring unreadable history {}: {}", self.path, exc)
            return 0
        if not isinstance(raw, list):
            logger.warning("ignoring history {}: expected a JSON list", self.path)
            return 0
        records = [record for record in (HistoryRecord.from_json(item) for item in raw) if record is not None]
        self._records = records[-self.max_records :]
        return len(self._records)

    def record_session(self, session: TransferSession) -> HistoryRecord:
        record = HistoryRecord.from_session(session)
        self.append(record)
        return record

    def append(self, record: HistoryRecord) -> None:
        self._records.append(record)
        if len(self._records) > self.max_records:
            del self._records[: len(self._records) - self.max_records]
        self._save()

    def _save(self) -> None:
        if self.path is None:
            return
        payload = [record.to_json() for record in self._records]
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".history.", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            logger.error("could not save history to {}: {}", self.path, exc)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)


__all__ = [
    "MAX_HISTORY_RECORDS",
    "MAX_STORED_FILES",
    "HistoryFile",
    "HistoryRecord",
    "HistoryLog",
]
