"""Transfer sessions: state machine, scheduling, conflict policy and transports.

This package contains non-UI transfer primitives:
- ``TransferSession`` lifecycle and per-item tracking
- ``SessionManager`` concurrency limits, FIFO queues and event pumping
- the per-file conflict resolver for receives
- the ``Transport`` boundary and the same-machine ``LocalTransport``
"""

from __future__ import annotations

from .conflict import (
    AskScope,
    AskUser,
    ConflictChoice,
    ConflictDecision,
    ConflictMode,
    ExistingFile,
    Proceed,
    Skip,
    apply_choice,
    destination_for,
    ensure_within_root,
    existing_metadata,
    next_available_name,
    resolve,
    resolve_incoming,
)
from .events import ConflictPending, Finished, SessionEvent
from .expand import expand_selection
from .local import LocalTransport
from .manager import ConnectionStatus, SessionManager, TransferLimits
from .progress import SpeedTracker, format_duration, format_rate, format_size
from .session import Direction, ItemState, SessionState, TransferItem, TransferSession
from .transport import ConnectionKind, InboundFile, SendItem, Transport

__all__ = [
    "AskScope",
    "AskUser",
    "ConflictChoice",
    "ConflictDecision",
    "ConflictMode",
    "ExistingFile",
    "Proceed",
    "Skip",
    "apply_choice",
    "destination_for",
    "ensure_within_root",
    "existing_metadata",
    "next_available_name",
    "resolve",
    "resolve_incoming",
    "ConflictPending",
    "Finished",
    "SessionEvent",
    "expand_selection",
    "LocalTransport",
    "ConnectionStatus",
    "SessionManager",
    "TransferLimits",
    "SpeedTracker",
    "format_duration",
    "format_rate",
    "format_size",
    "Direction",
    "ItemState",
    "SessionState",
    "TransferItem",
    "TransferSession",
    "ConnectionKind",
    "InboundFile",
    "SendItem",
    "Transport",
]
