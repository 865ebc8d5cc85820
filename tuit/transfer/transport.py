"""Boundary between the session core and the blob-transfer engine.

The core never looks inside tickets; it hands them to ``Transport`` and works
with the handles it gets back. Handles are driven from one worker thread each.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ConnectionKind(str, Enum):
    """How the peer is reached; reported by the transport, never chosen by us."""

    DIRECT = "direct"
    RELAYED = "relayed"


@dataclass(frozen=True)
class SendItem:
    """One file offered to a peer under its ``/``-separated relative ``name``."""

    name: str
    path: Path
    size: int


@dataclass(frozen=True)
class InboundFile:
    name: str
    size: int


@dataclass(frozen=True)
class TransportProgress:
    """Sender-side progress snapshot.

    ``transferred_bytes`` is cumulative for the whole offer and
    ``completed_items`` counts items the peer has fully received.
    """

    transferred_bytes: int
    rate_bps: int | None = None
    connection: ConnectionKind | None = None
    completed_items: int = 0


@dataclass(frozen=True)
class TransportDone:
    """Terminal signal; ``error is None`` means verified full receipt."""

    error: str | None = None


class SendHandle(ABC):
    """A negotiated outbound offer."""

    ticket: str

    @abstractmethod
    def poll(self, timeout: float) -> TransportProgress | TransportDone | None:
        """Wait up to ``timeout`` seconds for the next update."""

    @abstractmethod
    def cancel(self) -> None:
        """Withdraw the offer; peers see the transfer end."""

    def close(self) -> None:
        """Release transport resources. Safe to call more than once."""


class ReceiveHandle(ABC):
    """An accepted inbound offer whose files are fetched one at a time."""

    files: Sequence[InboundFile]
    connection: ConnectionKind

    @abstractmethod
    def fetch(self, index: int, target: Path, cancelled: threading.Event) -> Iterator[int]:
        """Write file ``index`` to ``target``, yielding bytes written so far.

        Stops early without raising when ``cancelled`` is set. Raises
        ``TransportError`` when the content cannot be delivered or verified.
        """

    def skip(self, index: int) -> None:
        """Tell the sender file ``index`` was declined by the receiver."""

    @abstractmethod
    def finish(self) -> None:
        """Acknowledge full receipt to the sender."""

    @abstractmethod
    def cancel(self) -> None:
        """Abort the receive; the sender observes a failure."""

    def close(self) -> None:
        """Release transport resources. Safe to call more than once."""


class Transport(ABC):
    """Factory for send/receive handles plus ticket validation."""

    @abstractmethod
    def validate_ticket(self, ticket: str) -> str:
        """Return the normalized ticket or raise ``InvalidTicketError``."""

    @abstractmethod
    def create_send(self, items: Sequence[SendItem], cancelled: threading.Event) -> SendHandle:
        """Prepare ``items`` for a peer and return a handle carrying the ticket.

        May block while content is imported; checks ``cancelled`` as it goes.
        """

    @abstractmethod
    def accept_receive(self, ticket: str, cancelled: threading.Event) -> ReceiveHandle:
        """Connect to the sender behind ``ticket`` and learn its file list."""


__all__ = [
    "ConnectionKind",
    "SendItem",
    "InboundFile",
    "TransportProgress",
    "TransportDone",
    "SendHandle",
    "ReceiveHandle",
    "Transport",
]
