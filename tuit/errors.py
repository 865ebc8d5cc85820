"""Error taxonomy shared by the tree model, conflict resolver and sessions.

Everything raised by tuit derives from ``TuitError`` so the UI loop can catch
one type, surface the message, and keep running.
"""

from __future__ import annotations

from pathlib import Path


class TuitError(Exception):
    """Base class for recoverable application errors."""


class IoError(TuitError):
    """Filesystem read/write failure reported inline."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{path}: {message}")

    @classmethod
    def from_os_error(cls, path: Path | str, exc: OSError) -> IoError:
        """Build the most specific ``IoError`` subtype for ``exc``."""
        reason = exc.strerror or str(exc)
        if isinstance(exc, PermissionError):
            return PermissionDenied(path, reason)
        return cls(path, reason)


class PermissionDenied(IoError):
    """Access refused; shown as a non-fatal marker in the tree."""


class InvalidTicketError(TuitError):
    """Ticket text rejected by the transport before any session exists."""


class EmptySelectionError(TuitError):
    """Send requested with nothing that expands to a file."""


class PathTraversalError(TuitError):
    """Resolved receive destination escapes the receive root."""

    def __init__(self, name: str, root: Path) -> None:
        self.name = name
        self.root = root
        super().__init__(f"path escapes receive directory {root}: {name}")


class TransportError(TuitError):
    """Opaque failure reported by the transport; message is shown verbatim."""


class ConfigError(TuitError):
    """Config file exists but cannot be read or decoded."""
