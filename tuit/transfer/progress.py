"""Rate sampling and byte/duration formatting for transfer progress."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable

DEFAULT_WINDOW_SECONDS = 5.0
MIN_SPAN_SECONDS = 0.1


class SpeedTracker:
    """Rolling-window throughput estimate from cumulative byte samples."""

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._samples: deque[tuple[float, int]] = deque()

    def add_sample(self, total_bytes: int) -> None:
        now = self._clock()
        self._samples.append((now, total_bytes))
        while self._samples and now - self._samples[0][0] > self.window_seconds:
            self._samples.popleft()

    def rate_bps(self) -> int:
        """Bytes/second across the window; 0 until two samples span 100 ms."""
        if len(self._samples) < 2:
            return 0
        t1, b1 = self._samples[0]
        t2, b2 = self._samples[-1]
        span = t2 - t1
        if span <= MIN_SPAN_SECONDS:
            return 0
        return int(max(0, b2 - b1) / span)


def format_size(num_bytes: int | None) -> str:
    """Binary-unit size label, e.g. ``0 B``, ``1.5 KiB``, ``3.0 GiB``."""
    if num_bytes is None:
        return "-"
    value = float(max(0, num_bytes))
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if value < 1024.0 or unit == "TiB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} TiB"


def format_rate(rate_bps: int) -> str:
    return f"{format_size(rate_bps)}/s"


def format_duration(seconds: float | int | None) -> str:
    """Compact ``1h02m``, ``4m05s``, ``12s`` style duration label."""
    if seconds is None:
        return "--"
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


__all__ = [
    "DEFAULT_WINDOW_SECONDS",
    "SpeedTracker",
    "format_size",
    "format_rate",
    "format_duration",
]
