"""Per-connection sliding-window rate limiter.

Each connection owns a deque of recent send instants. A send is allowed
when fewer than ``max_events`` instants fall inside the trailing window.
Rejected attempts are not recorded, so a client that keeps hammering does
not extend its own penalty.

The check-and-record step is atomic under a lock, which keeps the limiter
correct even if a transport delivers two sends for one connection from
different threads.
"""
import threading
import time
from collections import deque
from typing import Deque, Dict, Optional

DEFAULT_MAX_EVENTS = 3
DEFAULT_WINDOW_SECONDS = 1.0


class SlidingWindowRateLimiter:
    """Sliding-window counter keyed by connection identity."""

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def try_acquire(self, connection_id: str, now: Optional[float] = None) -> bool:
        """Record a send for ``connection_id`` if the quota allows it.

        Args:
            connection_id: Connection identity.
            now: Monotonic instant of the attempt (defaults to
                ``time.monotonic()``).

        Returns:
            True if the send is allowed and was recorded, False otherwise.
        """
        if now is None:
            now = time.monotonic()

        with self._lock:
            window = self._windows.setdefault(connection_id, deque())

            while window and now - window[0] >= self.window_seconds:
                window.popleft()

            if len(window) >= self.max_events:
                return False

            window.append(now)
            return True

    def release(self, connection_id: str) -> None:
        """Forget a connection's window (called on disconnect)."""
        with self._lock:
            self._windows.pop(connection_id, None)

    def tracked(self) -> int:
        """Number of connections that currently hold a window."""
        with self._lock:
            return len(self._windows)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
