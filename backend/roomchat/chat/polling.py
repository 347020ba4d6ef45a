"""Session expiry for HTTP-polling clients.

Polling clients never signal a socket close, so each polling connection
owns one scheduled expiry callback. Any request from the client re-arms
it; an explicit leave cancels it. When it fires, the connection is
disconnected through the coordinator exactly as if a socket had dropped.
"""
import asyncio
import logging
from typing import Dict, Optional

from .coordinator import SessionCoordinator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


class PollingSessions:
    """Tracks polling connections and their idle-expiry timers."""

    def __init__(
        self,
        coordinator: SessionCoordinator,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.coordinator = coordinator
        self.timeout_seconds = timeout_seconds
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def start(self, connection_id: str) -> None:
        """Begin tracking a polling connection. Must run inside the loop."""
        self._arm(connection_id)
        logger.info(f"[Poll] Session started for {connection_id}")

    def touch(self, connection_id: str) -> bool:
        """Re-arm the expiry timer. Returns False for unknown connections."""
        if connection_id not in self._timers:
            return False
        self._arm(connection_id)
        return True

    def stop(self, connection_id: str) -> bool:
        """Cancel the timer. Returns True if the connection was tracked."""
        handle = self._timers.pop(connection_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_tracked(self, connection_id: str) -> bool:
        return connection_id in self._timers

    def count(self) -> int:
        return len(self._timers)

    def _arm(self, connection_id: str) -> None:
        handle: Optional[asyncio.TimerHandle] = self._timers.pop(connection_id, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._timers[connection_id] = loop.call_later(
            self.timeout_seconds, self._expire, connection_id
        )

    def _expire(self, connection_id: str) -> None:
        self._timers.pop(connection_id, None)
        logger.info(
            f"[Poll] Session {connection_id} idle for {self.timeout_seconds}s, disconnecting"
        )
        self.coordinator.disconnect(connection_id)

    def close(self) -> None:
        """Cancel every pending timer."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
