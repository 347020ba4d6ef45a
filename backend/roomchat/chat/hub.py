"""WebSocket transport adapter.

The hub is the coordinator's ``Transport`` for push clients. Every
registered WebSocket gets a bounded outbox (``asyncio.Queue``) and a writer
task that drains it in order. ``deliver()`` only enqueues, so the
coordinator never waits on a socket.

A connection whose outbox overflows cannot keep up with the room; it is
closed with code 1008 (policy violation) and reported through the
``on_overflow`` callback so the coordinator can disconnect it.

Thread Safety:
    ``deliver()`` may be called from any thread. Calls from outside the
    hub's event loop are handed over with ``call_soon_threadsafe``.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Set

from fastapi import WebSocket

from .schemas import OutboundEvent

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 256

# WebSocket close code for connections that fall too far behind
OVERFLOW_CLOSE_CODE = 1008


class _Outbox:
    """Pending frames and the writer task for one connection."""

    def __init__(self, connection_id: str, websocket: WebSocket, maxsize: int) -> None:
        self.connection_id = connection_id
        self.websocket = websocket
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=maxsize)
        self.writer: Optional[asyncio.Task] = None
        self.overflowed = False


class ConnectionHub:
    """Per-connection outboxes for WebSocket clients."""

    def __init__(
        self,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
        on_overflow: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.outbox_size = outbox_size
        self.on_overflow = on_overflow
        self._outboxes: Dict[str, _Outbox] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # Forced-close tasks still running
        self._closing: Set[asyncio.Task] = set()

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        """Create the outbox and start its writer. Must run inside the loop."""
        self._loop = asyncio.get_running_loop()
        outbox = _Outbox(connection_id, websocket, self.outbox_size)
        outbox.writer = asyncio.create_task(self._writer(outbox))
        self._outboxes[connection_id] = outbox
        logger.debug(f"[Hub] Registered {connection_id} ({len(self._outboxes)} sockets)")

    async def unregister(self, connection_id: str) -> None:
        """Stop the writer and drop the outbox. Idempotent."""
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is None:
            return
        await self._stop_writer(outbox)
        logger.debug(f"[Hub] Unregistered {connection_id} ({len(self._outboxes)} sockets)")

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._outboxes

    def size(self) -> int:
        return len(self._outboxes)

    def deliver(self, connection_id: str, event: OutboundEvent) -> None:
        """Enqueue ``event`` for ``connection_id`` without blocking."""
        payload = event.model_dump(mode="json")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is not None and running is not self._loop:
            self._loop.call_soon_threadsafe(self._enqueue, connection_id, payload)
        else:
            self._enqueue(connection_id, payload)

    def _enqueue(self, connection_id: str, payload: Dict[str, Any]) -> None:
        outbox = self._outboxes.get(connection_id)
        if outbox is None or outbox.overflowed:
            # Polling clients and sockets that already went away
            return
        try:
            outbox.queue.put_nowait(payload)
        except asyncio.QueueFull:
            outbox.overflowed = True
            logger.warning(
                f"[Hub] Outbox full for {connection_id} "
                f"({self.outbox_size} pending), forcing disconnect"
            )
            task = asyncio.ensure_future(self._force_close(outbox))
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)

    async def _writer(self, outbox: _Outbox) -> None:
        """Drain the outbox into the socket until the socket fails."""
        while True:
            payload = await outbox.queue.get()
            try:
                if not await self._safe_send(outbox.websocket, payload):
                    return
            finally:
                outbox.queue.task_done()

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"[Hub] Failed to send to connection: {e}")
            return False

    async def _force_close(self, outbox: _Outbox) -> None:
        if self.on_overflow is not None:
            try:
                self.on_overflow(outbox.connection_id)
            except Exception:
                logger.exception(f"[Hub] Overflow handler failed for {outbox.connection_id}")
        await self.unregister(outbox.connection_id)
        try:
            await outbox.websocket.close(code=OVERFLOW_CLOSE_CODE)
        except Exception as e:
            logger.debug(f"[Hub] Close after overflow failed: {e}")

    async def _stop_writer(self, outbox: _Outbox) -> None:
        if outbox.writer is None or outbox.writer.done():
            return
        outbox.writer.cancel()
        try:
            await outbox.writer
        except asyncio.CancelledError:
            pass

    async def flush(self, connection_id: str, timeout: float = 1.0) -> None:
        """Wait (bounded) until the connection's pending frames are written."""
        outbox = self._outboxes.get(connection_id)
        if outbox is None or outbox.writer is None or outbox.writer.done():
            return
        try:
            await asyncio.wait_for(outbox.queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.debug(f"[Hub] Flush timed out for {connection_id}")

    async def close(self, timeout: float = 1.0) -> None:
        """Flush what can be flushed, then stop every writer.

        Forced closes still in flight are awaited.
        """
        for connection_id in list(self._outboxes):
            await self.flush(connection_id, timeout)
        for connection_id in list(self._outboxes):
            await self.unregister(connection_id)
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
