"""Session coordinator for the chat room.

The coordinator is the single authority over connection and message state.
It owns a ParticipantRegistry, a MessageLog and a SlidingWindowRateLimiter
(injected at construction) and drives every connection through:

    ANONYMOUS --join--> ACTIVE --disconnect--> CLOSED

Each inbound event runs as one critical section under ``self._lock``. The
state mutation and the computation of outbound events (including the
snapshot of target connections) happen inside the lock; the events are
handed to the transport only after the lock is released. A slow or broken
connection therefore never stalls the room.

Disconnect takes precedence over everything else: once a connection is
CLOSED, later join/send events for it are ignored. Closed ids are kept as
tombstones in a bounded LRU cache.

Error policy:
    - ChatError subclasses become an ``error`` event for the originator.
    - Any other exception is logged with traceback and reported to the
      originator as a generic ``server-error``.
    - A delivery failure for one connection never affects the others.
"""
import logging
import threading
import time
from collections import OrderedDict
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Union

from .errors import (
    ERROR_MESSAGES,
    ChatError,
    ErrorKind,
    RateLimitExceeded,
    UnknownConnection,
)
from .message_log import MessageLog
from .rate_limiter import SlidingWindowRateLimiter
from .registry import ParticipantRegistry
from .schemas import (
    DisconnectRequest,
    ErrorEvent,
    JoinRequest,
    JoinSuccessEvent,
    LogStatistics,
    Message,
    MessageEvent,
    OutboundEvent,
    Participant,
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    ParticipantsUpdatedEvent,
    SendRequest,
    ServerShutdownEvent,
)

logger = logging.getLogger(__name__)

# Messages included in the join-success payload
DEFAULT_JOIN_HISTORY_SIZE = 50

# Closed connection ids remembered so late events become no-ops
TOMBSTONE_CACHE_SIZE = 10000

Delivery = Tuple[List[str], OutboundEvent]


class Transport(Protocol):
    """Outbound side of a transport adapter.

    ``deliver`` must not block: implementations enqueue the event for the
    connection and return immediately.
    """

    def deliver(self, connection_id: str, event: OutboundEvent) -> None:
        ...


class SessionState(str, Enum):
    """Lifecycle state of one connection."""
    ANONYMOUS = "anonymous"
    ACTIVE = "active"
    CLOSED = "closed"


class SessionCoordinator:
    """Orchestrates join, send and disconnect for every connection.

    Note:
        One instance is created per process (see ``roomchat.main``) and
        passed to the transports. ``close()`` tears down all state.
    """

    def __init__(
        self,
        registry: ParticipantRegistry,
        message_log: MessageLog,
        rate_limiter: SlidingWindowRateLimiter,
        transport: Optional[Transport] = None,
        *,
        join_history_size: int = DEFAULT_JOIN_HISTORY_SIZE,
        rate_limit_enabled: bool = True,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.message_log = message_log
        self.rate_limiter = rate_limiter
        self.transport = transport
        self.join_history_size = join_history_size
        self.rate_limit_enabled = rate_limit_enabled
        self._clock = clock
        self._monotonic = monotonic
        self._started_at = monotonic()

        self._lock = threading.Lock()

        # connection_id -> ANONYMOUS / ACTIVE
        self._sessions: Dict[str, SessionState] = {}

        # LRU of closed connection ids
        self._closed: "OrderedDict[str, bool]" = OrderedDict()

    def set_transport(self, transport: Transport) -> None:
        self.transport = transport

    # =========================================================================
    # Connection State
    # =========================================================================

    def open(self, connection_id: str) -> None:
        """Register a new connection as ANONYMOUS."""
        with self._lock:
            if self._is_closed(connection_id):
                return
            self._sessions.setdefault(connection_id, SessionState.ANONYMOUS)
        logger.debug(f"[Coordinator] Opened connection {connection_id}")

    def state(self, connection_id: str) -> Optional[SessionState]:
        """Current state of a connection, or None if never seen."""
        with self._lock:
            if self._is_closed(connection_id):
                return SessionState.CLOSED
            return self._sessions.get(connection_id)

    def _is_closed(self, connection_id: str) -> bool:
        return connection_id in self._closed

    def _mark_closed(self, connection_id: str) -> None:
        self._sessions.pop(connection_id, None)
        self._closed[connection_id] = True
        self._closed.move_to_end(connection_id)
        while len(self._closed) > TOMBSTONE_CACHE_SIZE:
            self._closed.popitem(last=False)

    # =========================================================================
    # Inbound Events
    # =========================================================================

    def join(
        self, connection_id: str, nickname: object
    ) -> Optional[Union[JoinSuccessEvent, ErrorEvent]]:
        """Handle a join request.

        On success the joiner gets ``join-success``, the other participants
        get ``participant-joined``, and everyone gets ``participants-updated``.
        On failure the joiner gets an ``error`` and stays ANONYMOUS.

        Returns:
            The unicast reply, or None if the connection is already closed.
        """
        def operation(deliveries: List[Delivery]) -> Optional[JoinSuccessEvent]:
            if self._is_closed(connection_id):
                logger.debug(f"[Coordinator] Ignoring join on closed connection {connection_id}")
                return None
            self._sessions.setdefault(connection_id, SessionState.ANONYMOUS)

            participant = self.registry.join(connection_id, nickname)
            self._sessions[connection_id] = SessionState.ACTIVE

            everyone = self.registry.connection_ids()
            others = [cid for cid in everyone if cid != connection_id]
            nicknames = self.registry.list_nicknames()

            reply = JoinSuccessEvent(
                nickname=participant.nickname,
                participants=nicknames,
                messages=self.message_log.recent(self.join_history_size),
            )
            deliveries.append(([connection_id], reply))
            deliveries.append((others, ParticipantJoinedEvent(
                nickname=participant.nickname,
                timestamp=participant.joinedAt,
            )))
            deliveries.append((everyone, ParticipantsUpdatedEvent(participants=nicknames)))
            return reply

        return self._run(connection_id, "join", operation)

    def send(
        self, connection_id: str, body: object
    ) -> Optional[Union[MessageEvent, ErrorEvent]]:
        """Handle a chat message from an active participant.

        The stored message is broadcast to every active participant,
        the sender included.

        Returns:
            The broadcast ``message`` event, an ``error`` event, or None if
            the connection is already closed.
        """
        def operation(deliveries: List[Delivery]) -> Optional[MessageEvent]:
            if self._is_closed(connection_id):
                logger.debug(f"[Coordinator] Ignoring send on closed connection {connection_id}")
                return None

            participant = self.registry.lookup(connection_id)
            if participant is None:
                raise UnknownConnection("Join the room before sending messages")

            if self.rate_limit_enabled and not self.rate_limiter.try_acquire(
                connection_id, self._monotonic()
            ):
                raise RateLimitExceeded()

            message = self.message_log.append(connection_id, participant.nickname, body)
            event = MessageEvent.from_message(message)
            deliveries.append((self.registry.connection_ids(), event))
            return event

        return self._run(connection_id, "send", operation)

    def disconnect(self, connection_id: str) -> Optional[Participant]:
        """Close a connection. Idempotent.

        If a participant was actually removed, the remaining participants
        get ``participant-left`` followed by ``participants-updated``.

        Returns:
            The removed Participant, or None if the connection never joined
            or was already closed.
        """
        removed: List[Participant] = []

        def operation(deliveries: List[Delivery]) -> None:
            self._mark_closed(connection_id)
            participant = self.registry.leave(connection_id)
            self.rate_limiter.release(connection_id)
            if participant is None:
                return None

            removed.append(participant)
            remaining = self.registry.connection_ids()
            deliveries.append((remaining, ParticipantLeftEvent(
                nickname=participant.nickname,
                timestamp=self._clock(),
            )))
            deliveries.append((remaining, ParticipantsUpdatedEvent(
                participants=self.registry.list_nicknames(),
            )))
            return None

        self._run(connection_id, "disconnect", operation)
        return removed[0] if removed else None

    def dispatch(
        self, connection_id: str, event: Union[JoinRequest, SendRequest, DisconnectRequest]
    ) -> Optional[OutboundEvent]:
        """Route a parsed inbound event to its handler."""
        if isinstance(event, JoinRequest):
            return self.join(connection_id, event.nickname)
        if isinstance(event, SendRequest):
            return self.send(connection_id, event.body)
        self.disconnect(connection_id)
        return None

    def reject(self, connection_id: str, error: ChatError) -> ErrorEvent:
        """Report an error detected by a transport before dispatch."""
        reply = ErrorEvent(code=error.kind, message=error.message)
        self._flush([([connection_id], reply)])
        return reply

    # =========================================================================
    # Critical Section
    # =========================================================================

    def _run(
        self,
        connection_id: str,
        name: str,
        operation: Callable[[List[Delivery]], Optional[OutboundEvent]],
    ) -> Optional[OutboundEvent]:
        """Run ``operation`` under the lock, then deliver its events.

        This is the coordinator's error boundary: nothing raised by
        ``operation`` escapes.
        """
        deliveries: List[Delivery] = []
        with self._lock:
            try:
                reply = operation(deliveries)
            except ChatError as e:
                logger.info(f"[Coordinator] {name} rejected for {connection_id}: {e.kind.value}")
                reply = ErrorEvent(code=e.kind, message=e.message)
                deliveries = [([connection_id], reply)]
            except Exception:
                logger.exception(f"[Coordinator] Unexpected error during {name} for {connection_id}")
                reply = ErrorEvent(
                    code=ErrorKind.SERVER_ERROR,
                    message=ERROR_MESSAGES[ErrorKind.SERVER_ERROR],
                )
                deliveries = [([connection_id], reply)]

        self._flush(deliveries)
        return reply

    def _flush(self, deliveries: List[Delivery]) -> None:
        """Fan events out to their targets; failures are logged per target."""
        if self.transport is None:
            return
        for targets, event in deliveries:
            for target in targets:
                try:
                    self.transport.deliver(target, event)
                except Exception:
                    logger.exception(
                        f"[Coordinator] Failed to deliver {event.type} to {target}"
                    )

    # =========================================================================
    # Queries
    # =========================================================================

    def recent_messages(self, limit: int) -> List[Message]:
        with self._lock:
            return self.message_log.recent(limit)

    def messages_since(self, timestamp: float) -> List[Message]:
        with self._lock:
            return self.message_log.since(timestamp)

    def messages_between(self, start: float, end: float) -> List[Message]:
        with self._lock:
            return self.message_log.between(start, end)

    def messages_by_connection(self, connection_id: str, limit: int) -> List[Message]:
        with self._lock:
            return self.message_log.by_connection(connection_id, limit)

    def search_messages(self, term: object, limit: int) -> List[Message]:
        with self._lock:
            return self.message_log.search(term, limit)

    def statistics(self) -> LogStatistics:
        with self._lock:
            return self.message_log.statistics()

    def nicknames(self) -> List[str]:
        with self._lock:
            return self.registry.list_nicknames()

    # =========================================================================
    # Introspection & Teardown
    # =========================================================================

    def connection_info(self) -> dict:
        """Snapshot of live state for the info endpoint."""
        with self._lock:
            return {
                "connections": len(self._sessions),
                "activeParticipants": self.registry.count(),
                "maxParticipants": self.registry.max_participants,
                "totalMessages": self.message_log.count(),
                "rateLimitEntries": self.rate_limiter.tracked(),
                "uptimeSeconds": round(self._monotonic() - self._started_at, 3),
            }

    def close(self) -> None:
        """Notify every connection of shutdown and clear all state."""
        with self._lock:
            targets = list(self._sessions.keys())
            deliveries: List[Delivery] = [(targets, ServerShutdownEvent())]
            self.registry.clear()
            self.message_log.clear()
            self.rate_limiter.clear()
            self._sessions.clear()
            self._closed.clear()

        logger.info(f"[Coordinator] Shutting down, notifying {len(targets)} connection(s)")
        self._flush(deliveries)
