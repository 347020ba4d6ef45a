"""Bounded, time-ordered message log.

Keeps the most recent ``max_messages`` messages in insertion order and
evicts the oldest first (FIFO). Reads never affect retention.

Bodies are validated and HTML-escaped on append, so every stored message is
already in display form.
"""
import logging
import time
import uuid
from collections import Counter, deque
from typing import Callable, Deque, List

from .schemas import LogStatistics, Message
from .validation import MESSAGE_MAX_LENGTH, escape_html, normalize_message

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 100

# Defaults mirror the history endpoints
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_CONNECTION_LIMIT = 20


class MessageLog:
    """In-memory FIFO store of recent chat messages."""

    def __init__(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        max_message_length: int = MESSAGE_MAX_LENGTH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_messages = max_messages
        self.max_message_length = max_message_length
        self._clock = clock
        self._messages: Deque[Message] = deque()

    def append(self, connection_id: str, nickname: str, raw_body: object) -> Message:
        """Validate, escape and store a new message.

        Args:
            connection_id: Sender's connection identity.
            nickname: Sender's nickname.
            raw_body: Message body as received from the client.

        Returns:
            The stored Message.

        Raises:
            InvalidMessage: If the body fails validation.
        """
        body = normalize_message(raw_body, self.max_message_length)
        message = Message(
            id=str(uuid.uuid4()),
            connectionId=connection_id,
            nickname=nickname.strip(),
            body=escape_html(body),
            timestamp=self._clock(),
        )
        self._messages.append(message)

        evicted = 0
        while len(self._messages) > self.max_messages:
            self._messages.popleft()
            evicted += 1
        if evicted:
            logger.debug(f"[MessageLog] Evicted {evicted} old message(s)")

        return message

    def recent(self, limit: int) -> List[Message]:
        """Return the last ``limit`` messages, oldest first.

        ``limit`` is clamped to at least 1.
        """
        limit = max(1, limit)
        if limit >= len(self._messages):
            return list(self._messages)
        return list(self._messages)[-limit:]

    def since(self, timestamp: float) -> List[Message]:
        """Messages with a timestamp strictly greater than ``timestamp``."""
        return [msg for msg in self._messages if msg.timestamp > timestamp]

    def between(self, start: float, end: float) -> List[Message]:
        """Messages with ``start <= timestamp <= end``."""
        return [msg for msg in self._messages if start <= msg.timestamp <= end]

    def by_connection(
        self, connection_id: str, limit: int = DEFAULT_CONNECTION_LIMIT
    ) -> List[Message]:
        """Latest messages sent from one connection, oldest first."""
        matches = [msg for msg in self._messages if msg.connectionId == connection_id]
        return matches[-limit:] if limit > 0 else []

    def search(self, term: object, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Message]:
        """Case-insensitive substring search over body and nickname.

        Returns most-recent-first, capped at ``limit``. An empty or
        whitespace-only term matches nothing.
        """
        if not isinstance(term, str):
            return []
        needle = term.strip().lower()
        if not needle or limit <= 0:
            return []

        results: List[Message] = []
        for msg in reversed(self._messages):
            if needle in msg.body.lower() or needle in msg.nickname.lower():
                results.append(msg)
                if len(results) >= limit:
                    break
        return results

    def statistics(self) -> LogStatistics:
        if not self._messages:
            return LogStatistics()

        total_length = sum(len(msg.body) for msg in self._messages)
        per_nickname = Counter(msg.nickname for msg in self._messages)
        return LogStatistics(
            count=len(self._messages),
            oldest=self._messages[0].timestamp,
            newest=self._messages[-1].timestamp,
            avgLength=round(total_length / len(self._messages)),
            perNicknameCounts=dict(per_nickname),
        )

    def count(self) -> int:
        return len(self._messages)

    def clear(self) -> None:
        self._messages.clear()
        logger.info("[MessageLog] All messages cleared")
