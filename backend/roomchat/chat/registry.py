"""Participant registry.

Tracks the active participants of the room keyed by connection identity.
Nicknames are unique case-insensitively among active participants, and the
room holds at most ``max_participants`` people.

Listings are ordered by join time. Two joins may share a timestamp at low
clock resolution, so each participant also carries a monotonic sequence
number that breaks ties in arrival order.

The registry does no locking of its own; the session coordinator serializes
all access.
"""
import itertools
import logging
import time
from typing import Callable, Dict, List, Optional

from .errors import NicknameTaken, RoomFull, UnknownConnection
from .schemas import Participant
from .validation import NICKNAME_MAX_LENGTH, normalize_nickname

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARTICIPANTS = 50


class ParticipantRegistry:
    """In-memory registry of active participants."""

    def __init__(
        self,
        max_participants: int = DEFAULT_MAX_PARTICIPANTS,
        max_nickname_length: int = NICKNAME_MAX_LENGTH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_participants = max_participants
        self.max_nickname_length = max_nickname_length
        self._clock = clock
        self._seq = itertools.count()

        # connection_id -> Participant
        self._participants: Dict[str, Participant] = {}

    def join(self, connection_id: str, raw_nickname: object) -> Participant:
        """Register a participant for a connection.

        Args:
            connection_id: Transport-assigned connection identity.
            raw_nickname: Nickname as received from the client.

        Returns:
            The newly created Participant.

        Raises:
            InvalidNickname: If the nickname fails validation.
            NicknameTaken: If an active participant already uses it
                (case-insensitive).
            RoomFull: If the room is at capacity.
            UnknownConnection: If the connection has already joined.
        """
        nickname = normalize_nickname(raw_nickname, self.max_nickname_length)

        if connection_id in self._participants:
            raise UnknownConnection("This connection has already joined")

        if self.is_nickname_taken(nickname):
            raise NicknameTaken()

        if len(self._participants) >= self.max_participants:
            raise RoomFull()

        participant = Participant(
            connectionId=connection_id,
            nickname=nickname,
            joinedAt=self._clock(),
            seq=next(self._seq),
        )
        self._participants[connection_id] = participant
        logger.info(
            f"[Registry] {nickname} joined ({len(self._participants)}/{self.max_participants})"
        )
        return participant

    def leave(self, connection_id: str) -> Optional[Participant]:
        """Remove a participant. Returns None if it was not registered."""
        participant = self._participants.pop(connection_id, None)
        if participant:
            logger.info(f"[Registry] {participant.nickname} left")
        return participant

    def lookup(self, connection_id: str) -> Optional[Participant]:
        return self._participants.get(connection_id)

    def is_nickname_taken(self, nickname: str) -> bool:
        """Case-insensitive check against active nicknames."""
        wanted = nickname.strip().lower()
        return any(p.nickname.lower() == wanted for p in self._participants.values())

    def participants(self) -> List[Participant]:
        """Snapshot of all participants in join order."""
        return sorted(self._participants.values(), key=lambda p: (p.joinedAt, p.seq))

    def list_nicknames(self) -> List[str]:
        return [p.nickname for p in self.participants()]

    def connection_ids(self) -> List[str]:
        return [p.connectionId for p in self.participants()]

    def count(self) -> int:
        return len(self._participants)

    def clear(self) -> None:
        """Drop every participant (used on shutdown)."""
        self._participants.clear()
