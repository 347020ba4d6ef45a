"""Pydantic schemas for the chat core.

Data models:
    - Participant: an active member of the room
    - Message: a stored, display-ready chat message
    - LogStatistics: aggregate view over the message log

Events are closed tagged variants keyed on ``type``. Inbound events are
validated at the transport boundary with ``parse_inbound`` before they reach
the coordinator; outbound events serialize to the wire form with
``model_dump()``.

Inbound:
    - join: {type, nickname}
    - send: {type, body}
    - disconnect: {type}

Outbound:
    - connected, join-success, error (unicast)
    - participant-joined, participant-left, participants-updated,
      message, server-shutdown (broadcast)
"""
import time
import uuid
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import ErrorKind, InvalidMessage, InvalidNickname


# =============================================================================
# Data Models
# =============================================================================


class Participant(BaseModel):
    """An active participant in the room.

    Attributes:
        connectionId: Opaque transport-assigned connection identity.
        nickname: Trimmed, validated display name.
        joinedAt: Unix timestamp (seconds) of the successful join.
        seq: Monotonic join sequence, used to break joinedAt ties.
    """
    connectionId: str = Field(..., description="Connection identity")
    nickname: str = Field(..., description="Display name")
    joinedAt: float = Field(default_factory=time.time, description="Join time")
    seq: int = Field(default=0, exclude=True)


class Message(BaseModel):
    """A stored chat message.

    ``body`` is already HTML-escaped; it is the display form and must not be
    escaped again on read.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique message ID")
    connectionId: str = Field(..., description="Sender's connection ID")
    nickname: str = Field(..., description="Sender's nickname at send time")
    body: str = Field(..., description="Escaped message body")
    timestamp: float = Field(default_factory=time.time, description="Seconds since epoch")

    model_config = {"frozen": True}


class LogStatistics(BaseModel):
    """Aggregate statistics over the retained messages."""
    count: int = 0
    oldest: Optional[float] = None
    newest: Optional[float] = None
    avgLength: int = 0
    perNicknameCounts: Dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Inbound Events
# =============================================================================


class JoinRequest(BaseModel):
    type: Literal["join"]
    nickname: str


class SendRequest(BaseModel):
    type: Literal["send"]
    body: str


class DisconnectRequest(BaseModel):
    type: Literal["disconnect"]


InboundEvent = Annotated[
    Union[JoinRequest, SendRequest, DisconnectRequest],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter = TypeAdapter(InboundEvent)


def parse_inbound(data: Any) -> Union[JoinRequest, SendRequest, DisconnectRequest]:
    """Validate a raw inbound payload into a tagged event.

    Raises:
        InvalidNickname: Malformed ``join`` payload.
        InvalidMessage: Malformed ``send`` payload or unknown event type.
    """
    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError:
        event_type = data.get("type") if isinstance(data, dict) else None
        if event_type == "join":
            raise InvalidNickname()
        if event_type == "send":
            raise InvalidMessage()
        raise InvalidMessage(f"Unsupported event type: {event_type!r}")


# =============================================================================
# Outbound Events
# =============================================================================


class ConnectedEvent(BaseModel):
    type: Literal["connected"] = "connected"
    connectionId: str


class JoinSuccessEvent(BaseModel):
    type: Literal["join-success"] = "join-success"
    nickname: str
    participants: List[str]
    messages: List[Message]


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    code: ErrorKind
    message: str


class ParticipantJoinedEvent(BaseModel):
    type: Literal["participant-joined"] = "participant-joined"
    nickname: str
    timestamp: float


class ParticipantLeftEvent(BaseModel):
    type: Literal["participant-left"] = "participant-left"
    nickname: str
    timestamp: float


class ParticipantsUpdatedEvent(BaseModel):
    type: Literal["participants-updated"] = "participants-updated"
    participants: List[str]


class MessageEvent(BaseModel):
    type: Literal["message"] = "message"
    id: str
    connectionId: str
    nickname: str
    body: str
    timestamp: float

    @classmethod
    def from_message(cls, message: Message) -> "MessageEvent":
        return cls(**message.model_dump())


class ServerShutdownEvent(BaseModel):
    type: Literal["server-shutdown"] = "server-shutdown"
    message: str = "The server is shutting down for maintenance"


OutboundEvent = Union[
    ConnectedEvent,
    JoinSuccessEvent,
    ErrorEvent,
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    ParticipantsUpdatedEvent,
    MessageEvent,
    ServerShutdownEvent,
]


# =============================================================================
# Polling Request Bodies
# =============================================================================


class PollJoinBody(BaseModel):
    """Body for POST /api/chat/join."""
    nickname: Any = Field(default=None, description="Requested nickname")


class PollSendBody(BaseModel):
    """Body for POST /api/chat/send."""
    connectionId: str = Field(..., description="Connection ID returned by join")
    body: Any = Field(default=None, description="Message body")


class PollLeaveBody(BaseModel):
    """Body for POST /api/chat/leave."""
    connectionId: str = Field(..., description="Connection ID returned by join")
