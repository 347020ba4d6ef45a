"""Error kinds and exceptions for the chat core.

Every failure that can be reported to a client maps to one ``ErrorKind``.
The wire code is the enum value; the user-facing text comes from
``ERROR_MESSAGES`` so clients never see internal details.

Errors are always delivered to the originating connection only. They are
never broadcast.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Wire codes for chat errors.

    Attributes:
        INVALID_NICKNAME: Nickname failed shape validation.
        NICKNAME_TAKEN: An active participant already uses the nickname.
        ROOM_FULL: The participant cap has been reached.
        INVALID_MESSAGE: Message body failed validation.
        RATE_LIMIT_EXCEEDED: Sender exceeded the per-second message quota.
        CONNECTION_ERROR: Operation referenced an unknown or stale connection.
        SERVER_ERROR: Unexpected internal fault.
    """
    INVALID_NICKNAME = "invalid-nickname"
    NICKNAME_TAKEN = "nickname-taken"
    ROOM_FULL = "room-full"
    INVALID_MESSAGE = "invalid-message"
    RATE_LIMIT_EXCEEDED = "rate-limit-exceeded"
    CONNECTION_ERROR = "connection-error"
    SERVER_ERROR = "server-error"


ERROR_MESSAGES = {
    ErrorKind.INVALID_NICKNAME: (
        "Nickname may only use letters, digits, "
        "spaces, hyphens or underscores"
    ),
    ErrorKind.NICKNAME_TAKEN: "This nickname is already in use",
    ErrorKind.ROOM_FULL: "The chat room is full. Please try again later",
    ErrorKind.INVALID_MESSAGE: "Message body is not valid",
    ErrorKind.RATE_LIMIT_EXCEEDED: "You are sending messages too quickly. Please slow down",
    ErrorKind.CONNECTION_ERROR: "Connection error. Please reconnect and join again",
    ErrorKind.SERVER_ERROR: "A server error occurred",
}


class ChatError(Exception):
    """Base exception for errors surfaced to a chat client."""

    kind: ErrorKind = ErrorKind.SERVER_ERROR

    def __init__(self, message: Optional[str] = None):
        self.message = message or ERROR_MESSAGES[self.kind]
        super().__init__(self.message)


class InvalidNickname(ChatError):
    """Raised when a nickname fails validation."""
    kind = ErrorKind.INVALID_NICKNAME


class NicknameTaken(ChatError):
    """Raised when a nickname collides with an active participant."""
    kind = ErrorKind.NICKNAME_TAKEN


class RoomFull(ChatError):
    """Raised when the room is at capacity."""
    kind = ErrorKind.ROOM_FULL


class InvalidMessage(ChatError):
    """Raised when a message body fails validation."""
    kind = ErrorKind.INVALID_MESSAGE


class RateLimitExceeded(ChatError):
    """Raised when a sender exceeds the rate limit."""
    kind = ErrorKind.RATE_LIMIT_EXCEEDED


class UnknownConnection(ChatError):
    """Raised for operations on a connection that has not joined."""
    kind = ErrorKind.CONNECTION_ERROR
