"""HTTP polling interface for clients without push capability.

Endpoints (all under /api/chat):
    POST /join          - Join the room, returns a connectionId
    POST /send          - Post a message as a joined connection
    POST /leave         - Leave the room (idempotent)
    GET  /messages      - Messages newer than ``since`` plus participants
    GET  /participants  - Current participant list

Semantics match the WebSocket protocol; polling clients simply read the
broadcasts back through ``GET /messages`` instead of receiving them.
Polling sessions expire after a period without requests (see
``PollingSessions``).
"""
import logging
import time
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from .coordinator import SessionCoordinator
from .dependencies import get_coordinator, get_polling_sessions
from .errors import ERROR_MESSAGES, ErrorKind
from .polling import PollingSessions
from .schemas import ErrorEvent, PollJoinBody, PollLeaveBody, PollSendBody

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat-polling"])

STATUS_CODES = {
    ErrorKind.INVALID_NICKNAME: 400,
    ErrorKind.NICKNAME_TAKEN: 409,
    ErrorKind.ROOM_FULL: 503,
    ErrorKind.INVALID_MESSAGE: 400,
    ErrorKind.RATE_LIMIT_EXCEEDED: 429,
    ErrorKind.CONNECTION_ERROR: 404,
    ErrorKind.SERVER_ERROR: 500,
}


def _error_response(error: ErrorEvent) -> JSONResponse:
    return JSONResponse(
        {"code": error.code.value, "message": error.message},
        status_code=STATUS_CODES[error.code],
    )


def _connection_error() -> JSONResponse:
    return _error_response(ErrorEvent(
        code=ErrorKind.CONNECTION_ERROR,
        message=ERROR_MESSAGES[ErrorKind.CONNECTION_ERROR],
    ))


@router.post("/join")
async def poll_join(
    body: PollJoinBody,
    coordinator: SessionCoordinator = Depends(get_coordinator),
    sessions: PollingSessions = Depends(get_polling_sessions),
) -> JSONResponse:
    """Join the room as a polling client.

    Returns:
        200 with {connectionId, nickname, participants, messages}, or an
        error body {code, message} with 400/409/503/500.
    """
    connection_id = str(uuid.uuid4())
    reply = coordinator.join(connection_id, body.nickname)

    if reply is None or isinstance(reply, ErrorEvent):
        # Never joined: discard the anonymous session
        coordinator.disconnect(connection_id)
        return _error_response(reply) if reply is not None else _connection_error()

    sessions.start(connection_id)
    logger.info(f"[Poll] {reply.nickname} joined as {connection_id}")
    payload = reply.model_dump(mode="json", exclude={"type"})
    return JSONResponse({"connectionId": connection_id, **payload})


@router.post("/send")
async def poll_send(
    body: PollSendBody,
    coordinator: SessionCoordinator = Depends(get_coordinator),
    sessions: PollingSessions = Depends(get_polling_sessions),
) -> JSONResponse:
    """Post a message from a polling connection."""
    if not sessions.touch(body.connectionId):
        return _connection_error()

    reply = coordinator.send(body.connectionId, body.body)
    if reply is None:
        return _connection_error()
    if isinstance(reply, ErrorEvent):
        return _error_response(reply)

    return JSONResponse({
        "success": True,
        "message": reply.model_dump(mode="json", exclude={"type"}),
    })


@router.post("/leave")
async def poll_leave(
    body: PollLeaveBody,
    coordinator: SessionCoordinator = Depends(get_coordinator),
    sessions: PollingSessions = Depends(get_polling_sessions),
) -> dict:
    """Leave the room. Safe to call more than once."""
    if sessions.stop(body.connectionId):
        coordinator.disconnect(body.connectionId)
        logger.info(f"[Poll] {body.connectionId} left")
    return {"success": True}


@router.get("/messages")
async def poll_messages(
    since: Optional[float] = Query(None, description="Return messages newer than this timestamp"),
    connectionId: Optional[str] = Query(None, description="Keeps a polling session alive"),
    coordinator: SessionCoordinator = Depends(get_coordinator),
    sessions: PollingSessions = Depends(get_polling_sessions),
) -> dict:
    """Fetch new messages.

    Example:
        GET /api/chat/messages?since=1707321600.123&connectionId=...
    """
    if connectionId:
        sessions.touch(connectionId)

    if since is None:
        messages = coordinator.recent_messages(coordinator.join_history_size)
    else:
        messages = coordinator.messages_since(since)

    return {
        "messages": [msg.model_dump() for msg in messages],
        "participants": coordinator.nicknames(),
        "serverTime": time.time(),
    }


@router.get("/participants")
async def poll_participants(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> dict:
    participants = coordinator.nicknames()
    return {"participants": participants, "count": len(participants)}
