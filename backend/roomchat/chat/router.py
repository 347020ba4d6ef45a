"""Chat router providing the WebSocket endpoint and read-only history APIs.

This module provides:
    - WebSocket /ws/chat: Real-time chat messaging
    - GET /api/chat/history: Recent messages, per sender or per time range
    - GET /api/chat/search: Case-insensitive message search
    - GET /api/chat/stats: Message log statistics

Protocol Flow:
    1. Client connects → server assigns a connectionId
       → Server sends: {type: "connected", connectionId}
    2. Client sends: {type: "join", nickname}
       → Joiner receives: {type: "join-success", nickname, participants, messages}
       → Others receive: {type: "participant-joined", nickname, timestamp}
       → Everyone receives: {type: "participants-updated", participants}
    3. Client sends: {type: "send", body}
       → Everyone receives: {type: "message", id, connectionId, nickname, body, timestamp}
    4. Client sends {type: "disconnect"} or drops the socket
       → Others receive: participant-left, participants-updated

Failures are reported only to the originating client as
{type: "error", code, message}.
"""
import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from .coordinator import SessionCoordinator
from .dependencies import get_coordinator, get_hub
from .errors import ChatError, InvalidMessage
from .hub import ConnectionHub
from .message_log import DEFAULT_SEARCH_LIMIT
from .schemas import ConnectedEvent, DisconnectRequest, LogStatistics, parse_inbound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

# Upper bound for history/search page sizes
MAX_PAGE_SIZE = 100


@router.get("/api/chat/history")
async def get_message_history(
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE, description="Number of messages to return"),
    connectionId: Optional[str] = Query(None, description="Only messages sent from this connection"),
    start: Optional[float] = Query(None, description="Only messages at or after this timestamp"),
    end: Optional[float] = Query(None, description="Only messages at or before this timestamp"),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> dict:
    """Get retained messages, oldest first.

    With ``connectionId`` the result is that sender's latest messages. With
    ``start`` and/or ``end`` it is the latest messages inside the inclusive
    time range. Otherwise it is the most recent messages.

    Example:
        GET /api/chat/history?limit=20
        GET /api/chat/history?start=1707321600&end=1707325200
    """
    if connectionId:
        messages = coordinator.messages_by_connection(connectionId, limit)
    elif start is not None or end is not None:
        lower = start if start is not None else float("-inf")
        upper = end if end is not None else float("inf")
        messages = coordinator.messages_between(lower, upper)[-limit:]
    else:
        messages = coordinator.recent_messages(limit)
    return {"messages": [msg.model_dump() for msg in messages]}


@router.get("/api/chat/search")
async def search_messages(
    q: str = Query("", description="Search term (matches body or nickname)"),
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_PAGE_SIZE),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> dict:
    """Search retained messages, most recent first."""
    messages = coordinator.search_messages(q, limit)
    return {"messages": [msg.model_dump() for msg in messages]}


@router.get("/api/chat/stats", response_model=LogStatistics)
async def get_statistics(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> LogStatistics:
    return coordinator.statistics()


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    coordinator: SessionCoordinator = Depends(get_coordinator),
    hub: ConnectionHub = Depends(get_hub),
) -> None:
    """WebSocket endpoint for the chat room.

    Frames are validated here, at the transport boundary; only well-formed
    events reach the coordinator. Whatever way the loop ends, the connection
    is disconnected from the coordinator and its outbox is torn down.
    """
    await websocket.accept()

    # Backend assigns the connection identity; clients never choose it
    connection_id = str(uuid.uuid4())
    hub.register(connection_id, websocket)
    coordinator.open(connection_id)
    hub.deliver(connection_id, ConnectedEvent(connectionId=connection_id))
    logger.info(f"[WS] Connection accepted: {connection_id} ({hub.size()} sockets)")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            raw = message.get("text")
            if raw is None:
                # Binary frames are not part of the protocol
                coordinator.reject(connection_id, InvalidMessage("Malformed frame: expected JSON text"))
                continue

            try:
                event = parse_inbound(json.loads(raw))
            except ChatError as e:
                coordinator.reject(connection_id, e)
                continue
            except (ValueError, RecursionError):
                coordinator.reject(connection_id, InvalidMessage("Malformed JSON frame"))
                continue

            logger.debug(f"[WS] {connection_id} received: type={event.type}")
            coordinator.dispatch(connection_id, event)

            if isinstance(event, DisconnectRequest):
                await hub.flush(connection_id)
                await websocket.close(code=1000)
                break

    except WebSocketDisconnect:
        logger.info(f"[WS] Client disconnected: {connection_id}")

    finally:
        coordinator.disconnect(connection_id)
        await hub.unregister(connection_id)
