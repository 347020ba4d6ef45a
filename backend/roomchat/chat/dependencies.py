"""FastAPI dependencies for the chat routers.

A single coordinator, hub and polling-session tracker are created at
startup (see ``roomchat.main``) and stored in ``app.state``. Tests can swap
them through ``app.dependency_overrides``.
"""
from fastapi.requests import HTTPConnection

from .coordinator import SessionCoordinator
from .hub import ConnectionHub
from .polling import PollingSessions


def get_coordinator(conn: HTTPConnection) -> SessionCoordinator:
    return conn.app.state.coordinator


def get_hub(conn: HTTPConnection) -> ConnectionHub:
    return conn.app.state.hub


def get_polling_sessions(conn: HTTPConnection) -> PollingSessions:
    return conn.app.state.polling_sessions
