"""roomchat Backend Application.

This is the main entry point for the roomchat backend service: a single
chat room where clients join with a nickname, exchange short messages and
see a live participant list.

Modules:
    - chat.coordinator: connection lifecycle, fan-out, error boundary
    - chat.registry / chat.message_log / chat.rate_limiter: core state
    - chat.router: WebSocket endpoint and history APIs
    - chat.polling_router: HTTP polling fallback
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomchat.chat.coordinator import SessionCoordinator
from roomchat.chat.dependencies import get_coordinator
from roomchat.chat.hub import ConnectionHub
from roomchat.chat.message_log import MessageLog
from roomchat.chat.polling import PollingSessions
from roomchat.chat.polling_router import router as polling_router
from roomchat.chat.rate_limiter import SlidingWindowRateLimiter
from roomchat.chat.registry import ParticipantRegistry
from roomchat.chat.router import router as chat_router
from roomchat.config import AppSettings, get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Per-request access lines drown out the chat events
for _noisy in ("uvicorn.access",):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def build_coordinator(config: AppSettings) -> SessionCoordinator:
    """Wire the registry, message log and limiter into one coordinator."""
    chat = config.chat
    return SessionCoordinator(
        registry=ParticipantRegistry(
            max_participants=chat.max_participants,
            max_nickname_length=chat.max_nickname_length,
        ),
        message_log=MessageLog(
            max_messages=chat.max_messages,
            max_message_length=chat.max_message_length,
        ),
        rate_limiter=SlidingWindowRateLimiter(
            max_events=chat.rate_limit_per_second,
            window_seconds=chat.rate_limit_window_seconds,
        ),
        join_history_size=chat.join_history_size,
        rate_limit_enabled=chat.rate_limit_enabled,
    )


def create_app(config: Optional[AppSettings] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Settings to use. Defaults to ``get_config()``.
    """
    settings = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        configured_level = getattr(logging, settings.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", settings.logging.level.upper())

        coordinator = build_coordinator(settings)
        hub = ConnectionHub(
            outbox_size=settings.chat.outbox_size,
            on_overflow=coordinator.disconnect,
        )
        coordinator.set_transport(hub)

        app.state.coordinator = coordinator
        app.state.hub = hub
        app.state.polling_sessions = PollingSessions(
            coordinator, settings.chat.poll_session_timeout_seconds
        )
        logger.info(
            "Chat room ready (max_participants=%d, max_messages=%d, rate_limit=%d/%.1fs)",
            settings.chat.max_participants,
            settings.chat.max_messages,
            settings.chat.rate_limit_per_second,
            settings.chat.rate_limit_window_seconds,
        )

        yield  # Application runs here

        # Shutdown
        app.state.polling_sessions.close()
        coordinator.close()
        await hub.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="roomchat API",
        description="Single-room realtime chat backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(chat_router)
    app.include_router(polling_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    @app.get("/api/info")
    async def info(coordinator: SessionCoordinator = Depends(get_coordinator)) -> dict:
        """Live connection and message counters."""
        return {
            "status": "running",
            "timestamp": time.time(),
            **coordinator.connection_info(),
        }

    return app


app = create_app()
