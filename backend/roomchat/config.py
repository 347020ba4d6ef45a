"""roomchat application configuration.

Settings are loaded from a single YAML file, ``roomchat.settings.yaml`` in
the working directory by default. Point ``ROOMCHAT_SETTINGS`` at another
path to override. Every key is optional; missing keys take the defaults
below.

Example:

    server:
      port: 8000
    logging:
      level: debug
    chat:
      max_participants: 50
      rate_limit_per_second: 3
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomchat.settings.yaml")
SETTINGS_ENV_VAR = "ROOMCHAT_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class ChatSettings(BaseModel):
    """Limits and tuning for the chat core."""
    max_participants:             int   = Field(default=50, gt=0)
    max_messages:                 int   = Field(default=100, gt=0)
    max_message_length:           int   = Field(default=500, gt=0)
    max_nickname_length:          int   = Field(default=20, gt=0)
    rate_limit_per_second:        int   = Field(default=3, gt=0)
    rate_limit_window_seconds:    float = Field(default=1.0, gt=0)
    rate_limit_enabled:           bool  = True
    join_history_size:            int   = Field(default=50, gt=0)
    outbox_size:                  int   = Field(default=256, gt=0)
    poll_session_timeout_seconds: float = Field(default=60.0, gt=0)


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppSettings:
    """Load settings from ``settings_path`` (or the default location)."""
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))

    settings = AppSettings(**_load_yaml(Path(settings_path)))
    logger.info(
        "Settings loaded (server=%s:%s, max_participants=%s, max_messages=%s)",
        settings.server.host,
        settings.server.port,
        settings.chat.max_participants,
        settings.chat.max_messages,
    )
    return settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Set (or reset with None) the process configuration."""
    global _config
    _config = config
