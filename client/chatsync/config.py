"""chatsync client configuration.

Loads settings from a single YAML file:
  * chatsync.settings.yaml: endpoints, timers and logging

Every section has usable defaults, so a missing file yields a client that
talks to a local development server.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chatsync.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ApiSettings(BaseModel):
    """REST collaborator (history, search, creation)."""
    base_url:        str   = "http://localhost:5000/api"
    timeout_seconds: float = 10.0

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class ConnectionSettings(BaseModel):
    """Persistent live-event connection."""
    url:                     str   = "ws://localhost:5000/ws"
    reconnect_initial_delay: float = 0.5
    reconnect_max_delay:     float = 30.0


class TypingSettings(BaseModel):
    timeout_seconds: float = 3.0


class SearchSettings(BaseModel):
    debounce_seconds: float = 0.5


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    api:        ApiSettings        = Field(default_factory=ApiSettings)
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    typing:     TypingSettings     = Field(default_factory=TypingSettings)
    search:     SearchSettings     = Field(default_factory=SearchSettings)
    logging:    LoggingSettings    = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load *chatsync.settings.yaml* into an *AppSettings* object."""
    settings_data = _load_yaml(path or SETTINGS_FILE)

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (api=%s, connection=%s, typing.timeout=%ss)",
        app_settings.api.base_url,
        app_settings.connection.url,
        app_settings.typing.timeout_seconds,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Forget cached settings (tests and reloads)."""
    global _config
    _config = None
