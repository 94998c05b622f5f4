"""chatsync client wiring.

Builds a ready-to-start ChatClient from configuration:

Modules:
    - api: REST client (history, search, conversation creation)
    - transport: shared live-event connection
    - chat: sync engine (message log, presence, typing, sessions)
"""
import logging
from typing import Optional

from chatsync.api.client import ChatApiClient
from chatsync.chat.client import ChatClient
from chatsync.config import AppSettings, get_config
from chatsync.scheduling import Scheduler
from chatsync.transport.connection import WebSocketConnection

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# httpx/httpcore log every request and TLS handshake; websockets logs every
# frame at debug. None of it helps when debugging sync logic.
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
    "websockets",
    "websockets.client",
)

logger = logging.getLogger(__name__)


def configure_logging(config: Optional[AppSettings] = None) -> None:
    """Configure root logging from the ``logging.level`` setting."""
    config = config or get_config()
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if isinstance(configured_level, int):
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())
    else:
        logger.warning("Unknown logging.level %r, keeping INFO", config.logging.level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_client(
    local_user_id: str,
    config: Optional[AppSettings] = None,
    scheduler: Optional[Scheduler] = None,
) -> ChatClient:
    """Wire the REST client, live connection and engine for *local_user_id*."""
    config = config or get_config()
    api = ChatApiClient(config.api.base_url, timeout=config.api.timeout_seconds)
    connection = WebSocketConnection(
        config.connection.url,
        reconnect_initial_delay=config.connection.reconnect_initial_delay,
        reconnect_max_delay=config.connection.reconnect_max_delay,
    )
    return ChatClient(
        local_user_id,
        connection,
        api,
        scheduler=scheduler,
        typing_timeout=config.typing.timeout_seconds,
        search_debounce=config.search.debounce_seconds,
    )
