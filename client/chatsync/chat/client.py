"""Process-level chat client.

Owns the collaborators that outlive a single conversation:

    - the shared live connection (one per signed-in identity)
    - the presence tracker, fed by identity-scoped userOnline/userOffline
    - the conversation directory and user search
    - at most one ConversationSession

Switching conversations closes the current session synchronously before
the next one is created, so no event delivery can touch both.
"""
import logging
from typing import Any, Callable, List, Optional

from chatsync.scheduling import AsyncioScheduler, Scheduler
from chatsync.transport.events import EventKind, PresencePayload
from .directory import ConversationDirectory
from .presence import PresenceTracker
from .schemas import Participant
from .search import DEFAULT_DEBOUNCE_SECONDS, UserSearch
from .session import ConversationSession, SessionPhase, SessionView
from .typing_coordinator import DEFAULT_TYPING_TIMEOUT

logger = logging.getLogger(__name__)


class ChatClient:
    """Entry point for the presentation layer."""

    def __init__(
        self,
        local_user_id: str,
        connection: Any,
        api: Any,
        *,
        scheduler: Optional[Scheduler] = None,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
        search_debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.local_user_id = local_user_id
        self.connection = connection
        self.api = api
        self.scheduler: Scheduler = scheduler or AsyncioScheduler()
        self.typing_timeout = typing_timeout

        self.presence = PresenceTracker()
        self.directory = ConversationDirectory(api, local_user_id)
        self.search = UserSearch(api, local_user_id, self.scheduler, search_debounce)
        self.session: Optional[ConversationSession] = None
        self._detachers: List[Callable[[], None]] = []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Connect as the local user and load the sidebar."""
        if not self._detachers:
            self._detachers = [
                self.connection.subscribe(EventKind.USER_ONLINE, self._on_user_online),
                self.connection.subscribe(EventKind.USER_OFFLINE, self._on_user_offline),
            ]
        connected = await self.connection.connect(self.local_user_id)
        if not connected:
            logger.warning("[Client] Live connection unavailable; will keep retrying")
        await self.directory.refresh()

    async def stop(self) -> None:
        self.close_conversation()
        self.search.cancel()
        for detach in self._detachers:
            detach()
        self._detachers.clear()
        await self.connection.close()
        await self.api.aclose()

    # =========================================================================
    # Conversations
    # =========================================================================

    async def select_conversation(
        self,
        conversation_id: str,
        participant_hint: Optional[Participant] = None,
    ) -> ConversationSession:
        """Make *conversation_id* the active conversation."""
        current = self.session
        if current is not None and current.conversation_id == conversation_id and self._reusable(current):
            return current

        self.close_conversation()

        if participant_hint is None:
            entry = self.directory.find(conversation_id)
            if entry is not None and entry.other.id:
                participant_hint = entry.other

        session = ConversationSession(
            conversation_id,
            self.local_user_id,
            self.connection,
            self.api,
            self.presence,
            self.scheduler,
            typing_timeout=self.typing_timeout,
            participant_hint=participant_hint,
        )
        self.session = session
        await session.open()
        return session

    @staticmethod
    def _reusable(session: ConversationSession) -> bool:
        # A session whose load failed is rebuilt so re-selecting retries it.
        if session.phase is SessionPhase.ACTIVE:
            return True
        return session.phase is SessionPhase.LOADING and session.error is None

    def close_conversation(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    async def start_conversation(self, receiver_id: str, select: bool = True) -> str:
        """Create (or look up) a conversation with *receiver_id*.

        Raises:
            ChatApiError: If the server rejects the request.
        """
        conversation_id = await self.api.create_conversation(self.local_user_id, receiver_id)
        logger.info("[Client] Conversation %s with %s", conversation_id, receiver_id)
        self.search.cancel()
        await self.directory.refresh()
        if select:
            await self.select_conversation(conversation_id)
        return conversation_id

    @property
    def view(self) -> SessionView:
        if self.session is None:
            return SessionView()
        return self.session.view

    # =========================================================================
    # Presence
    # =========================================================================

    def _on_user_online(self, payload: PresencePayload) -> None:
        self.presence.mark_online(payload.user_id)

    def _on_user_offline(self, payload: PresencePayload) -> None:
        self.presence.mark_offline(payload.user_id)
