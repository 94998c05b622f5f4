"""Conversation session: the orchestrator bound to one open conversation.

A session joins the conversation's room, merges the REST snapshot with the
live stream, and exposes a single SessionView for the presentation layer.

State machine:
    IDLE -> LOADING -> ACTIVE -> CLOSED

    LOADING: handlers are attached and the room join is issued at once; the
        message history and the conversation detail are fetched concurrently
        and each populates the view as soon as it resolves. Live messages
        that beat the history fetch are held back and replayed on top of it,
        so the snapshot never erases them.
    ACTIVE: history and detail settled, room joined. Entering ACTIVE, and every
        inbound peer message while ACTIVE, marks the conversation seen.
    CLOSED: close() detaches every handler, stops the typing timer, leaves
        the room and drops state in the same tick. Later deliveries are
        no-ops, so a replaced session can never be mutated.

Only events whose conversation ID matches this session are applied.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field

from chatsync.errors import ChatApiError
from chatsync.scheduling import Scheduler
from chatsync.transport.events import EventKind, MarkSeenPayload, SeenReceiptPayload, TypingPayload
from .message_log import MessageLog
from .presence import PresenceTracker
from .schemas import Message, Participant
from .scroll import ScrollAction, decide_scroll
from .typing_coordinator import DEFAULT_TYPING_TIMEOUT, TypingCoordinator

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    CLOSED = "closed"


class SessionView(BaseModel):
    """Everything the presentation layer renders for the open conversation.

    Attributes:
        conversation_id: Active conversation, None when nothing is selected.
        phase: Session lifecycle phase.
        messages: Reconciled message log, oldest first.
        other_participant: Resolved peer record (header).
        other_online: Live presence of the peer.
        typing: Peer typing indicator.
        joined: Whether the live room has been joined on this connection.
        ready: History and detail loaded, room joined.
        draft: Unsent input text.
        error: Last user-facing failure, cleared by the next success.
    """
    conversation_id: Optional[str] = None
    phase: SessionPhase = SessionPhase.IDLE
    messages: List[Message] = Field(default_factory=list)
    other_participant: Optional[Participant] = None
    other_online: bool = False
    typing: bool = False
    joined: bool = False
    ready: bool = False
    draft: str = ""
    error: Optional[str] = None


SessionListener = Callable[[SessionView, ScrollAction], None]


class ConversationSession:
    """Live view of one conversation for the signed-in user."""

    def __init__(
        self,
        conversation_id: str,
        local_user_id: str,
        connection: Any,
        api: Any,
        presence: PresenceTracker,
        scheduler: Scheduler,
        *,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
        participant_hint: Optional[Participant] = None,
    ) -> None:
        self.conversation_id = conversation_id
        self.local_user_id = local_user_id
        self._connection = connection
        self._api = api
        self._presence = presence

        self.log = MessageLog()
        self.typing = TypingCoordinator(
            conversation_id, connection, scheduler, typing_timeout, local_user_id
        )
        self.phase = SessionPhase.IDLE
        self.other_participant: Optional[Participant] = participant_hint
        self.joined = False
        self.draft = ""
        self.error: Optional[str] = None

        self._messages_loaded = False
        self._history_failed = False
        self._detail_settled = False
        # live messages that arrived before the history snapshot
        self._pending_live: List[Message] = []
        self._detachers: List[Callable[[], None]] = []
        self._listeners: List[SessionListener] = []
        self._load_task: Optional[asyncio.Task] = None  # type: ignore[type-arg]
        self._last_tail_id: Optional[str] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self.phase is SessionPhase.CLOSED

    @property
    def ready(self) -> bool:
        return self._messages_loaded and self._detail_settled and self.joined

    async def open(self) -> None:
        """Join the room and load the snapshot; returns once loading settles.

        Fetch failures do not raise: they are logged and surfaced on the view.
        """
        if self.phase is not SessionPhase.IDLE:
            raise RuntimeError(f"Session {self.conversation_id} already opened")

        self.phase = SessionPhase.LOADING
        logger.info("[Session] Opening conversation %s", self.conversation_id)
        self._attach()
        self._join()
        self._notify(switched=True)

        self._load_task = asyncio.ensure_future(self._load())
        try:
            await self._load_task
        except asyncio.CancelledError:
            if self.closed:
                return
            raise

    def close(self) -> None:
        """Tear the session down synchronously."""
        if self.closed:
            return
        logger.info("[Session] Closing conversation %s", self.conversation_id)

        for detach in self._detachers:
            detach()
        self._detachers.clear()

        if self._connection.connected:
            self.typing.close()
        else:
            self.typing.cancel()
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        if self.joined and self._connection.connected:
            self._connection.send(EventKind.LEAVE_CONVERSATION, self.conversation_id)

        self.phase = SessionPhase.CLOSED
        self.joined = False
        self.log = MessageLog()
        self._pending_live.clear()
        self._listeners.clear()

    def rejoin(self) -> None:
        """Re-enter the room after the connection comes back."""
        if self.closed:
            return
        self._join()
        if self.phase is SessionPhase.ACTIVE:
            # Anything delivered while we were away still counts as seen now.
            self._signal_seen()
        else:
            self._maybe_activate()
        self._notify()

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def view(self) -> SessionView:
        other = self.other_participant
        return SessionView(
            conversation_id=None if self.closed else self.conversation_id,
            phase=self.phase,
            messages=self.log.messages,
            other_participant=other.model_copy() if other is not None else None,
            other_online=self._presence.is_online(other.id) if other is not None else False,
            typing=self.typing.remote_typing,
            joined=self.joined,
            ready=self.ready,
            draft=self.draft,
            error=self.error,
        )

    # =========================================================================
    # Local input
    # =========================================================================

    def update_draft(self, text: str) -> None:
        """Record an input change and drive the outbound typing signal."""
        if self.closed or text == self.draft:
            return
        self.draft = text
        self.typing.on_input()
        self._notify()

    async def send_message(self) -> Optional[Message]:
        """Send the current draft.

        Blank drafts are ignored. On failure the draft is kept so the user can
        retry, the error is shown on the view, and ChatApiError propagates.
        """
        content = self.draft
        if self.closed or not content.strip():
            return None

        self.typing.on_send()
        try:
            message = await self._api.send_message(self.conversation_id, self.local_user_id, content)
        except ChatApiError as e:
            logger.warning("[Session] Send failed in %s: %s", self.conversation_id, e)
            if not self.closed:
                self.error = f"Message not sent: {e.message}"
                self._notify()
            raise

        if self.closed:
            return message
        if self.draft == content:
            self.draft = ""
        self.error = None
        if not self._apply_message(message):
            self._notify()
        return message

    # =========================================================================
    # Loading
    # =========================================================================

    async def _load(self) -> None:
        await asyncio.gather(self._load_messages(), self._load_detail())

    async def _load_messages(self) -> None:
        try:
            messages = await self._api.get_messages(self.conversation_id)
        except ChatApiError as e:
            if not self.closed:
                # Show what the live stream delivers even without history.
                self._history_failed = True
                for message in self._pending_live:
                    self.log.append(message)
                self._pending_live.clear()
            self._fail("Could not load messages", e)
            return
        if self.closed:
            return

        self.log.initialize(messages)
        for message in self._pending_live:
            self.log.append(message)
        self._pending_live.clear()
        self._messages_loaded = True
        logger.info(
            "[Session] Loaded %d messages for %s", len(self.log), self.conversation_id
        )

        self._maybe_activate()
        self._notify(switched=True)

    async def _load_detail(self) -> None:
        try:
            snapshot = await self._api.get_conversation(self.conversation_id)
        except ChatApiError as e:
            # The participant hint keeps the header usable.
            self._detail_settled = True
            if not self.closed:
                self._maybe_activate()
            self._fail("Could not load conversation", e)
            return
        if self.closed:
            return

        self._detail_settled = True
        other = snapshot.other_participant(self.local_user_id)
        if other is not None:
            self.other_participant = other
            self._presence.apply_snapshot([other])
        else:
            logger.warning("[Session] No peer listed for %s", self.conversation_id)
        self._maybe_activate()
        self._notify()

    def _fail(self, what: str, error: ChatApiError) -> None:
        logger.warning("[Session] %s for %s: %s", what, self.conversation_id, error)
        if self.closed:
            return
        self.error = f"{what}: {error.message}"
        self._notify()

    # =========================================================================
    # Live events
    # =========================================================================

    def _attach(self) -> None:
        conn = self._connection
        self._detachers = [
            conn.subscribe(EventKind.NEW_MESSAGE, self._on_new_message),
            conn.subscribe(EventKind.TYPING, self._on_typing),
            conn.subscribe(EventKind.STOP_TYPING, self._on_stop_typing),
            conn.subscribe(EventKind.MESSAGES_SEEN, self._on_messages_seen),
            self._presence.add_listener(self._on_presence_change),
            conn.add_state_listener(self._on_connection_state),
        ]

    def _join(self) -> None:
        if not self._connection.connected:
            self.joined = False
            return
        self._connection.send(EventKind.JOIN_CONVERSATION, self.conversation_id)
        self.joined = True

    def _on_new_message(self, message: Message) -> None:
        if self.closed or message.conversation_id != self.conversation_id:
            return
        if not self._messages_loaded and not self._history_failed:
            self._pending_live.append(message)
            return
        self._apply_message(message)

    def _on_typing(self, payload: TypingPayload) -> None:
        if self.closed:
            return
        if self.typing.on_remote_typing(payload.conversation_id, payload.user_id):
            self._notify()

    def _on_stop_typing(self, payload: TypingPayload) -> None:
        if self.closed:
            return
        if self.typing.on_remote_stop_typing(payload.conversation_id, payload.user_id):
            self._notify()

    def _on_messages_seen(self, payload: SeenReceiptPayload) -> None:
        if self.closed or payload.conversation_id != self.conversation_id:
            return
        if payload.user_id == self.local_user_id:
            changed = self.log.mark_seen_by(self.local_user_id)
        else:
            changed = self.log.mark_seen_by_remote(payload.user_id)
        if changed:
            self._notify()

    def _on_presence_change(self, participant_id: str, online: bool) -> None:
        if self.closed:
            return
        if self.other_participant is not None and self.other_participant.id == participant_id:
            self._notify()

    def _on_connection_state(self, connected: bool) -> None:
        if self.closed:
            return
        if connected:
            self.rejoin()
        else:
            # Live features go quiet until the room is re-joined.
            self.joined = False
            self._notify()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _apply_message(self, message: Message) -> bool:
        """Merge *message* into the log; returns True if listeners were told."""
        result = self.log.append(message)
        if not result.mutated:
            return False
        if (
            result.inserted
            and message.sender_id != self.local_user_id
            and self.phase is SessionPhase.ACTIVE
        ):
            self._signal_seen()
        self._notify()
        return True

    def _maybe_activate(self) -> None:
        if self.phase is SessionPhase.LOADING and self.ready:
            self.phase = SessionPhase.ACTIVE
            logger.info("[Session] Conversation %s active", self.conversation_id)
            self._signal_seen()

    def _signal_seen(self) -> None:
        self.log.mark_seen_by(self.local_user_id)
        self._connection.send(
            EventKind.MARK_MESSAGES_SEEN,
            MarkSeenPayload(conversation_id=self.conversation_id, user_id=self.local_user_id),
        )

    def _notify(self, switched: bool = False) -> None:
        tail_id = self.log.tail_id
        action = decide_scroll(self._last_tail_id, tail_id, switched=switched)
        self._last_tail_id = tail_id
        if not self._listeners:
            return
        view = self.view
        for listener in list(self._listeners):
            try:
                listener(view, action)
            except Exception:
                logger.exception("[Session] Listener failed")
