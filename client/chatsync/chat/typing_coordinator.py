"""Typing indicator coordination for one conversation.

Two independent directions:

    Outbound (local user typing): leading-edge debounce. The first keystroke
    emits "typing" once; every keystroke re-arms a single expiry timer; the
    timer (or sending a message) emits "stopTyping" once.

    Inbound (peer typing): last-event-wins display flag, no debounce.
"""
import logging
from typing import Any, Optional

from chatsync.scheduling import Scheduler, TimerHandle
from chatsync.transport.events import EventKind

logger = logging.getLogger(__name__)

DEFAULT_TYPING_TIMEOUT = 3.0


class TypingCoordinator:
    """Owns the outbound typing flag, its timer, and the inbound indicator."""

    def __init__(
        self,
        conversation_id: str,
        connection: Any,
        scheduler: Scheduler,
        timeout: float = DEFAULT_TYPING_TIMEOUT,
        local_user_id: Optional[str] = None,
    ) -> None:
        self.conversation_id = conversation_id
        self.timeout = timeout
        self._connection = connection
        self._scheduler = scheduler
        self._local_user_id = local_user_id

        self._local_typing = False
        self._timer: Optional[TimerHandle] = None

        self.remote_typing = False
        self.remote_user_id: Optional[str] = None

    @property
    def local_typing(self) -> bool:
        return self._local_typing

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    # =========================================================================
    # Outbound
    # =========================================================================

    def on_input(self) -> None:
        """Handle a local input change."""
        if not self._local_typing:
            self._local_typing = True
            self._connection.send(EventKind.TYPING, self.conversation_id)
        self._arm()

    def on_send(self) -> None:
        """Force-clear before a message goes out."""
        self._cancel_timer()
        self._stop()

    def close(self) -> None:
        """Cancel the timer for good; tells the peer we stopped if needed."""
        self.on_send()

    def cancel(self) -> None:
        """Drop the timer and the typing flag without emitting anything."""
        self._cancel_timer()
        self._local_typing = False

    def _arm(self) -> None:
        self._cancel_timer()
        self._timer = self._scheduler.call_later(self.timeout, self._expire)

    def _expire(self) -> None:
        self._timer = None
        self._stop()

    def _stop(self) -> None:
        if not self._local_typing:
            return
        self._local_typing = False
        self._connection.send(EventKind.STOP_TYPING, self.conversation_id)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # =========================================================================
    # Inbound
    # =========================================================================

    def on_remote_typing(self, conversation_id: str, user_id: Optional[str] = None) -> bool:
        """Show the peer as typing. Returns True if the indicator changed."""
        if conversation_id != self.conversation_id:
            return False
        if user_id is not None and user_id == self._local_user_id:
            return False
        changed = not self.remote_typing or (user_id is not None and user_id != self.remote_user_id)
        self.remote_typing = True
        if user_id is not None:
            self.remote_user_id = user_id
        return changed

    def on_remote_stop_typing(self, conversation_id: str, user_id: Optional[str] = None) -> bool:
        """Hide the peer typing indicator. Returns True if it changed."""
        if conversation_id != self.conversation_id:
            return False
        if user_id is not None and user_id == self._local_user_id:
            return False
        changed = self.remote_typing
        self.remote_typing = False
        return changed
