"""Conversation directory (sidebar list)."""
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from chatsync.errors import ChatApiError
from .schemas import Participant

logger = logging.getLogger(__name__)


@dataclass
class DirectoryEntry:
    """One sidebar row.

    Attributes:
        conversation_id: Conversation to open when the row is selected.
        other: The peer (empty placeholder if the server listed none).
        preview: Last message text, or a placeholder for new conversations.
    """
    conversation_id: str
    other: Participant
    preview: str


class ConversationDirectory:
    """Conversations of the signed-in user, as listed by the REST API."""

    def __init__(self, api: Any, local_user_id: str) -> None:
        self._api = api
        self.local_user_id = local_user_id
        self.entries: List[DirectoryEntry] = []
        self.error: Optional[str] = None

    async def refresh(self) -> List[DirectoryEntry]:
        """Reload the list; on failure the previous list is kept."""
        try:
            summaries = await self._api.list_conversations(self.local_user_id)
        except ChatApiError as e:
            logger.error("[Directory] Error fetching conversations: %s", e)
            self.error = e.message
            return self.entries

        self.entries = [
            DirectoryEntry(
                conversation_id=summary.id,
                other=summary.other_participant(self.local_user_id),
                preview=summary.preview,
            )
            for summary in summaries
        ]
        self.error = None
        logger.info("[Directory] %d conversation(s) for %s", len(self.entries), self.local_user_id)
        return self.entries

    def find(self, conversation_id: str) -> Optional[DirectoryEntry]:
        for entry in self.entries:
            if entry.conversation_id == conversation_id:
                return entry
        return None
