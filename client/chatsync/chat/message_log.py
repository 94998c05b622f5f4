"""Ordered, deduplicated message log for the active conversation.

The log merges the REST snapshot with live inserts:

    - initialize() replaces the log wholesale with snapshot order
    - append() adds new IDs at the tail and never reorders
    - a re-delivered ID only unions its ``seen_by`` into the stored entry
    - ``seen_by`` only grows; receipts can add IDs, never remove them

Stored messages are private copies, so callers cannot mutate log state
through the objects they passed in.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from .schemas import Message

logger = logging.getLogger(__name__)


@dataclass
class AppendResult:
    """Outcome of MessageLog.append().

    Attributes:
        inserted: The ID was new and the message became the tail.
        updated: The ID already existed and its ``seen_by`` grew.
    """
    inserted: bool
    updated: bool = False

    @property
    def mutated(self) -> bool:
        return self.inserted or self.updated


class MessageLog:
    """Messages of one conversation in creation order, unique by ID."""

    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._by_id: Dict[str, Message] = {}

    def initialize(self, messages: Iterable[Message]) -> None:
        """Replace the whole log with *messages* (snapshot order, oldest first).

        Duplicate IDs inside the snapshot collapse onto the first occurrence.
        """
        self._messages = []
        self._by_id = {}
        for message in messages:
            self.append(message)
        logger.debug("[Log] Initialized with %d messages", len(self._messages))

    def append(self, message: Message) -> AppendResult:
        """Insert *message* at the tail, or merge receipts if its ID is known."""
        existing = self._by_id.get(message.id)
        if existing is not None:
            missing = message.seen_by - existing.seen_by
            if not missing:
                return AppendResult(inserted=False)
            existing.seen_by |= missing
            return AppendResult(inserted=False, updated=True)

        stored = message.model_copy(deep=True)
        self._messages.append(stored)
        self._by_id[stored.id] = stored
        return AppendResult(inserted=True)

    def mark_seen_by(self, participant_id: str) -> int:
        """Record that *participant_id* has seen every message it did not send.

        Returns:
            Number of messages whose ``seen_by`` grew.
        """
        changed = 0
        for message in self._messages:
            if message.sender_id == participant_id or participant_id in message.seen_by:
                continue
            message.seen_by.add(participant_id)
            changed += 1
        return changed

    def mark_seen_by_remote(self, participant_id: str) -> int:
        """Apply a server-reported receipt from the peer *participant_id*."""
        changed = self.mark_seen_by(participant_id)
        if changed:
            logger.debug("[Log] %s has seen %d message(s)", participant_id, changed)
        return changed

    def get(self, message_id: str) -> Optional[Message]:
        return self._by_id.get(message_id)

    @property
    def messages(self) -> List[Message]:
        """Ordered copies of the log entries."""
        return [message.model_copy(deep=True) for message in self._messages]

    @property
    def tail(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    @property
    def tail_id(self) -> Optional[str]:
        return self._messages[-1].id if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
