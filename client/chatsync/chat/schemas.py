"""Pydantic models for conversations, participants and messages.

The chat server uses its own wire naming for REST bodies and live payloads
(``_id``, ``clerkId``, ``conversationId``, an embedded ``sender`` object,
``seenBy``). Models accept either that naming or the Python field names so
the same classes serve snapshots, live payloads and test fixtures.
"""
from datetime import datetime
from typing import Any, List, Optional, Set

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# Shown in the sidebar when a conversation has no message yet
EMPTY_PREVIEW = "Started a conversation"


class Participant(BaseModel):
    """A conversation participant as issued by the identity provider.

    Attributes:
        id: Stable provider-issued identifier.
        username: Human-readable name shown in the header.
        image: Avatar reference (URL).
        online: Presence flag from the last snapshot; the live value lives in
            the PresenceTracker.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        ...,
        validation_alias=AliasChoices("id", "clerkId", "userId", "_id"),
        description="Provider-issued participant ID",
    )
    username: str = Field(
        default="",
        validation_alias=AliasChoices("username", "name", "displayName"),
        description="Display name",
    )
    image: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("image", "imageUrl", "avatar"),
        description="Avatar reference",
    )
    online: bool = Field(default=False, description="Presence at snapshot time")


class Message(BaseModel):
    """A chat message.

    Everything except ``seen_by`` is fixed once the server assigns the ID.
    ``seen_by`` only ever grows.

    Attributes:
        id: Server-assigned ID, unique within the conversation.
        conversation_id: Conversation (room) the message belongs to.
        sender_id: Participant ID of the author.
        content: Message body.
        created_at: Server creation timestamp.
        seen_by: Participant IDs that have seen the message.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    conversation_id: str = Field(
        ..., validation_alias=AliasChoices("conversation_id", "conversationId")
    )
    sender_id: str = Field(
        ..., validation_alias=AliasChoices("sender_id", "senderId", "sender")
    )
    content: str = ""
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    seen_by: Set[str] = Field(
        default_factory=set, validation_alias=AliasChoices("seen_by", "seenBy")
    )

    @model_validator(mode="before")
    @classmethod
    def _flatten_sender(cls, data: Any) -> Any:
        # The server populates ``sender`` with the participant document.
        if isinstance(data, dict):
            sender = data.get("sender")
            if isinstance(sender, dict):
                data = dict(data)
                data["sender"] = sender.get("clerkId") or sender.get("id") or sender.get("_id")
        return data

    @field_validator("seen_by", mode="before")
    @classmethod
    def _normalize_seen_by(cls, value: Any) -> Any:
        if value is None:
            return set()
        if isinstance(value, (list, tuple, set, frozenset)):
            return {
                (item.get("clerkId") or item.get("id")) if isinstance(item, dict) else item
                for item in value
            }
        return value


class ConversationSnapshot(BaseModel):
    """Point-in-time REST copy of one conversation."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    participants: List[Participant] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)

    def other_participant(self, local_user_id: str) -> Optional[Participant]:
        """Return the first participant that is not the local user."""
        for participant in self.participants:
            if participant.id != local_user_id:
                return participant
        return None


class ConversationSummary(BaseModel):
    """Sidebar row: participants plus the embedded last message."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    participants: List[Participant] = Field(default_factory=list)
    last_message: Optional[Message] = Field(
        default=None, validation_alias=AliasChoices("last_message", "lastMessage")
    )

    @field_validator("last_message", mode="before")
    @classmethod
    def _drop_unpopulated_last_message(cls, value: Any) -> Any:
        # An unpopulated reference arrives as a bare ID string.
        if isinstance(value, str):
            return None
        return value

    @property
    def preview(self) -> str:
        if self.last_message is not None and self.last_message.content:
            return self.last_message.content
        return EMPTY_PREVIEW

    def other_participant(self, local_user_id: str) -> Participant:
        """Return the peer, or an empty placeholder when none is listed."""
        for participant in self.participants:
            if participant.id != local_user_id:
                return participant
        return Participant(id="", username="")
