"""Live event catalogue.

Every event exchanged over the persistent connection is one of a closed set
of kinds, each with exactly one payload model. Inbound frames are decoded
against this table so handlers always receive a typed payload, and anything
outside the table is rejected before it reaches a session.

Wire shapes follow the chat server: identity-, room- and presence-scoped
events carry a bare ID string, receipts carry a small object, and
``newMessage`` carries the full message document.
"""
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Tuple, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from chatsync.chat.schemas import Message
from chatsync.errors import MalformedEventError, UnknownEventError


class EventKind(str, Enum):
    """Event names used on the wire."""
    SETUP = "setup"
    JOIN_CONVERSATION = "joinConversation"
    LEAVE_CONVERSATION = "leaveConversation"
    NEW_MESSAGE = "newMessage"
    USER_ONLINE = "userOnline"
    USER_OFFLINE = "userOffline"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"
    MARK_MESSAGES_SEEN = "markMessagesSeen"
    MESSAGES_SEEN = "messagesSeen"


# =============================================================================
# Payload models
# =============================================================================


class _ScalarPayload(BaseModel):
    """Payload that travels as a bare string on the wire."""
    model_config = ConfigDict(populate_by_name=True)

    wire_scalar: ClassVar[str]

    @model_validator(mode="before")
    @classmethod
    def _wrap_scalar(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {cls.wire_scalar: data}
        return data

    def to_wire(self) -> Any:
        return getattr(self, self.wire_scalar)


class IdentityPayload(_ScalarPayload):
    wire_scalar: ClassVar[str] = "user_id"

    user_id: str = Field(..., validation_alias=AliasChoices("user_id", "userId", "id"))


class RoomPayload(_ScalarPayload):
    wire_scalar: ClassVar[str] = "conversation_id"

    conversation_id: str = Field(
        ..., validation_alias=AliasChoices("conversation_id", "conversationId")
    )


class PresencePayload(_ScalarPayload):
    wire_scalar: ClassVar[str] = "user_id"

    user_id: str = Field(..., validation_alias=AliasChoices("user_id", "userId"))


class TypingPayload(_ScalarPayload):
    """Typing signal; the server may add the sender's ID when relaying."""
    wire_scalar: ClassVar[str] = "conversation_id"

    conversation_id: str = Field(
        ..., validation_alias=AliasChoices("conversation_id", "conversationId")
    )
    user_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("user_id", "userId")
    )


class MarkSeenPayload(BaseModel):
    """Outbound receipt request: *user_id* has seen *conversation_id*."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(
        ..., validation_alias=AliasChoices("conversation_id", "conversationId")
    )
    user_id: str = Field(..., validation_alias=AliasChoices("user_id", "userId"))

    def to_wire(self) -> Dict[str, str]:
        return {"conversationId": self.conversation_id, "userId": self.user_id}


class SeenReceiptPayload(BaseModel):
    """Inbound receipt broadcast: *user_id* has seen the conversation."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(
        ..., validation_alias=AliasChoices("conversation_id", "conversationId")
    )
    user_id: str = Field(
        ..., validation_alias=AliasChoices("user_id", "userId", "seenBy")
    )

    def to_wire(self) -> Dict[str, str]:
        return {"conversationId": self.conversation_id, "seenBy": self.user_id}


# =============================================================================
# Catalogue
# =============================================================================

EVENT_PAYLOADS: Dict[EventKind, Type[BaseModel]] = {
    EventKind.SETUP: IdentityPayload,
    EventKind.JOIN_CONVERSATION: RoomPayload,
    EventKind.LEAVE_CONVERSATION: RoomPayload,
    EventKind.NEW_MESSAGE: Message,
    EventKind.USER_ONLINE: PresencePayload,
    EventKind.USER_OFFLINE: PresencePayload,
    EventKind.TYPING: TypingPayload,
    EventKind.STOP_TYPING: TypingPayload,
    EventKind.MARK_MESSAGES_SEEN: MarkSeenPayload,
    EventKind.MESSAGES_SEEN: SeenReceiptPayload,
}

INBOUND_EVENTS: FrozenSet[EventKind] = frozenset({
    EventKind.NEW_MESSAGE,
    EventKind.USER_ONLINE,
    EventKind.USER_OFFLINE,
    EventKind.TYPING,
    EventKind.STOP_TYPING,
    EventKind.MESSAGES_SEEN,
})

OUTBOUND_EVENTS: FrozenSet[EventKind] = frozenset({
    EventKind.SETUP,
    EventKind.JOIN_CONVERSATION,
    EventKind.LEAVE_CONVERSATION,
    EventKind.TYPING,
    EventKind.STOP_TYPING,
    EventKind.MARK_MESSAGES_SEEN,
})


def resolve_kind(kind: Any) -> EventKind:
    """Map a wire name (or EventKind) onto the catalogue.

    Raises:
        UnknownEventError: If *kind* is not a catalogue entry.
    """
    try:
        return EventKind(kind)
    except ValueError:
        raise UnknownEventError(kind) from None


def decode_event(kind: Any, data: Any) -> Tuple[EventKind, BaseModel]:
    """Decode one inbound frame into ``(kind, payload model)``.

    Raises:
        UnknownEventError: Unknown or outbound-only event kind.
        MalformedEventError: Payload does not validate against its model.
    """
    event_kind = resolve_kind(kind)
    if event_kind not in INBOUND_EVENTS:
        raise UnknownEventError(kind)
    model = EVENT_PAYLOADS[event_kind]
    try:
        return event_kind, model.model_validate(data)
    except ValidationError as e:
        raise MalformedEventError(event_kind.value, f"{e.error_count()} validation error(s)") from e


def encode_event(kind: Any, payload: Any) -> Dict[str, Any]:
    """Build the outbound frame ``{"event": ..., "data": ...}``.

    *payload* may be a payload model or anything its model accepts.

    Raises:
        UnknownEventError: Unknown or inbound-only event kind.
        MalformedEventError: Payload does not validate against its model.
    """
    event_kind = resolve_kind(kind)
    if event_kind not in OUTBOUND_EVENTS:
        raise UnknownEventError(kind)
    model = EVENT_PAYLOADS[event_kind]
    if not isinstance(payload, model):
        try:
            payload = model.model_validate(payload)
        except ValidationError as e:
            raise MalformedEventError(event_kind.value, f"{e.error_count()} validation error(s)") from e
    return {"event": event_kind.value, "data": payload.to_wire()}
