"""Shared test fixtures and doubles for the sync engine tests.

    - ManualScheduler: deterministic clock for typing/search timers
    - FakeConnection: in-memory live connection recording sent frames
    - LoopbackHub: relays frames between FakeConnections like the chat server
    - FakeChatApi: in-memory REST collaborator with gates and injected failures
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

import pytest

from chatsync.chat.presence import PresenceTracker
from chatsync.chat.schemas import ConversationSnapshot, ConversationSummary, Message, Participant
from chatsync.chat.session import ConversationSession
from chatsync.errors import ChatApiError
from chatsync.transport.connection import BaseConnection

ALICE = "user_alice"
BOB = "user_bob"
CONV = "conv-ab"


# =============================================================================
# Clock
# =============================================================================


class _ManualHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose time only moves when a test calls advance()."""

    def __init__(self) -> None:
        self._now = 0.0
        self._handles: List[_ManualHandle] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self._now + delay, callback)
        self._handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self._now = handle.when
            handle.callback()
        self._now = target

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)


# =============================================================================
# Connection
# =============================================================================


class FakeConnection(BaseConnection):
    """Records outbound frames (with the clock time they were sent)."""

    def __init__(self, clock: Optional[ManualScheduler] = None, hub: "Optional[LoopbackHub]" = None) -> None:
        super().__init__()
        self.clock = clock
        self.hub = hub
        self.sent: List[Dict[str, Any]] = []
        if hub is not None:
            hub.attach(self)

    async def connect(self, identity: str) -> bool:
        self.go_online(identity)
        return True

    async def close(self) -> None:
        self._set_connected(False)

    def go_online(self, identity: Optional[str] = None) -> None:
        if identity is not None:
            self.identity = identity
        self._set_connected(True)

    def drop(self) -> None:
        self._set_connected(False)

    def _transmit(self, frame: Dict[str, Any]) -> None:
        at = self.clock.now() if self.clock is not None else None
        self.sent.append({**frame, "at": at})
        if self.hub is not None:
            self.hub.route(self, frame)

    def sent_events(self, *kinds: str) -> List[Dict[str, Any]]:
        return [f for f in self.sent if not kinds or f["event"] in kinds]


class LoopbackHub:
    """Minimal stand-in for the chat server's room fan-out."""

    def __init__(self) -> None:
        self.connections: List[FakeConnection] = []
        self.rooms: Dict[str, Set[FakeConnection]] = {}

    def attach(self, connection: FakeConnection) -> None:
        self.connections.append(connection)

    def members(self, conversation_id: str) -> Set[FakeConnection]:
        return self.rooms.get(conversation_id, set())

    def route(self, sender: FakeConnection, frame: Dict[str, Any]) -> None:
        event, data = frame["event"], frame["data"]
        if event == "setup":
            for conn in self.connections:
                if conn is not sender and conn.connected:
                    conn.dispatch("userOnline", data)
        elif event == "joinConversation":
            self.rooms.setdefault(data, set()).add(sender)
        elif event == "leaveConversation":
            self.rooms.get(data, set()).discard(sender)
        elif event in ("typing", "stopTyping"):
            for conn in self._peers(sender, data):
                conn.dispatch(event, {"conversationId": data, "userId": sender.identity})
        elif event == "markMessagesSeen":
            room = data["conversationId"]
            for conn in self._peers(sender, room):
                conn.dispatch("messagesSeen", {"conversationId": room, "seenBy": data["userId"]})

    def broadcast_message(self, message: Dict[str, Any]) -> None:
        for conn in list(self.members(message["conversationId"])):
            conn.dispatch("newMessage", message)

    def _peers(self, sender: FakeConnection, room: str) -> List[FakeConnection]:
        return [c for c in self.members(room) if c is not sender]


# =============================================================================
# REST API
# =============================================================================


def wire_message(
    message_id: str,
    sender: str,
    content: str = "",
    conversation_id: str = CONV,
    seen_by: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Message document as the server sends it (populated sender)."""
    return {
        "_id": message_id,
        "conversationId": conversation_id,
        "sender": {"clerkId": sender, "username": sender},
        "content": content or f"message {message_id}",
        "createdAt": "2024-05-01T10:00:00Z",
        "seenBy": list(seen_by or []),
    }


def make_message(message_id: str, sender: str, seen_by: Optional[Set[str]] = None, conversation_id: str = CONV) -> Message:
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        sender_id=sender,
        content=f"message {message_id}",
        seen_by=set(seen_by or set()),
    )


class FakeChatApi:
    """In-memory REST collaborator.

    ``gates[name]`` (an asyncio.Event) holds a call until set;
    ``failures[name]`` makes a call raise.
    """

    def __init__(self, hub: Optional[LoopbackHub] = None) -> None:
        self.hub = hub
        self.messages: Dict[str, List[Dict[str, Any]]] = {}
        self.details: Dict[str, Dict[str, Any]] = {}
        self.summaries: Dict[str, List[Dict[str, Any]]] = {}
        self.users: List[Dict[str, Any]] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.failures: Dict[str, ChatApiError] = {}
        self.calls: List[tuple] = []
        self._next_id = 1000
        self.closed = False

    def add_conversation(self, conversation_id: str = CONV, online: bool = False) -> None:
        self.messages.setdefault(conversation_id, [])
        self.details[conversation_id] = {
            "_id": conversation_id,
            "participants": [
                {"clerkId": ALICE, "username": "alice", "image": "a.png", "online": True},
                {"clerkId": BOB, "username": "bob", "image": "b.png", "online": online},
            ],
        }

    async def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.failures:
            raise self.failures[name]

    async def get_messages(self, conversation_id: str) -> List[Message]:
        await self._enter("get_messages", conversation_id)
        return [Message.model_validate(m) for m in self.messages.get(conversation_id, [])]

    async def get_conversation(self, conversation_id: str) -> ConversationSnapshot:
        await self._enter("get_conversation", conversation_id)
        if conversation_id not in self.details:
            raise ChatApiError("Not Found", f"/conversations/detail/{conversation_id}", 404)
        return ConversationSnapshot.model_validate(self.details[conversation_id])

    async def send_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        await self._enter("send_message", conversation_id, sender_id, content)
        self._next_id += 1
        doc = wire_message(str(self._next_id), sender_id, content, conversation_id)
        self.messages.setdefault(conversation_id, []).append(doc)
        if self.hub is not None:
            self.hub.broadcast_message(doc)
        return Message.model_validate(doc)

    async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        await self._enter("list_conversations", user_id)
        return [ConversationSummary.model_validate(s) for s in self.summaries.get(user_id, [])]

    async def create_conversation(self, sender_id: str, receiver_id: str) -> str:
        await self._enter("create_conversation", sender_id, receiver_id)
        conversation_id = f"conv-{sender_id}-{receiver_id}"
        self.add_conversation(conversation_id)
        return conversation_id

    async def search_users(self, query: str, exclude: Optional[str] = None) -> List[Participant]:
        await self._enter("search_users", query, exclude)
        return [
            Participant.model_validate(u)
            for u in self.users
            if query.lower() in u["username"].lower() and u["clerkId"] != exclude
        ]

    async def aclose(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return ManualScheduler()


@pytest.fixture
def connection(clock):
    conn = FakeConnection(clock)
    conn.go_online(ALICE)
    conn.sent.clear()
    return conn


@pytest.fixture
def api():
    fake = FakeChatApi()
    fake.add_conversation(CONV)
    return fake


@pytest.fixture
def presence():
    return PresenceTracker()


@pytest.fixture
def make_session(connection, api, presence, clock):
    """Factory for sessions bound to the shared fixtures."""
    def factory(conversation_id: str = CONV, **kwargs: Any) -> ConversationSession:
        return ConversationSession(
            conversation_id, ALICE, connection, api, presence, clock, **kwargs
        )
    return factory
