"""Tests for wire-tolerant chat models."""
from chatsync.chat.schemas import (
    EMPTY_PREVIEW,
    ConversationSnapshot,
    ConversationSummary,
    Message,
    Participant,
)


class TestParticipant:
    def test_accepts_provider_naming(self):
        p = Participant.model_validate(
            {"clerkId": "u1", "username": "alice", "image": "a.png", "online": True}
        )
        assert (p.id, p.username, p.image, p.online) == ("u1", "alice", "a.png", True)

    def test_online_defaults_to_false(self):
        assert Participant(id="u1").online is False


class TestMessage:
    def test_flattens_populated_sender(self):
        m = Message.model_validate({
            "_id": "m1",
            "conversationId": "c1",
            "sender": {"_id": "mongo", "clerkId": "u2"},
            "content": "hey",
        })
        assert m.sender_id == "u2"

    def test_accepts_plain_sender_id(self):
        m = Message.model_validate({"_id": "m1", "conversationId": "c1", "sender": "u2"})
        assert m.sender_id == "u2"

    def test_seen_by_accepts_null_and_documents(self):
        empty = Message.model_validate(
            {"_id": "m1", "conversationId": "c1", "sender": "u2", "seenBy": None}
        )
        assert empty.seen_by == set()

        populated = Message.model_validate({
            "_id": "m2",
            "conversationId": "c1",
            "sender": "u2",
            "seenBy": [{"clerkId": "u1"}, "u3"],
        })
        assert populated.seen_by == {"u1", "u3"}

    def test_parses_created_at(self):
        m = Message.model_validate({
            "_id": "m1", "conversationId": "c1", "sender": "u2",
            "createdAt": "2024-05-01T10:00:00Z",
        })
        assert m.created_at is not None
        assert m.created_at.year == 2024


class TestConversationSnapshot:
    def test_other_participant_skips_local_user(self):
        snap = ConversationSnapshot.model_validate({
            "_id": "c1",
            "participants": [{"clerkId": "u1"}, {"clerkId": "u2", "username": "bob"}],
        })
        assert snap.other_participant("u1").id == "u2"

    def test_other_participant_none_when_alone(self):
        snap = ConversationSnapshot(id="c1", participants=[Participant(id="u1")])
        assert snap.other_participant("u1") is None


class TestConversationSummary:
    def test_preview_uses_last_message(self):
        summary = ConversationSummary.model_validate({
            "_id": "c1",
            "participants": [{"clerkId": "u1"}, {"clerkId": "u2"}],
            "lastMessage": {"_id": "m9", "conversationId": "c1", "sender": "u2", "content": "see you"},
        })
        assert summary.preview == "see you"

    def test_preview_placeholder_for_new_conversation(self):
        summary = ConversationSummary.model_validate({"_id": "c1", "lastMessage": None})
        assert summary.preview == EMPTY_PREVIEW

    def test_unpopulated_last_message_reference_is_ignored(self):
        summary = ConversationSummary.model_validate({"_id": "c1", "lastMessage": "m9"})
        assert summary.last_message is None
        assert summary.preview == EMPTY_PREVIEW

    def test_other_participant_placeholder(self):
        summary = ConversationSummary.model_validate(
            {"_id": "c1", "participants": [{"clerkId": "u1"}]}
        )
        other = summary.other_participant("u1")
        assert other.id == ""
        assert other.username == ""
