"""Tests for chat creation and its compensating deletes."""

import asyncio

import pytest

from app.chat.creation import ChatCreator, participant_ids_for
from app.core.exceptions import ChatCreationError, InsertError


def test_participants_start_with_current_user_without_repeats():
    assert participant_ids_for("u1", ["u2", "u1", "u3", "u2"]) == ["u1", "u2", "u3"]


def test_creates_chat_and_participant_rows(data):
    chat = asyncio.run(ChatCreator(data).create("u1", "  Support ", ["u2"]))

    assert chat.name == "Support"
    assert list(data.tables["chats"]) == [chat.id]
    rows = data.tables["chat_participants"].values()
    assert sorted(row["user_id"] for row in rows) == ["u1", "u2"]
    assert {row["chat_id"] for row in rows} == {chat.id}


def test_blank_name_is_rejected_without_writes(data):
    with pytest.raises(ChatCreationError):
        asyncio.run(ChatCreator(data).create("u1", "   ", ["u2"]))
    assert data.calls_to("insert") == 0


class TestCompensation:
    """A failure at any stage leaves neither the chat nor any participant row."""

    def test_chat_insert_failure(self, data):
        data.fail("insert", "chats", InsertError("rejected"))

        with pytest.raises(ChatCreationError) as exc_info:
            asyncio.run(ChatCreator(data).create("u1", "Support", ["u2", "u3"]))

        assert exc_info.value.compensated
        assert data.tables["chats"] == {}
        assert data.tables["chat_participants"] == {}

    @pytest.mark.parametrize("failing_participant", [0, 1, 2])
    def test_participant_insert_failure(self, data, failing_participant):
        data.fail("insert", "chat_participants", InsertError("rejected"), skip=failing_participant)

        with pytest.raises(ChatCreationError) as exc_info:
            asyncio.run(ChatCreator(data).create("u1", "Support", ["u2", "u3"]))

        assert exc_info.value.compensated
        assert data.tables["chats"] == {}
        assert data.tables["chat_participants"] == {}
        assert data.calls_to("delete", "chat_participants") == failing_participant
        assert data.calls_to("delete", "chats") == 1

    def test_failed_cleanup_is_reported(self, data):
        data.fail("insert", "chat_participants", InsertError("rejected"), skip=1)
        data.fail("delete", "chats", InsertError("unreachable"))

        with pytest.raises(ChatCreationError) as exc_info:
            asyncio.run(ChatCreator(data).create("u1", "Support", ["u2"]))

        assert not exc_info.value.compensated
        assert "cleanup did not complete" in str(exc_info.value)
        assert data.tables["chat_participants"] == {}


def test_session_notifies_on_creation_failure(data, notifier):
    from app.chat.sessions import ChatSessionSynchronizer
    from app.core.messages import CHAT_CREATE_FAILED

    data.fail("insert", "chat_participants", InsertError("rejected"), skip=1)

    async def scenario():
        session = ChatSessionSynchronizer(data, notifier)
        await session.start()
        assert await session.create_chat("Support", ["u2"]) is None
        assert session.chats == []
        await session.logout()

    asyncio.run(scenario())
    assert notifier.errors[-1].title == CHAT_CREATE_FAILED
