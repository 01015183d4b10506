"""
Unit tests for direct chats between marketplace users.
"""

from datetime import datetime

import pytest

from manufacturing_marketplace import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from manufacturing_marketplace.chats import DEFAULT_MESSAGES_LIMIT, MAX_MESSAGES_LIMIT, clamp_limit


def set_times(service, records, repo_name, attribute, start):
    """Give stored records fixed, increasing timestamps."""
    repo = getattr(service.store, repo_name)
    for minute, record in enumerate(records):
        stored = repo.get(record.id)
        setattr(stored, attribute, start.replace(minute=minute))
        repo.upsert(stored.id, stored)


# Tests for starting chats

class TestStartChat:
    def test_start_chat(self, service, creator, manufacturer, order):
        chat = service.start_direct_chat(creator, manufacturer.user_id, order.id)
        assert set(chat.members) == {creator.user_id, manufacturer.user_id}
        assert chat.is_direct_message
        assert chat.order_id == order.id

    def test_existing_chat_is_reused_from_either_side(self, service, creator, manufacturer):
        first = service.start_direct_chat(creator, manufacturer.user_id)
        again = service.start_direct_chat(manufacturer, creator.user_id)
        assert again.id == first.id
        assert len(service.list_chats(creator)) == 1

    def test_chat_with_yourself_is_rejected(self, service, creator):
        with pytest.raises(ValidationError):
            service.start_direct_chat(creator, creator.user_id)

    def test_blank_target_is_rejected(self, service, creator):
        with pytest.raises(ValidationError):
            service.start_direct_chat(creator, "  ")

    def test_unknown_order_is_not_found(self, service, creator, manufacturer):
        with pytest.raises(NotFoundError):
            service.start_direct_chat(creator, manufacturer.user_id, "missing-order")

    def test_identity_is_required(self, service, manufacturer):
        with pytest.raises(UnauthorizedError):
            service.start_direct_chat(None, manufacturer.user_id)


# Tests for messages

class TestMessages:
    def test_send_and_read(self, service, creator, manufacturer):
        chat = service.start_direct_chat(creator, manufacturer.user_id)
        sent = service.send_chat_message(creator, chat.id, "  Can you hold 0.01 mm on the bore? ")
        assert sent.content == "Can you hold 0.01 mm on the bore?"
        assert sent.read_by == (creator.user_id,)

        messages = service.get_chat_messages(manufacturer, chat.id)
        assert [message.id for message in messages] == [sent.id]

    def test_blank_content_is_rejected(self, service, creator, manufacturer):
        chat = service.start_direct_chat(creator, manufacturer.user_id)
        with pytest.raises(ValidationError):
            service.send_chat_message(creator, chat.id, " \n ")
        assert service.get_chat_messages(creator, chat.id) == []

    def test_only_members_read_and_send(self, service, creator, manufacturer, rival_manufacturer):
        chat = service.start_direct_chat(creator, manufacturer.user_id)
        with pytest.raises(ForbiddenError):
            service.get_chat_messages(rival_manufacturer, chat.id)
        with pytest.raises(ForbiddenError):
            service.send_chat_message(rival_manufacturer, chat.id, "Hello")
        assert service.list_chats(rival_manufacturer) == []

    def test_unknown_chat_is_not_found(self, service, creator):
        with pytest.raises(NotFoundError):
            service.send_chat_message(creator, "missing-chat", "Hello")

    def test_limit_and_before_page_backwards(self, service, creator, manufacturer):
        chat = service.start_direct_chat(creator, manufacturer.user_id)
        sent = [service.send_chat_message(creator, chat.id, f"message {index}") for index in range(4)]
        set_times(service, sent, "chat_messages", "time_sent", datetime(2030, 1, 1, 12))

        latest = service.get_chat_messages(creator, chat.id, limit=2)
        assert [message.content for message in latest] == ["message 2", "message 3"]

        older = service.get_chat_messages(creator, chat.id, limit=2, before=datetime(2030, 1, 1, 12, 2))
        assert [message.content for message in older] == ["message 0", "message 1"]

    @pytest.mark.parametrize(
        "limit, expected",
        [(None, DEFAULT_MESSAGES_LIMIT), (0, 1), (5, 5), (10_000, MAX_MESSAGES_LIMIT), (True, DEFAULT_MESSAGES_LIMIT)],
    )
    def test_clamp_limit(self, limit, expected):
        assert clamp_limit(limit) == expected


# Tests for the chat list

class TestChatList:
    def test_sorted_by_latest_activity(self, service, creator, manufacturer, rival_manufacturer):
        older = service.start_direct_chat(creator, manufacturer.user_id)
        newer = service.start_direct_chat(creator, rival_manufacturer.user_id)
        set_times(service, [older, newer], "chats", "created_at", datetime(2020, 1, 1))
        assert [summary.chat.id for summary in service.list_chats(creator)] == [newer.id, older.id]

        service.send_chat_message(manufacturer, older.id, "Quote attached")
        summaries = service.list_chats(creator)
        assert [summary.chat.id for summary in summaries] == [older.id, newer.id]
        assert summaries[0].last_message.content == "Quote attached"
        assert summaries[1].last_message is None

    def test_unread_count(self, service, creator, manufacturer):
        chat = service.start_direct_chat(creator, manufacturer.user_id)
        service.send_chat_message(creator, chat.id, "First")
        service.send_chat_message(creator, chat.id, "Second")
        assert service.list_chats(manufacturer)[0].unread_count == 2
        assert service.list_chats(creator)[0].unread_count == 0

    def test_chats_survive_on_sqlite(self, sqlite_service, creator, manufacturer):
        chat = sqlite_service.start_direct_chat(creator, manufacturer.user_id)
        sqlite_service.send_chat_message(manufacturer, chat.id, "Hello")
        summaries = sqlite_service.list_chats(creator)
        assert summaries[0].chat.last_activity is not None
        assert summaries[0].last_message.content == "Hello"
