"""Direct messaging between creators and manufacturers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from .base import MarketplaceComponent, require_identity
from .domain import Actor, Chat, ChatMessage
from .exceptions import ForbiddenError, ValidationError
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MESSAGES_LIMIT = 50
MAX_MESSAGES_LIMIT = 200


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None or isinstance(limit, bool) or not isinstance(limit, int):
        return DEFAULT_MESSAGES_LIMIT
    return min(max(limit, 1), MAX_MESSAGES_LIMIT)


@dataclass(slots=True)
class ChatSummary:
    chat: Chat
    last_message: Optional[ChatMessage]
    unread_count: int = 0


class ChatBoard(MarketplaceComponent):
    """Starts direct chats and stores their messages."""

    def _chat(self, chat_id: str) -> Chat:
        return self._load(self.store.chats, chat_id, "Chat")

    def _member_chat(self, actor: Actor, chat_id: str) -> Chat:
        chat = self._chat(chat_id)
        if actor.user_id not in chat.members:
            raise ForbiddenError(
                f"User {actor.user_id!r} is not a member of chat {chat_id!r}",
                {"chat_id": chat_id},
            )
        return chat

    def _messages(self, chat_id: str) -> List[ChatMessage]:
        messages = self.store.chat_messages.filter(lambda message: message.chat_id == chat_id)
        messages.sort(key=lambda message: message.time_sent)
        return messages

    def start_direct_chat(
        self, actor: Actor, target_user_id: str, order_id: Optional[str] = None
    ) -> Chat:
        """Return the direct chat between the caller and ``target_user_id``, creating it if needed."""
        actor = require_identity(actor)
        target = (target_user_id or "").strip()
        if not target:
            raise ValidationError("Missing target user id")
        if target == actor.user_id:
            raise ValidationError("Cannot start a chat with yourself")
        if order_id is not None:
            self._load_order(order_id)
        pair = {actor.user_id, target}
        with self._unit_of_work("start chat"):
            existing = self.store.chats.filter(
                lambda item: item.is_direct_message and set(item.members) == pair
            )
            if existing:
                return existing[0]
            chat = Chat(id=str(uuid4()), members=(actor.user_id, target), order_id=order_id)
            self.store.chats.add(chat.id, chat)
        logger.info("Chat %s started between %s and %s", chat.id, actor.user_id, target)
        return chat

    def list_chats(self, actor: Actor) -> List[ChatSummary]:
        """Chats the caller belongs to, most recent activity first."""
        actor = require_identity(actor)
        summaries = []
        for chat in self.store.chats.filter(lambda item: actor.user_id in item.members):
            messages = self._messages(chat.id)
            summaries.append(
                ChatSummary(
                    chat=chat,
                    last_message=messages[-1] if messages else None,
                    unread_count=sum(
                        1 for message in messages if actor.user_id not in message.read_by
                    ),
                )
            )
        summaries.sort(key=lambda summary: summary.chat.activity_at, reverse=True)
        return summaries

    def get_messages(
        self,
        actor: Actor,
        chat_id: str,
        *,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
    ) -> List[ChatMessage]:
        """The newest ``limit`` messages sent before ``before``, oldest first."""
        actor = require_identity(actor)
        self._member_chat(actor, chat_id)
        messages = self._messages(chat_id)
        if before is not None:
            messages = [message for message in messages if message.time_sent < before]
        return messages[-clamp_limit(limit):]

    def send_message(self, actor: Actor, chat_id: str, content: str) -> ChatMessage:
        actor = require_identity(actor)
        trimmed = (content or "").strip()
        if not trimmed:
            raise ValidationError("Missing content", {"chat_id": chat_id})
        with self._unit_of_work("send chat message"):
            chat = self._member_chat(actor, chat_id)
            message = ChatMessage(
                id=str(uuid4()),
                chat_id=chat_id,
                sender_id=actor.user_id,
                content=trimmed,
                read_by=(actor.user_id,),
            )
            self.store.chat_messages.add(message.id, message)
            chat.last_activity = message.time_sent
            self.store.chats.upsert(chat.id, chat)
        logger.debug("Message %s sent to chat %s", message.id, chat_id)
        return message


__all__ = ["ChatBoard", "ChatSummary", "clamp_limit"]
