"""Message handling for chat system."""

import logging
import uuid
from bisect import bisect_right
from datetime import datetime, timezone
from typing import List, Optional

from app.core.exceptions import ChatAppError, QueryError
from app.data.access import DataAccess, Eq, In, Order

from .schemas import Chat, Message, OutgoingAttachment, User


logger = logging.getLogger("app.chat.messages")


def attachment_path(chat_id: str, attachment: OutgoingAttachment) -> str:
    """Storage destination for an attachment: ``<chat_id>/<random>.<ext>``."""
    name = uuid.uuid4().hex
    if attachment.extension:
        name = f"{name}.{attachment.extension}"
    return f"{chat_id}/{name}"


def merge_message(messages: List[Message], message: Message) -> List[Message]:
    """Return a new list with ``message`` placed by creation time.

    A message whose id is already present is ignored.
    """
    if any(existing.id == message.id for existing in messages):
        logger.debug("Duplicate message event ignored: message_id=%s", message.id)
        return messages

    keys = [existing.created_at for existing in messages]
    position = bisect_right(keys, message.created_at)
    if position < len(messages):
        logger.debug(
            "Out-of-order message placed by timestamp: message_id=%s, position=%d",
            message.id,
            position,
        )
    return messages[:position] + [message] + messages[position:]


class MessageHandler:
    """Handles message creation and retrieval."""

    def __init__(self, data: DataAccess):
        self.data = data

    async def list_messages(self, chat_id: str) -> List[Message]:
        """Messages of a chat, oldest first, each with its sender resolved."""
        rows = await self.data.query(
            "messages", [Eq("chat_id", chat_id)], Order("created_at")
        )
        sender_ids = sorted({row["sender_id"] for row in rows})
        senders = {}
        if sender_ids:
            user_rows = await self.data.query("users", [In("id", sender_ids)])
            senders = {row["id"]: User.model_validate(row) for row in user_rows}

        messages = [
            Message.model_validate({**row, "sender": senders.get(row["sender_id"])})
            for row in rows
        ]
        return sorted(messages, key=lambda m: m.created_at)

    async def resolve_sender(self, sender_id: str) -> Optional[User]:
        """Look up a sender; ``None`` means the sender is unknown."""
        try:
            row = await self.data.get_by_id("users", sender_id)
        except QueryError as e:
            logger.warning("Sender lookup failed: sender_id=%s, error=%s", sender_id, e)
            return None
        return User.model_validate(row) if row is not None else None

    async def send(
        self,
        chat: Chat,
        sender_id: str,
        content: str,
        attachment: Optional[OutgoingAttachment] = None,
    ) -> Message:
        """Write a message row, uploading its attachment first.

        UploadError aborts before anything is written. The chat's cached
        last message is refreshed afterwards on a best-effort basis.
        """
        attachment_url = None
        attachment_type = None
        if attachment is not None:
            uploaded = await self.data.upload_file(
                attachment.data,
                attachment_path(chat.id, attachment),
                attachment.content_type,
            )
            attachment_url = uploaded.url
            attachment_type = uploaded.mime_type

        now = datetime.now(timezone.utc)
        row = await self.data.insert(
            "messages",
            {
                "chat_id": chat.id,
                "sender_id": sender_id,
                "content": content,
                "created_at": now,
                "attachment_url": attachment_url,
                "attachment_type": attachment_type,
            },
        )
        message = Message.model_validate(row)

        try:
            await self.data.update(
                "chats",
                chat.id,
                {"last_message": content, "last_message_at": message.created_at},
            )
        except ChatAppError as e:
            logger.warning(
                "Chat last-message cache not updated: chat_id=%s, message_id=%s, error=%s",
                chat.id,
                message.id,
                e,
            )

        logger.info(
            "Message created: message_id=%s, chat_id=%s, attachment=%s",
            message.id,
            chat.id,
            attachment_url is not None,
        )
        return message
