"""Read-side queries for the chat list and the user/label directory."""

import logging
from typing import Iterable, List, Optional

from app.data.access import DataAccess, Eq, Filter, ILike, In, Order

from .schemas import Chat, Label, User


logger = logging.getLogger("app.chat.queries")

CHAT_ORDER = Order("last_message_at", descending=True)


def sort_chats(chats: Iterable[Chat]) -> List[Chat]:
    """Order chats by last activity, most recent first."""
    return sorted(chats, key=lambda chat: chat.last_message_at, reverse=True)


class ChatQueries:
    """Chat list lookups, always restricted to chats the user participates in."""

    def __init__(self, data: DataAccess):
        self.data = data

    async def member_chat_ids(self, user_id: str) -> List[str]:
        rows = await self.data.query("chat_participants", [Eq("user_id", user_id)])
        return [row["chat_id"] for row in rows]

    async def _chats(self, user_id: str, *filters: Filter) -> List[Chat]:
        chat_ids = await self.member_chat_ids(user_id)
        if not chat_ids:
            return []
        rows = await self.data.query("chats", [In("id", chat_ids), *filters], CHAT_ORDER)
        return sort_chats(Chat.model_validate(row) for row in rows)

    async def list_for_user(self, user_id: str) -> List[Chat]:
        return await self._chats(user_id)

    async def search(self, user_id: str, text: str) -> List[Chat]:
        text = text.strip()
        if not text:
            return await self._chats(user_id)
        return await self._chats(user_id, ILike("name", text))

    async def by_label(self, user_id: str, label_id: Optional[str]) -> List[Chat]:
        if label_id is None:
            return await self._chats(user_id)
        return await self._chats(user_id, Eq("label_id", label_id))

    async def by_assignee(self, user_id: str, assignee_id: Optional[str]) -> List[Chat]:
        if assignee_id is None:
            return await self._chats(user_id)
        return await self._chats(user_id, Eq("assigned_to", assignee_id))

    async def list_labels(self) -> List[Label]:
        rows = await self.data.query("labels", order=Order("name"))
        return [Label.model_validate(row) for row in rows]

    async def list_users(self) -> List[User]:
        rows = await self.data.query("users", order=Order("full_name"))
        return [User.model_validate(row) for row in rows]

    async def get_user(self, user_id: str) -> Optional[User]:
        row = await self.data.get_by_id("users", user_id)
        return User.model_validate(row) if row is not None else None
