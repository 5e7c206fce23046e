"""Chat creation with compensating deletes.

The backend offers no multi-statement transaction to the client, so a chat
and its participant rows are written one by one and rolled back by hand when
any step fails. A chat with missing participants is never left behind.
"""

import logging
from typing import Iterable, List

from app.core.exceptions import ChatAppError, ChatCreationError
from app.core.messages import CHAT_NAME_REQUIRED
from app.data.access import DataAccess

from .schemas import Chat


logger = logging.getLogger("app.chat.creation")


def participant_ids_for(current_user_id: str, participant_ids: Iterable[str]) -> List[str]:
    """Current user first, then the requested participants, without repeats."""
    ordered: List[str] = []
    for user_id in [current_user_id, *participant_ids]:
        if user_id and user_id not in ordered:
            ordered.append(user_id)
    return ordered


class ChatCreator:
    def __init__(self, data: DataAccess):
        self.data = data

    async def create(self, current_user_id: str, name: str, participant_ids: Iterable[str]) -> Chat:
        name = name.strip()
        if not name:
            raise ChatCreationError(CHAT_NAME_REQUIRED)

        members = participant_ids_for(current_user_id, participant_ids)

        try:
            chat_row = await self.data.insert("chats", {"name": name})
        except ChatAppError as e:
            raise ChatCreationError(f"Could not create chat: {e}") from e

        chat = Chat.model_validate(chat_row)
        inserted: List[str] = []

        for user_id in members:
            try:
                row = await self.data.insert(
                    "chat_participants", {"chat_id": chat.id, "user_id": user_id}
                )
            except ChatAppError as e:
                logger.warning(
                    "Participant insert failed, compensating: chat_id=%s, user_id=%s, error=%s",
                    chat.id,
                    user_id,
                    e,
                )
                await self._compensate(chat.id, inserted, cause=e)
                raise ChatCreationError(f"Could not add participant {user_id}: {e}") from e
            inserted.append(row["id"])

        logger.info(
            "Chat created: chat_id=%s, name=%s, participants=%d",
            chat.id,
            name,
            len(inserted),
        )
        return chat

    async def _compensate(self, chat_id: str, participant_row_ids: List[str], cause: Exception) -> None:
        try:
            for row_id in reversed(participant_row_ids):
                await self.data.delete("chat_participants", row_id)
            await self.data.delete("chats", chat_id)
        except ChatAppError as e:
            logger.error(
                "Compensation failed, partial chat may remain: chat_id=%s, error=%s",
                chat_id,
                e,
            )
            raise ChatCreationError(
                f"Chat creation failed ({cause}) and cleanup did not complete: {e}",
                compensated=False,
            ) from e
        logger.info(
            "Partial chat removed: chat_id=%s, participants_removed=%d",
            chat_id,
            len(participant_row_ids),
        )
