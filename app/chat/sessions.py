"""Chat session synchronizer.

Keeps one user's in-memory view (chat list, active chat, its messages and the
label/user directory) consistent with their own actions and with the push
event feed of newly created messages.

Every container is replaced, never mutated in place: a mutation reads the
current list, builds a new one and assigns it in a single step. The event
handler and user-initiated reloads may interleave at their await points; the
last assignment to a container wins.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from app.core import messages as texts
from app.core.exceptions import (
    AuthError,
    ChatAppError,
    ChatCreationError,
    InsertError,
    QueryError,
    UploadError,
)
from app.data.access import ChangeEvent, ChangeKind, DataAccess
from app.data.feed import Subscription

from .bootstrap import SessionBootstrap
from .creation import ChatCreator
from .messages import MessageHandler, merge_message
from .notifications import Notifier, error, info
from .queries import ChatQueries, sort_chats
from .schemas import Chat, ChatFilters, Label, Message, OutgoingAttachment, User


logger = logging.getLogger("app.chat.sessions")

ChangeListener = Callable[[str], None]


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    NO_CHATS = "no_chats"
    CHATS_IDLE = "chats_idle"
    CHAT_ACTIVE = "chat_active"


class ChatSessionSynchronizer:
    """Manages the client-side state of one chat session."""

    def __init__(self, data: DataAccess, notifier: Notifier):
        self.data = data
        self.notifier = notifier
        self.queries = ChatQueries(data)
        self.bootstrap = SessionBootstrap(data, self.queries)
        self.message_handler = MessageHandler(data)
        self.creator = ChatCreator(data)

        self.current_user: Optional[User] = None
        self.chats: List[Chat] = []
        self.active_chat: Optional[Chat] = None
        self.messages: List[Message] = []
        self.labels: List[Label] = []
        self.users: List[User] = []
        self.filters = ChatFilters()

        self._authenticated = False
        self._authenticating = False
        self._closed = False
        self._subscription: Optional[Subscription] = None
        self._reader: Optional[asyncio.Task] = None
        self._listeners: List[ChangeListener] = []

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        if self._authenticating:
            return SessionState.AUTHENTICATING
        if not self._authenticated:
            return SessionState.UNAUTHENTICATED
        if not self.chats:
            return SessionState.NO_CHATS
        if self.active_chat is None:
            return SessionState.CHATS_IDLE
        return SessionState.CHAT_ACTIVE

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self, container: str) -> None:
        for listener in list(self._listeners):
            listener(container)

    def _set_chats(self, chats: List[Chat]) -> None:
        self.chats = sort_chats(chats)
        self._changed("chats")

    def _set_messages(self, messages: List[Message]) -> None:
        self.messages = messages
        self._changed("messages")

    def _require_user(self) -> User:
        if self.current_user is None or not self._authenticated:
            raise AuthError(texts.AUTH_NOT_AUTHENTICATED)
        return self.current_user

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Authenticate, load the initial state and open the live subscription.

        Raises AuthError (after returning to the unauthenticated state) when
        there is no signed-in identity. Starting a started session does nothing.
        """
        if self._closed:
            raise AuthError(texts.AUTH_SESSION_CLOSED)
        if self._authenticated or self._authenticating:
            return

        self._authenticating = True
        try:
            user = await self.bootstrap.get_current_user()
            user = await self.bootstrap.ensure_user_profile(user)
        except AuthError:
            logger.info("Session start refused: not authenticated")
            raise
        except ChatAppError as e:
            logger.error("Session bootstrap failed: error=%s", e)
            raise AuthError(str(e)) from e
        finally:
            self._authenticating = False

        self.current_user = user
        self._authenticated = True
        logger.info("Session started: user_id=%s", user.id)

        await self.refresh_chats()
        await self.load_directory()
        await self._open_subscription()

        if self.chats:
            await self.select_chat(self.chats[0])

    async def _open_subscription(self) -> None:
        if self._subscription is not None:
            return
        self._subscription = await self.data.subscribe("messages", [ChangeKind.INSERT])
        self._reader = asyncio.create_task(self._consume(self._subscription))

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                await self.handle_incoming_message(event)
            except Exception:
                logger.exception("Failed to apply incoming message event")

    async def logout(self) -> None:
        """Sign out and tear the session down. The session cannot be restarted."""
        if self._closed:
            return
        self._closed = True

        try:
            await self.data.sign_out()
        finally:
            await self._close_subscription()
            user_id = self.current_user.id if self.current_user else None
            self._authenticated = False
            self.current_user = None
            self.active_chat = None
            self._set_messages([])
            self._set_chats([])
            self.labels = []
            self.users = []
            self.filters = ChatFilters()
            self._changed("session")
            logger.info("Session closed: user_id=%s", user_id)

    async def _close_subscription(self) -> None:
        subscription, reader = self._subscription, self._reader
        self._subscription = None
        self._reader = None
        if subscription is not None:
            await self.data.unsubscribe(subscription)
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    # -- chat list -----------------------------------------------------------

    async def refresh_chats(self) -> None:
        user = self._require_user()
        try:
            chats = await self.bootstrap.list_chats_for_user(user.id)
        except QueryError as e:
            self.notifier.notify(error(texts.CHAT_FETCH_FAILED, str(e)))
            return
        self._set_chats(chats)

    async def load_directory(self) -> None:
        """Refresh the label and user caches used by filters and chat creation."""
        try:
            self.labels = await self.queries.list_labels()
        except QueryError as e:
            self.notifier.notify(error(texts.LABEL_FETCH_FAILED, str(e)))
        try:
            self.users = await self.queries.list_users()
        except QueryError as e:
            self.notifier.notify(error(texts.USER_FETCH_FAILED, str(e)))
        self._changed("directory")

    async def search(self, text: str) -> None:
        user = self._require_user()
        self.filters = self.filters.model_copy(update={"search_text": text})
        await self._replace_chats(self.queries.search(user.id, text))

    async def filter_by_label(self, label_id: Optional[str]) -> None:
        user = self._require_user()
        self.filters = self.filters.model_copy(update={"label_id": label_id})
        await self._replace_chats(self.queries.by_label(user.id, label_id))

    async def filter_by_assignee(self, assignee_id: Optional[str]) -> None:
        user = self._require_user()
        self.filters = self.filters.model_copy(update={"assignee_id": assignee_id})
        await self._replace_chats(self.queries.by_assignee(user.id, assignee_id))

    async def apply_filters(
        self,
        search_text: Optional[str] = None,
        label_id: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> None:
        """Re-query the chat list for each supplied filter dimension.

        Dimensions are not intersected: each one replaces the list on its own,
        in the order search, label, assignee, so the last supplied one wins.
        """
        if search_text is None and label_id is None and assignee_id is None:
            self.filters = ChatFilters()
            await self.refresh_chats()
            return
        if search_text is not None:
            await self.search(search_text)
        if label_id is not None:
            await self.filter_by_label(label_id)
        if assignee_id is not None:
            await self.filter_by_assignee(assignee_id)

    async def _replace_chats(self, pending) -> None:
        try:
            chats = await pending
        except QueryError as e:
            self.notifier.notify(error(texts.CHAT_FILTER_FAILED, str(e)))
            return
        self._set_chats(chats)

    async def create_chat(self, name: str, participant_ids: List[str]) -> Optional[Chat]:
        """Create a chat with the given participants and make it active."""
        user = self._require_user()
        try:
            chat = await self.creator.create(user.id, name, participant_ids)
        except ChatCreationError as e:
            self.notifier.notify(error(texts.CHAT_CREATE_FAILED, str(e)))
            return None

        self.notifier.notify(info(texts.CHAT_CREATED, texts.CHAT_CREATED_DESCRIPTION))
        await self.refresh_chats()
        created = next((c for c in self.chats if c.id == chat.id), chat)
        await self.select_chat(created)
        return created

    # -- active chat ---------------------------------------------------------

    async def select_chat(self, chat: Chat) -> None:
        """Switch the active chat and reload its messages.

        The switch happens even when loading fails; messages then stay empty.
        A fetch for a previously selected chat is not cancelled and may still
        overwrite the messages if it resolves last.
        """
        self._require_user()
        self.active_chat = chat
        self._changed("active_chat")
        self._set_messages([])

        try:
            messages = await self.message_handler.list_messages(chat.id)
        except QueryError as e:
            logger.warning("Message load failed: chat_id=%s, error=%s", chat.id, e)
            self.notifier.notify(error(texts.MESSAGE_FETCH_FAILED, str(e)))
            return
        self._set_messages(messages)

    async def select_chat_by_id(self, chat_id: str) -> Optional[Chat]:
        chat = next((c for c in self.chats if c.id == chat_id), None)
        if chat is None:
            return None
        await self.select_chat(chat)
        return chat

    async def send_message(
        self, content: str, attachment: Optional[OutgoingAttachment] = None
    ) -> Optional[Message]:
        """Send a message to the active chat.

        Does nothing without an active chat or when there is neither text nor
        an attachment. The message is not added locally; it shows up when the
        push feed echoes it back.
        """
        chat = self.active_chat
        if chat is None or (not content.strip() and attachment is None):
            return None
        user = self._require_user()

        try:
            return await self.message_handler.send(chat, user.id, content, attachment)
        except (UploadError, InsertError) as e:
            logger.warning("Send failed: chat_id=%s, error=%s", chat.id, e)
            self.notifier.notify(error(texts.MESSAGE_SEND_FAILED, str(e)))
            return None

    # -- push events ---------------------------------------------------------

    async def handle_incoming_message(self, event: ChangeEvent) -> None:
        """Apply a newly created message from the push feed.

        The message is added to ``messages`` only when its chat is active;
        the chat list entry is refreshed and re-sorted for every chat.
        """
        if event.table != "messages" or event.kind != ChangeKind.INSERT:
            return
        message = Message.model_validate(event.row)

        active = self.active_chat
        if active is not None and message.chat_id == active.id:
            sender = await self.message_handler.resolve_sender(message.sender_id)
            message = message.model_copy(update={"sender": sender})
            # The active chat may have changed while the sender was resolved
            if self.active_chat is not None and self.active_chat.id == message.chat_id:
                merged = merge_message(self.messages, message)
                if merged is not self.messages:
                    self._set_messages(merged)

        self._apply_to_chat_list(message)

    def _apply_to_chat_list(self, message: Message) -> None:
        updated = []
        changed = False
        for chat in self.chats:
            if chat.id == message.chat_id and message.created_at >= chat.last_message_at:
                chat = chat.model_copy(
                    update={"last_message": message.content, "last_message_at": message.created_at}
                )
                changed = True
            updated.append(chat)

        if not changed:
            return
        self._set_chats(updated)
        if self.active_chat is not None and self.active_chat.id == message.chat_id:
            self.active_chat = next(c for c in self.chats if c.id == message.chat_id)

    # -- views ---------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "current_user": self.current_user.model_dump(mode="json") if self.current_user else None,
            "chats": [c.model_dump(mode="json") for c in self.chats],
            "active_chat": self.active_chat.model_dump(mode="json") if self.active_chat else None,
            "messages": [m.model_dump(mode="json") for m in self.messages],
            "filters": self.filters.model_dump(),
        }
