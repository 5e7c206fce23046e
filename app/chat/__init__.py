"""Chat inbox: session synchronizer and its collaborators."""

from .schemas import Chat, ChatFilters, Label, Message, OutgoingAttachment, User
from .notifications import BufferedNotifier, LoggingNotifier, Notification, Notifier
from .sessions import ChatSessionSynchronizer, SessionState
from .creation import ChatCreator
from .messages import MessageHandler

__all__ = [
    "Chat",
    "ChatFilters",
    "Label",
    "Message",
    "OutgoingAttachment",
    "User",
    "BufferedNotifier",
    "LoggingNotifier",
    "Notification",
    "Notifier",
    "ChatSessionSynchronizer",
    "SessionState",
    "ChatCreator",
    "MessageHandler",
]
