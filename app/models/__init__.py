from .base import Base  # noqa: F401
from .user import Identity, UserProfile  # noqa: F401
from .chat import Chat, ChatParticipant, Label, Message  # noqa: F401
