"""Chat tables: chats, their participants, messages and labels."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import TimestampedModel, utcnow


class Label(TimestampedModel):
    """Tag attachable to a chat for filtering."""

    __tablename__ = "labels"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False, default="#9ca3af")


class Chat(TimestampedModel):
    """Conversation shown in the inbox list."""

    __tablename__ = "chats"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Denormalized cache for list rendering, updated after each sent message
    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    label_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("labels.id", ondelete="SET NULL"), nullable=True
    )
    assigned_to: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class ChatParticipant(TimestampedModel):
    """Membership row; a chat is only visible to its participants."""

    __tablename__ = "chat_participants"
    __table_args__ = (UniqueConstraint("chat_id", "user_id", name="uq_chat_participant"),)

    chat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )


class Message(TimestampedModel):
    """Immutable chat message, optionally carrying one attachment."""

    __tablename__ = "messages"

    chat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attachment_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    attachment_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
