"""Pydantic schemas for the chat domain.

These are the transient, derived copies the synchronizer holds; the backend
owns the rows.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore", frozen=True)


class User(DomainModel):
    id: str
    email: str
    full_name: str
    phone_number: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None


class Label(DomainModel):
    id: str
    name: str
    color: str
    created_at: Optional[datetime] = None


class Chat(DomainModel):
    id: str
    name: str
    last_message: Optional[str] = None
    last_message_at: datetime
    label_id: Optional[str] = None
    assigned_to: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("last_message_at", "created_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None


class Message(DomainModel):
    id: str
    chat_id: str
    sender_id: str
    content: str = ""
    created_at: datetime
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None
    sender: Optional[User] = None  # None when the sender could not be resolved

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return _as_utc(v)


class ChatFilters(DomainModel):
    search_text: Optional[str] = None
    label_id: Optional[str] = None
    assignee_id: Optional[str] = None


class OutgoingAttachment(BaseModel):
    """A file picked by the user, not yet uploaded."""

    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        return ext if dot else ""


class CreateChatRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    participant_ids: list[str] = Field(default_factory=list)


class FilterRequest(BaseModel):
    search_text: Optional[str] = None
    label_id: Optional[str] = None
    assignee_id: Optional[str] = None


class AddUserRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., min_length=1, max_length=50)
