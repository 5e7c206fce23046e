from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import TimestampedModel


class Identity(TimestampedModel):
    """Authentication record; a profile row shares its id."""

    __tablename__ = "identities"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    user_metadata: Mapped[dict] = mapped_column(JSON, default=dict)


class UserProfile(TimestampedModel):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
