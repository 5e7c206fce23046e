"""Session bootstrap: resolve the signed-in user and their initial chat list."""

import logging
from typing import List

from app.core.exceptions import AuthError
from app.core.messages import AUTH_NOT_AUTHENTICATED
from app.data.access import DataAccess

from .queries import ChatQueries
from .schemas import Chat, User


logger = logging.getLogger("app.chat.bootstrap")

DEFAULT_DISPLAY_NAME = "User"


def display_name_for(email: str, metadata: dict) -> str:
    full_name = (metadata or {}).get("full_name")
    if full_name:
        return full_name
    local_part = email.split("@")[0] if email else ""
    return local_part or DEFAULT_DISPLAY_NAME


class SessionBootstrap:
    def __init__(self, data: DataAccess, queries: ChatQueries | None = None):
        self.data = data
        self.queries = queries or ChatQueries(data)

    async def get_current_user(self) -> User:
        """Resolve the authenticated identity. Raises AuthError, never retried."""
        identity = await self.data.get_current_identity()
        if identity is None:
            raise AuthError(AUTH_NOT_AUTHENTICATED)

        profile = await self.queries.get_user(identity.id)
        if profile is not None:
            return profile

        # No profile row yet: derive one from the identity
        return User(
            id=identity.id,
            email=identity.email,
            full_name=display_name_for(identity.email, identity.user_metadata),
            phone_number=(identity.user_metadata or {}).get("phone_number"),
        )

    async def ensure_user_profile(self, user: User) -> User:
        """Insert the profile row for ``user`` if it does not exist yet."""
        existing = await self.queries.get_user(user.id)
        if existing is not None:
            return existing

        row = await self.data.insert(
            "users",
            {
                "id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "phone_number": user.phone_number,
                "avatar_url": user.avatar_url,
            },
        )
        logger.info("User profile created: user_id=%s", user.id)
        return User.model_validate(row)

    async def list_chats_for_user(self, user_id: str) -> List[Chat]:
        return await self.queries.list_for_user(user_id)
