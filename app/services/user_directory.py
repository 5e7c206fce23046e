"""User directory: create sign-in identities together with their profile rows."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from app.chat.queries import ChatQueries
from app.chat.schemas import User
from app.core.config import settings
from app.core.exceptions import CooldownError, RateLimitError
from app.core.messages import USER_ADD_COOLDOWN
from app.core.security import generate_password
from app.data.access import DataAccess, Identity


logger = logging.getLogger("app.services.user_directory")

DEFAULT_TEST_USER = {
    "email": "7808804225@periskope.com",
    "full_name": "Test User",
    "phone_number": "7808804225",
}


class UserDirectory:
    """Adds users, guarded by a client-side cooldown and a bounded retry."""

    def __init__(
        self,
        data: DataAccess,
        cooldown_seconds: float = settings.ADD_USER_COOLDOWN_SECONDS,
        max_retries: int = settings.IDENTITY_MAX_RETRIES,
        retry_delay_seconds: float = settings.IDENTITY_RETRY_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.data = data
        self.queries = ChatQueries(data)
        self.cooldown_seconds = cooldown_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_attempt_at: Optional[float] = None

    def _check_cooldown(self) -> None:
        now = self._clock()
        if self._last_attempt_at is not None:
            elapsed = now - self._last_attempt_at
            if elapsed < self.cooldown_seconds:
                retry_after = self.cooldown_seconds - elapsed
                logger.info("Add user refused by cooldown: retry_after=%.2fs", retry_after)
                raise CooldownError(USER_ADD_COOLDOWN, retry_after=retry_after)
        self._last_attempt_at = now

    async def _create_identity(self, email: str, full_name: str, phone_number: str) -> Identity:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitError),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_fixed(self.retry_delay_seconds),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                identity = await self.data.sign_up(
                    email,
                    generate_password(),
                    {"full_name": full_name, "phone_number": phone_number},
                )
        return identity

    async def add_user(self, email: str, full_name: str, phone_number: str) -> User:
        """Create an identity and its profile row.

        Fails fast with CooldownError, without touching the backend, when
        called again within the cooldown window.
        """
        self._check_cooldown()

        identity = await self._create_identity(email, full_name, phone_number)
        row = await self.data.insert(
            "users",
            {
                "id": identity.id,
                "email": email,
                "full_name": full_name,
                "phone_number": phone_number,
            },
        )
        logger.info("User added: user_id=%s, email=%s", identity.id, email)
        return User.model_validate(row)

    async def add_default_user(self) -> User:
        return await self.add_user(**DEFAULT_TEST_USER)

    async def list_users(self) -> List[User]:
        return await self.queries.list_users()
