"""Registry of live chat sessions, one per access token."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from app.core.exceptions import AuthError
from app.core.messages import AUTH_SESSION_CLOSED, AUTH_SESSION_EXPIRED
from app.data.access import DataAccess
from app.services.user_directory import UserDirectory

from .notifications import BufferedNotifier
from .sessions import ChatSessionSynchronizer


logger = logging.getLogger("app.chat.registry")

DataAccessFactory = Callable[[str], DataAccess]
ExpiryResolver = Callable[[str], Optional[float]]


def _never_expires(token: str) -> Optional[float]:
    return None


@dataclass
class SessionHandle:
    token: str
    synchronizer: ChatSessionSynchronizer
    notifier: BufferedNotifier
    directory: UserDirectory
    expires_at: Optional[float] = None
    changes: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=256))
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def on_change(self, container: str) -> None:
        # A full queue already guarantees a pending snapshot push
        if not self.changes.full():
            self.changes.put_nowait(container)

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class SessionRegistry:
    """Keeps one started synchronizer per access token.

    Sessions are dropped on logout, when their token expires, and when the
    token stops resolving to an identity.
    """

    def __init__(
        self,
        data_factory: DataAccessFactory,
        expiry_of: ExpiryResolver = _never_expires,
        clock: Callable[[], float] = time.time,
    ):
        self.data_factory = data_factory
        self._expiry_of = expiry_of
        self._clock = clock
        self._sessions: Dict[str, SessionHandle] = {}
        # Signed-out tokens stay unusable until they expire
        self._revoked: Dict[str, Optional[float]] = {}
        self._starting: Dict[str, asyncio.Lock] = {}

    async def open(self, token: str) -> SessionHandle:
        """Return the session for ``token``, starting it on first use.

        Raises AuthError when the token does not resolve to an identity.
        """
        await self.prune()
        if token in self._revoked:
            raise AuthError(AUTH_SESSION_CLOSED)

        handle = self._sessions.get(token)
        if handle is not None:
            return await self._revalidate(handle)

        # Only concurrent first requests for the same token wait on each other
        lock = self._starting.setdefault(token, asyncio.Lock())
        try:
            async with lock:
                handle = self._sessions.get(token)
                if handle is None:
                    handle = await self._start(token)
        finally:
            if self._starting.get(token) is lock and not lock.locked():
                del self._starting[token]
        return handle

    async def _start(self, token: str) -> SessionHandle:
        data = self.data_factory(token)
        notifier = BufferedNotifier()
        synchronizer = ChatSessionSynchronizer(data, notifier)
        handle = SessionHandle(
            token=token,
            synchronizer=synchronizer,
            notifier=notifier,
            directory=UserDirectory(data),
            expires_at=self._expiry_of(token),
        )
        synchronizer.add_listener(handle.on_change)
        await synchronizer.start()

        if token in self._revoked:
            await synchronizer.logout()
            raise AuthError(AUTH_SESSION_CLOSED)
        existing = self._sessions.get(token)
        if existing is not None:
            await synchronizer.logout()
            return existing

        self._sessions[token] = handle
        logger.info("Session registered: user_id=%s, total=%d", synchronizer.current_user.id, len(self._sessions))
        return handle

    async def _revalidate(self, handle: SessionHandle) -> SessionHandle:
        identity = await handle.synchronizer.data.get_current_identity()
        if identity is not None:
            return handle
        logger.info("Session token no longer valid: session_id=%s", handle.session_id)
        await self._drop(handle)
        raise AuthError(AUTH_SESSION_EXPIRED)

    async def _drop(self, handle: SessionHandle) -> None:
        if self._sessions.get(handle.token) is handle:
            del self._sessions[handle.token]
        await handle.synchronizer.logout()

    async def prune(self) -> int:
        """Tear down sessions whose token has expired and forget expired revocations.

        Returns:
            Number of sessions torn down
        """
        now = self._clock()
        expired = [handle for handle in self._sessions.values() if handle.expired(now)]
        for token, expires_at in list(self._revoked.items()):
            if expires_at is not None and now >= expires_at:
                del self._revoked[token]
        for handle in expired:
            logger.info("Session expired: session_id=%s", handle.session_id)
            await self._drop(handle)
        return len(expired)

    def get(self, token: str) -> Optional[SessionHandle]:
        return self._sessions.get(token)

    async def close(self, token: str) -> bool:
        self._revoked[token] = self._expiry_of(token)
        handle = self._sessions.pop(token, None)
        if handle is None:
            return False
        await handle.synchronizer.logout()
        return True

    async def close_all(self) -> None:
        handles = list(self._sessions.values())
        self._sessions.clear()
        for handle in handles:
            await handle.synchronizer.logout()

    def __len__(self) -> int:
        return len(self._sessions)
