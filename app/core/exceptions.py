"""Error taxonomy shared by the data layer, the synchronizer and the API."""


class ChatAppError(Exception):
    """Base class for expected, user-reportable failures."""


class AuthError(ChatAppError):
    """No authenticated identity; fatal to the session."""


class QueryError(ChatAppError):
    """A read against the backend failed."""


class InsertError(ChatAppError):
    """A write (insert, update or delete) against the backend failed."""


class UploadError(ChatAppError):
    """Attachment upload failed; the enclosing send is aborted."""


class RateLimitError(ChatAppError):
    """The backend refused the call because of its rate limit."""


class CooldownError(ChatAppError):
    """The client-side cooldown window has not elapsed yet."""

    def __init__(self, message: str, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ChatCreationError(ChatAppError):
    """Chat creation failed and its partial rows were compensated."""

    def __init__(self, message: str, compensated: bool = True) -> None:
        super().__init__(message)
        self.compensated = compensated
