"""Data Access collaborator contract.

The synchronizer only talks to the backend through this interface, so any
implementation (the SQLAlchemy one in ``app.data.sql`` or a test double) can be
injected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Optional, Protocol, Sequence

from pydantic import BaseModel

if TYPE_CHECKING:
    from .feed import Subscription

Row = dict[str, Any]


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """Row-change notification delivered by the push-event feed."""

    kind: ChangeKind
    table: str
    row: Row


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    user_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadedFile:
    url: str
    mime_type: Optional[str]


@dataclass(frozen=True)
class Eq:
    column: str
    value: Any

    def matches(self, row: Row) -> bool:
        return row.get(self.column) == self.value


@dataclass(frozen=True)
class ILike:
    """Case-insensitive substring match."""

    column: str
    text: str

    def matches(self, row: Row) -> bool:
        value = row.get(self.column)
        return value is not None and self.text.lower() in str(value).lower()


@dataclass(frozen=True)
class In:
    column: str
    values: tuple[Any, ...]

    def __init__(self, column: str, values: Iterable[Any]) -> None:
        object.__setattr__(self, "column", column)
        object.__setattr__(self, "values", tuple(values))

    def matches(self, row: Row) -> bool:
        return row.get(self.column) in self.values


Filter = Eq | ILike | In


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False

    def sort(self, rows: list[Row]) -> list[Row]:
        # Missing values sort last in both directions
        present = [r for r in rows if r.get(self.column) is not None]
        missing = [r for r in rows if r.get(self.column) is None]
        present.sort(key=lambda r: _sort_key(r[self.column]), reverse=self.descending)
        return present + missing


def _sort_key(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.timestamp()
    return value


class DataAccess(Protocol):
    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
    ) -> list[Row]: ...

    async def get_by_id(self, table: str, row_id: str) -> Optional[Row]: ...

    async def insert(self, table: str, row: Row) -> Row: ...

    async def update(self, table: str, row_id: str, values: Row) -> None: ...

    async def delete(self, table: str, row_id: str) -> None: ...

    async def upload_file(
        self, data: bytes, destination: str, content_type: Optional[str] = None
    ) -> UploadedFile: ...

    async def subscribe(self, table: str, event_kinds: Iterable[ChangeKind]) -> "Subscription": ...

    async def unsubscribe(self, subscription: "Subscription") -> None: ...

    async def get_current_identity(self) -> Optional[Identity]: ...

    async def sign_out(self) -> None: ...

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> Identity: ...
