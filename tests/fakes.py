"""In-memory test doubles for the data access and notifier collaborators."""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.core.exceptions import InsertError
from app.data.access import (
    ChangeEvent,
    ChangeKind,
    Filter,
    Identity,
    Order,
    Row,
    UploadedFile,
)
from app.data.feed import ChangeFeed, Subscription


BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


@dataclass
class _Failure:
    error: Exception
    skip: int
    times: int


class FakeDataAccess:
    """Dict-backed DataAccess that records calls and can be told to fail."""

    def __init__(self, identity: Optional[Identity] = None, feed: Optional[ChangeFeed] = None):
        self.identity = identity
        self.feed = feed or ChangeFeed()
        self.tables: Dict[str, Dict[str, Row]] = {
            name: {} for name in ("users", "chats", "chat_participants", "messages", "labels")
        }
        self.identities: Dict[str, Identity] = {}
        self.uploads: Dict[str, bytes] = {}
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.signed_out = False
        self._failures: Dict[Tuple[str, Optional[str]], List[_Failure]] = {}
        self._holds: Dict[Tuple[str, Optional[str]], List[asyncio.Event]] = {}
        self._clock = at(0)

    # -- test controls -------------------------------------------------------

    def fail(self, method: str, table: Optional[str], error: Exception, skip: int = 0, times: int = 1) -> None:
        """Raise ``error`` on matching calls after ``skip`` successful ones."""
        self._failures.setdefault((method, table), []).append(_Failure(error, skip, times))

    def hold(self, method: str, table: Optional[str]) -> asyncio.Event:
        """Block the next matching call until the returned event is set."""
        event = asyncio.Event()
        self._holds.setdefault((method, table), []).append(event)
        return event

    def seed(self, table: str, **values: Any) -> Row:
        row = self._complete(table, values)
        self.tables[table][row["id"]] = row
        return row

    def calls_to(self, method: str, table: Optional[str] = None) -> int:
        return sum(1 for m, t in self.calls if m == method and (table is None or t == table))

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _complete(self, table: str, values: Row) -> Row:
        row = dict(values)
        row.setdefault("id", uuid.uuid4().hex)
        row.setdefault("created_at", self._tick())
        if table == "chats":
            row.setdefault("last_message", None)
            row.setdefault("last_message_at", row["created_at"])
            row.setdefault("label_id", None)
            row.setdefault("assigned_to", None)
        if table == "labels":
            row.setdefault("color", "#9ca3af")
        if table == "messages":
            row.setdefault("content", "")
            row.setdefault("attachment_url", None)
            row.setdefault("attachment_type", None)
        return row

    async def _enter(self, method: str, table: Optional[str] = None) -> None:
        self.calls.append((method, table))
        holds = self._holds.get((method, table))
        if holds:
            await holds.pop(0).wait()
        for failure in self._failures.get((method, table), []):
            if failure.skip > 0:
                failure.skip -= 1
                continue
            if failure.times > 0:
                failure.times -= 1
                raise failure.error

    # -- DataAccess ----------------------------------------------------------

    async def query(self, table: str, filters: Sequence[Filter] = (), order: Optional[Order] = None) -> List[Row]:
        await self._enter("query", table)
        rows = [dict(r) for r in self.tables[table].values() if all(f.matches(r) for f in filters)]
        return order.sort(rows) if order is not None else rows

    async def get_by_id(self, table: str, row_id: str) -> Optional[Row]:
        await self._enter("get_by_id", table)
        row = self.tables[table].get(row_id)
        return dict(row) if row is not None else None

    async def insert(self, table: str, row: Row) -> Row:
        await self._enter("insert", table)
        created = self._complete(table, row)
        if created["id"] in self.tables[table]:
            raise InsertError(f"Duplicate id in {table}")
        self.tables[table][created["id"]] = created
        await self.feed.publish(ChangeEvent(kind=ChangeKind.INSERT, table=table, row=dict(created)))
        return dict(created)

    async def update(self, table: str, row_id: str, values: Row) -> None:
        await self._enter("update", table)
        if row_id not in self.tables[table]:
            raise InsertError(f"{table} row {row_id} not found")
        self.tables[table][row_id].update(values)

    async def delete(self, table: str, row_id: str) -> None:
        await self._enter("delete", table)
        self.tables[table].pop(row_id, None)

    async def upload_file(self, data: bytes, destination: str, content_type: Optional[str] = None) -> UploadedFile:
        await self._enter("upload_file")
        self.uploads[destination] = data
        return UploadedFile(url=f"/files/{destination}", mime_type=content_type)

    async def subscribe(self, table: str, event_kinds: Iterable[ChangeKind]) -> Subscription:
        await self._enter("subscribe", table)
        return self.feed.subscribe(table, event_kinds)

    async def unsubscribe(self, subscription: Subscription) -> None:
        await self._enter("unsubscribe", subscription.table)
        self.feed.unsubscribe(subscription)

    async def get_current_identity(self) -> Optional[Identity]:
        await self._enter("get_current_identity")
        return None if self.signed_out else self.identity

    async def sign_out(self) -> None:
        await self._enter("sign_out")
        self.signed_out = True

    async def sign_up(self, email: str, password: str, metadata: Dict[str, Any]) -> Identity:
        await self._enter("sign_up")
        identity = Identity(id=uuid.uuid4().hex, email=email, user_metadata=dict(metadata))
        self.identities[identity.id] = identity
        return identity


class RecordingNotifier:
    def __init__(self):
        self.notifications = []

    def notify(self, notification) -> None:
        self.notifications.append(notification)

    @property
    def errors(self):
        return [n for n in self.notifications if n.is_error]

    @property
    def titles(self):
        return [n.title for n in self.notifications]


async def settle(rounds: int = 20) -> None:
    """Let background reader tasks drain their queues."""
    for _ in range(rounds):
        await asyncio.sleep(0)
