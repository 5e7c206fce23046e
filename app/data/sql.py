"""SQLAlchemy-backed implementation of the Data Access collaborator."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from jose import JWTError
from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.exceptions import InsertError, QueryError, RateLimitError
from app.core.messages import SIGNUP_RATE_LIMITED
from app.core.redis import get_redis_client
from app.core.security import decode_token, get_password_hash
from app.models import Chat, ChatParticipant, Identity as IdentityRecord, Label, Message, UserProfile
from app.models.base import Base

from .access import ChangeEvent, ChangeKind, Eq, Filter, ILike, In, Identity, Order, Row, UploadedFile
from .feed import ChangeFeed, Subscription
from .storage import LocalFileStorage


logger = logging.getLogger("app.data.sql")

TABLES: dict[str, type[Base]] = {
    "users": UserProfile,
    "chats": Chat,
    "chat_participants": ChatParticipant,
    "messages": Message,
    "labels": Label,
}


def _to_row(obj: Base) -> Row:
    row: Row = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        row[column.key] = value
    return row


def enforce_signup_limit(email: str) -> None:
    """Refuse sign-ups beyond the per-minute budget (shared across processes)."""
    r = get_redis_client()
    if r is None:
        return
    key = "auth:signups"
    attempts = r.incr(key)
    if attempts == 1:
        r.expire(key, 60)
    if attempts > settings.SIGNUP_RATE_LIMIT_PER_MINUTE:
        logger.warning("Sign-up rate limit hit: email=%s, attempts=%d", email, attempts)
        raise RateLimitError(SIGNUP_RATE_LIMITED)


class SqlDataAccess:
    """Data Access over a relational database, scoped to one access token."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        feed: ChangeFeed,
        storage: LocalFileStorage,
        access_token: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.feed = feed
        self.storage = storage
        self.access_token = access_token

    def _model(self, table: str, error: type[Exception] = QueryError) -> type[Base]:
        model = TABLES.get(table)
        if model is None:
            raise error(f"Unknown table: {table}")
        return model

    @staticmethod
    def _column(model: type[Base], name: str):
        if name not in model.__table__.columns:
            raise QueryError(f"Unknown column {model.__tablename__}.{name}")
        return getattr(model, name)

    def _clause(self, model: type[Base], flt: Filter):
        column = self._column(model, flt.column)
        if isinstance(flt, Eq):
            return column.is_(None) if flt.value is None else column == flt.value
        if isinstance(flt, ILike):
            return column.ilike(f"%{flt.text}%")
        if isinstance(flt, In):
            return column.in_(flt.values)
        raise QueryError(f"Unsupported filter: {flt!r}")

    def _build(self, model: type[Base], row: Row) -> Base:
        unknown = set(row) - set(model.__table__.columns.keys())
        if unknown:
            raise InsertError(f"Unknown columns for {model.__tablename__}: {', '.join(sorted(unknown))}")
        return model(**{k: v for k, v in row.items() if v is not None})

    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
    ) -> list[Row]:
        model = self._model(table)
        stmt = select(model)
        for flt in filters:
            stmt = stmt.where(self._clause(model, flt))
        if order is not None:
            column = self._column(model, order.column)
            stmt = stmt.order_by(desc(column) if order.descending else column)

        try:
            with self.session_factory() as db:
                return [_to_row(obj) for obj in db.scalars(stmt).all()]
        except SQLAlchemyError as e:
            logger.error("Query failed: table=%s, error=%s", table, e)
            raise QueryError(f"Error querying {table}") from e

    async def get_by_id(self, table: str, row_id: str) -> Optional[Row]:
        model = self._model(table)
        try:
            with self.session_factory() as db:
                obj = db.get(model, row_id)
                return _to_row(obj) if obj is not None else None
        except SQLAlchemyError as e:
            logger.error("Lookup failed: table=%s, id=%s, error=%s", table, row_id, e)
            raise QueryError(f"Error loading {table} row") from e

    async def insert(self, table: str, row: Row) -> Row:
        model = self._model(table, InsertError)
        obj = self._build(model, row)
        try:
            with self.session_factory() as db:
                db.add(obj)
                db.commit()
                db.refresh(obj)
                created = _to_row(obj)
        except IntegrityError as e:
            logger.warning("Insert rejected: table=%s, error=%s", table, e.orig)
            raise InsertError(f"Could not insert into {table}: constraint violated") from e
        except SQLAlchemyError as e:
            logger.error("Insert failed: table=%s, error=%s", table, e)
            raise InsertError(f"Could not insert into {table}") from e

        logger.debug("Row inserted: table=%s, id=%s", table, created["id"])
        await self.feed.publish(ChangeEvent(kind=ChangeKind.INSERT, table=table, row=created))
        return created

    async def update(self, table: str, row_id: str, values: Row) -> None:
        model = self._model(table, InsertError)
        try:
            with self.session_factory() as db:
                obj = db.get(model, row_id)
                if obj is None:
                    raise InsertError(f"{table} row {row_id} not found")
                for key, value in values.items():
                    if key not in model.__table__.columns or key == "id":
                        raise InsertError(f"Cannot update column {table}.{key}")
                    setattr(obj, key, value)
                db.commit()
                db.refresh(obj)
                updated = _to_row(obj)
        except SQLAlchemyError as e:
            logger.error("Update failed: table=%s, id=%s, error=%s", table, row_id, e)
            raise InsertError(f"Could not update {table}") from e

        await self.feed.publish(ChangeEvent(kind=ChangeKind.UPDATE, table=table, row=updated))

    async def delete(self, table: str, row_id: str) -> None:
        model = self._model(table, InsertError)
        try:
            with self.session_factory() as db:
                obj = db.get(model, row_id)
                if obj is None:
                    return
                deleted = _to_row(obj)
                db.delete(obj)
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Delete failed: table=%s, id=%s, error=%s", table, row_id, e)
            raise InsertError(f"Could not delete from {table}") from e

        await self.feed.publish(ChangeEvent(kind=ChangeKind.DELETE, table=table, row=deleted))

    async def upload_file(
        self, data: bytes, destination: str, content_type: Optional[str] = None
    ) -> UploadedFile:
        return self.storage.save(data, destination, content_type)

    async def subscribe(self, table: str, event_kinds: Iterable[ChangeKind]) -> Subscription:
        return self.feed.subscribe(table, event_kinds)

    async def unsubscribe(self, subscription: Subscription) -> None:
        self.feed.unsubscribe(subscription)

    async def get_current_identity(self) -> Optional[Identity]:
        if not self.access_token:
            return None
        try:
            payload = decode_token(self.access_token, expected_type="access")
        except JWTError:
            logger.info("Access token rejected")
            return None

        identity_id = payload.get("sub")
        if not identity_id:
            return None

        try:
            with self.session_factory() as db:
                record = db.get(IdentityRecord, identity_id)
        except SQLAlchemyError as e:
            logger.error("Identity lookup failed: id=%s, error=%s", identity_id, e)
            return None

        if record is None:
            return None
        return Identity(id=record.id, email=record.email, user_metadata=dict(record.user_metadata or {}))

    async def sign_out(self) -> None:
        self.access_token = None

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> Identity:
        enforce_signup_limit(email)

        record = IdentityRecord(
            email=email,
            password_hash=get_password_hash(password),
            user_metadata=dict(metadata),
        )
        try:
            with self.session_factory() as db:
                existing = db.scalars(select(IdentityRecord).where(IdentityRecord.email == email)).first()
                if existing is not None:
                    raise InsertError(f"An account for {email} already exists")
                db.add(record)
                db.commit()
                db.refresh(record)
        except IntegrityError as e:
            raise InsertError(f"An account for {email} already exists") from e
        except SQLAlchemyError as e:
            logger.error("Identity creation failed: email=%s, error=%s", email, e)
            raise InsertError("Could not create account") from e

        logger.info("Identity created: id=%s, email=%s", record.id, email)
        return Identity(id=record.id, email=record.email, user_metadata=dict(record.user_metadata or {}))
