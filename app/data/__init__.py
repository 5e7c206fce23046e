"""Data Access collaborator: contract, SQL implementation, change feed and storage."""

from .access import (
    ChangeEvent,
    ChangeKind,
    DataAccess,
    Eq,
    ILike,
    In,
    Identity,
    Order,
    Row,
    UploadedFile,
)
from .feed import ChangeFeed, RedisChangeFeed, Subscription
from .storage import LocalFileStorage

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "DataAccess",
    "Eq",
    "ILike",
    "In",
    "Identity",
    "Order",
    "Row",
    "UploadedFile",
    "ChangeFeed",
    "RedisChangeFeed",
    "Subscription",
    "LocalFileStorage",
]
