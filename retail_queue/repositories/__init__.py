"""
Repositories Layer
Durable storage for queue messages, deduplication records and notifications.
"""
from .base import (
    MESSAGE_QUEUE,
    PROCESSED_MESSAGES,
    NOTIFICATIONS,
    DuplicateKeyError,
    MessageStore,
    StoreTransaction,
    TransactionConflictError,
)
from .memory import InMemoryMessageStore
from .mongo import MongoMessageStore
from .connection import StoreConnection, create_mongo_client

__all__ = [
    "MESSAGE_QUEUE",
    "PROCESSED_MESSAGES",
    "NOTIFICATIONS",
    "DuplicateKeyError",
    "MessageStore",
    "StoreTransaction",
    "TransactionConflictError",
    "InMemoryMessageStore",
    "MongoMessageStore",
    "StoreConnection",
    "create_mongo_client",
]
