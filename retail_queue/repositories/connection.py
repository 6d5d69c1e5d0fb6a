"""
Store Connection

Opens the message store selected by STORE_BACKEND and owns whatever it holds
open (the Motor client for MongoDB). One instance per process, created by the
API lifespan or a script.
"""
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient

from ..config import Settings, get_settings
from ..utils.observability import logger
from .base import MessageStore
from .memory import InMemoryMessageStore
from .mongo import MongoMessageStore


def create_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    """
    Build a Motor client from settings.

    The client is lazy: no server round trip happens until the first command.
    tz_aware keeps lease timestamps comparable with datetime.now(UTC).
    """
    return AsyncIOMotorClient(
        settings.mongodb_uri,
        maxPoolSize=settings.mongodb_max_pool_size,
        minPoolSize=settings.mongodb_min_pool_size,
        serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
        tz_aware=True,
    )


class StoreConnection:
    """
    Lifecycle of the configured message store.

    Usage:
        connection = StoreConnection(settings)
        store = await connection.open()
        ...
        await connection.close()
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncIOMotorClient] = None
        self._store: Optional[MessageStore] = None

    @property
    def is_open(self) -> bool:
        return self._store is not None

    @property
    def store(self) -> MessageStore:
        """
        The open store.
        Raises RuntimeError before open() or after close().
        """
        if self._store is None:
            raise RuntimeError("Message store not open. Call await connection.open() first.")
        return self._store

    async def open(self) -> MessageStore:
        """
        Create the store for the configured backend.
        Idempotent: later calls return the store already open.
        """
        if self._store is not None:
            return self._store

        if self.settings.store_backend == "memory":
            logger.warning("Using in-memory message store; messages are lost on restart")
            self._store = InMemoryMessageStore()
            return self._store

        logger.info(
            f"Opening MongoDB message store at {self.settings.mongodb_uri}",
            extra={
                "database": self.settings.mongodb_database,
                "max_pool_size": self.settings.mongodb_max_pool_size,
                "environment": self.settings.environment
            }
        )
        self._client = create_mongo_client(self.settings)
        self._store = MongoMessageStore(self._client[self.settings.mongodb_database])
        return self._store

    async def close(self) -> None:
        """Release the store and close the Motor client if one was opened. Idempotent."""
        if self._client is not None:
            logger.info("Closing MongoDB connection")
            self._client.close()
            self._client = None
        self._store = None
