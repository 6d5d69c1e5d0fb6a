"""
MongoDB Message Store
Motor-backed implementation of the message store with session transactions.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError, PyMongoError

from retail_queue.repositories.base import (
    MESSAGE_QUEUE,
    NOTIFICATIONS,
    PROCESSED_MESSAGES,
    DuplicateKeyError,
    Filter,
    MessageStore,
    Order,
    StoreOperations,
    StoreTransaction,
    TransactionConflictError,
    UNIQUE_KEYS,
)
from retail_queue.utils.observability import logger


class _MongoOperations(StoreOperations):
    """
    CRUD over Motor collections.
    Every call carries the session when one is bound.
    """

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        session: Optional[AsyncIOMotorClientSession] = None
    ):
        self.database = database
        self.session = session

    async def insert(self, table: str, row: Dict[str, Any]) -> None:
        try:
            # insert_one adds _id to the dict it is given
            await self.database[table].insert_one(dict(row), session=self.session)
        except MongoDuplicateKeyError as e:
            key = UNIQUE_KEYS.get(table, "_id")
            raise DuplicateKeyError(table, key, row.get(key)) from e

    async def update(self, table: str, filter_dict: Filter, patch: Dict[str, Any]) -> int:
        result = await self.database[table].update_many(
            filter_dict,
            {"$set": patch},
            session=self.session
        )
        return result.matched_count

    async def delete(self, table: str, filter_dict: Filter) -> int:
        result = await self.database[table].delete_many(filter_dict, session=self.session)
        return result.deleted_count

    async def select(
        self,
        table: str,
        filter_dict: Filter,
        order: Optional[Order] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        cursor = self.database[table].find(filter_dict, {"_id": 0}, session=self.session)

        if order:
            cursor = cursor.sort(order)
        if limit is not None:
            cursor = cursor.limit(limit)

        return await cursor.to_list(length=limit)

    async def count(self, table: str, filter_dict: Optional[Filter] = None) -> int:
        return await self.database[table].count_documents(filter_dict or {}, session=self.session)


class MongoTransaction(_MongoOperations, StoreTransaction):
    """Operations bound to a session with an open transaction."""


class MongoMessageStore(_MongoOperations, MessageStore):
    """
    Message store over a MongoDB database.

    Multi-document transactions need a replica set (or sharded cluster);
    a standalone mongod rejects start_transaction.

    Usage:
        client = create_mongo_client(settings)
        store = MongoMessageStore(client[settings.mongodb_database])
        await store.ensure_schema()
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        """
        Commit when the block exits normally, abort when it raises.

        Raises:
            TransactionConflictError: The server aborted the transaction with the
                TransientTransactionError label (e.g. a WriteConflict with a
                concurrent transaction touching the same key)
        """
        async with await self.database.client.start_session() as session:
            try:
                async with session.start_transaction():
                    yield MongoTransaction(self.database, session)
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError"):
                    raise TransactionConflictError(str(e)) from e
                raise

    async def ensure_schema(self) -> None:
        """
        Create all required indexes.
        Should be called during application startup.
        """
        db = self.database

        logger.info("Creating message store indexes")

        await db[MESSAGE_QUEUE].create_index("id", unique=True, name="idx_message_id_unique")
        await db[MESSAGE_QUEUE].create_index(
            [("status", ASCENDING), ("created_at", ASCENDING)],
            name="idx_status_created_at"
        )
        await db[MESSAGE_QUEUE].create_index("type", name="idx_type")
        await db[MESSAGE_QUEUE].create_index("locked_until", name="idx_locked_until", sparse=True)

        await db[PROCESSED_MESSAGES].create_index(
            "deduplication_id",
            unique=True,
            name="idx_deduplication_id_unique"
        )
        await db[PROCESSED_MESSAGES].create_index("created_at", name="idx_processed_created_at")

        await db[NOTIFICATIONS].create_index("id", unique=True, name="idx_notification_id_unique")
        await db[NOTIFICATIONS].create_index(
            [("user_id", ASCENDING), ("created_at", DESCENDING)],
            name="idx_user_notifications"
        )

        logger.info("Message store indexes created successfully")

    async def ping(self) -> bool:
        await self.database.client.admin.command("ping")
        return True
