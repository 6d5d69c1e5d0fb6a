"""
Message Store Interface

Narrow CRUD + transaction surface the queue needs from its durable store.
Filters are MongoDB-style query documents; order is a list of (field, direction) tuples.
"""
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Dict, List, Optional

# Table names
MESSAGE_QUEUE = "message_queue"
PROCESSED_MESSAGES = "processed_messages"
NOTIFICATIONS = "notifications"

# Unique key per table
UNIQUE_KEYS = {
    MESSAGE_QUEUE: "id",
    PROCESSED_MESSAGES: "deduplication_id",
    NOTIFICATIONS: "id",
}

Filter = Dict[str, Any]
Order = List[tuple]


class DuplicateKeyError(Exception):
    """A write violated a unique key (e.g. processed_messages.deduplication_id)."""

    def __init__(self, table: str, key: str, value: Any):
        super().__init__(f"Duplicate {key}={value!r} in {table}")
        self.table = table
        self.key = key
        self.value = value


class TransactionConflictError(Exception):
    """A transaction was aborted by a concurrent write and may be retried as a whole."""


class StoreOperations(ABC):
    """CRUD primitives shared by stores and their transactions."""

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> None:
        """
        Insert a row.

        Raises:
            DuplicateKeyError: If a unique key is violated
        """
        pass

    @abstractmethod
    async def update(self, table: str, filter_dict: Filter, patch: Dict[str, Any]) -> int:
        """
        Set the fields in `patch` on every row matching the filter.

        Returns:
            Number of rows matched by the filter
        """
        pass

    @abstractmethod
    async def delete(self, table: str, filter_dict: Filter) -> int:
        """
        Delete every row matching the filter.

        Returns:
            Number of rows deleted
        """
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        filter_dict: Filter,
        order: Optional[Order] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Return rows matching the filter.

        Args:
            table: Table name
            filter_dict: Query filter
            order: List of (field, 1 | -1) tuples
            limit: Maximum rows to return (None for all)
        """
        pass

    @abstractmethod
    async def count(self, table: str, filter_dict: Optional[Filter] = None) -> int:
        """Count rows matching the filter (all rows when None)."""
        pass


class StoreTransaction(StoreOperations):
    """
    Operations bound to an open transaction.
    Obtained from MessageStore.transaction(); not used after the block exits.
    """


class MessageStore(StoreOperations):
    """
    Abstract durable store for queue messages, deduplication records and notifications.

    Implementations must provide:
    - CRUD primitives over named tables
    - transaction(): commit on normal exit, rollback and re-raise on exception
    - ensure_schema(): indexes and unique constraints
    - ping(): reachability check for readiness probes
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """
        Open a transaction.

        Usage:
            async with store.transaction() as tx:
                rows = await tx.select(...)
                await tx.update(...)
        """
        pass

    @abstractmethod
    async def ensure_schema(self) -> None:
        """Create indexes and unique constraints. Idempotent."""
        pass

    async def ping(self) -> bool:
        """Return True when the store is reachable."""
        return True
