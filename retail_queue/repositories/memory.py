"""
In-Memory Message Store

Simple store implementation for testing and single-process deployments.
Uses an asyncio lock so transactions are serialized against every other operation.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

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
    UNIQUE_KEYS,
)

_MISSING = object()


def _lookup(row: Dict[str, Any], key: str) -> Any:
    """Resolve a dotted key ("metadata.priority") against a row; missing fields read as None."""
    value: Any = row
    for part in key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part, _MISSING)
        if value is _MISSING:
            return None
    return value


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    # null never compares (same as MongoDB range operators)
    return lambda value, operand: value is not None and op(value, operand)


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$lt": _compare(lambda a, b: a < b),
    "$lte": _compare(lambda a, b: a <= b),
    "$gt": _compare(lambda a, b: a > b),
    "$gte": _compare(lambda a, b: a >= b),
    "$in": lambda value, operand: value in operand,
    "$nin": lambda value, operand: value not in operand,
    "$ne": lambda value, operand: value != operand,
}


def matches(row: Dict[str, Any], filter_dict: Filter) -> bool:
    """
    Evaluate a MongoDB-style filter against a row.

    Supports equality (including None), $lt/$lte/$gt/$gte/$in/$nin/$ne,
    and the logical $or / $and operators.
    """
    for key, condition in filter_dict.items():
        if key == "$or":
            if not any(matches(row, sub) for sub in condition):
                return False
            continue
        if key == "$and":
            if not all(matches(row, sub) for sub in condition):
                return False
            continue

        value = _lookup(row, key)

        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                if op not in OPERATORS:
                    raise ValueError(f"Unsupported filter operator: {op}")
                if not OPERATORS[op](value, operand):
                    return False
        elif value != condition:
            return False

    return True


def _sort_rows(rows: List[Dict[str, Any]], order: Order) -> List[Dict[str, Any]]:
    # Stable sorts applied from the least significant key; None sorts first ascending
    def sort_key(field: str) -> Callable[[Dict[str, Any]], tuple]:
        def key(row: Dict[str, Any]) -> tuple:
            value = _lookup(row, field)
            return (0, 0) if value is None else (1, value)
        return key

    for field, direction in reversed(order):
        rows.sort(key=sort_key(field), reverse=direction < 0)
    return rows


class _TableOperations(StoreOperations):
    """CRUD over a dict of tables; callers hold the store lock."""

    def __init__(self, store: "InMemoryMessageStore"):
        self._store = store

    def _table(self, table: str) -> List[Dict[str, Any]]:
        return self._store._tables.setdefault(table, [])

    async def insert(self, table: str, row: Dict[str, Any]) -> None:
        rows = self._table(table)
        unique_key = UNIQUE_KEYS.get(table)
        if unique_key is not None:
            value = row.get(unique_key)
            if any(existing.get(unique_key) == value for existing in rows):
                raise DuplicateKeyError(table, unique_key, value)
        rows.append(copy.deepcopy(row))

    async def update(self, table: str, filter_dict: Filter, patch: Dict[str, Any]) -> int:
        updated = 0
        for row in self._table(table):
            if matches(row, filter_dict):
                row.update(copy.deepcopy(patch))
                updated += 1
        return updated

    async def delete(self, table: str, filter_dict: Filter) -> int:
        rows = self._table(table)
        kept = [row for row in rows if not matches(row, filter_dict)]
        deleted = len(rows) - len(kept)
        self._store._tables[table] = kept
        return deleted

    async def select(
        self,
        table: str,
        filter_dict: Filter,
        order: Optional[Order] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        rows = [copy.deepcopy(row) for row in self._table(table) if matches(row, filter_dict)]
        if order:
            rows = _sort_rows(rows, order)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def count(self, table: str, filter_dict: Optional[Filter] = None) -> int:
        filter_dict = filter_dict or {}
        return sum(1 for row in self._table(table) if matches(row, filter_dict))


class InMemoryTransaction(_TableOperations, StoreTransaction):
    """Transaction handle; runs while the store lock is held."""


class InMemoryMessageStore(MessageStore):
    """
    In-memory message store implementation.

    Stores rows in dictionaries - data is lost on restart.

    Suitable for:
    - Testing
    - Single-instance deployments

    Not suitable for:
    - Multi-process workers (each process gets its own tables)
    - Long-term message persistence
    """

    def __init__(self):
        """Initialize empty tables."""
        self._tables: Dict[str, List[Dict[str, Any]]] = {
            MESSAGE_QUEUE: [],
            PROCESSED_MESSAGES: [],
            NOTIFICATIONS: [],
        }
        self._lock = asyncio.Lock()
        self._ops = _TableOperations(self)

    async def insert(self, table: str, row: Dict[str, Any]) -> None:
        async with self._lock:
            await self._ops.insert(table, row)

    async def update(self, table: str, filter_dict: Filter, patch: Dict[str, Any]) -> int:
        async with self._lock:
            return await self._ops.update(table, filter_dict, patch)

    async def delete(self, table: str, filter_dict: Filter) -> int:
        async with self._lock:
            return await self._ops.delete(table, filter_dict)

    async def select(
        self,
        table: str,
        filter_dict: Filter,
        order: Optional[Order] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        async with self._lock:
            return await self._ops.select(table, filter_dict, order, limit)

    async def count(self, table: str, filter_dict: Optional[Filter] = None) -> int:
        async with self._lock:
            return await self._ops.count(table, filter_dict)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        """
        Serialize the block against all other store operations.
        Tables are restored from a snapshot if the block raises.
        """
        async with self._lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                yield InMemoryTransaction(self)
            except BaseException:
                self._tables = snapshot
                raise

    async def ensure_schema(self) -> None:
        for table in UNIQUE_KEYS:
            self._tables.setdefault(table, [])
