"""
Queue Service

Durable at-least-once work queue over a MessageStore:
- Enqueue with deduplication keys
- Lease-based batch claiming (lockedBy / lockedUntil)
- Sequential per-message dispatch to typed handlers
- Bounded retry, terminal completed / failed states
- Retention sweep of deduplication records
"""

import datetime as dt
import uuid
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from retail_queue.config import Settings, get_settings
from retail_queue.message_queue.handlers import MessageHandler, build_handler_registry
from retail_queue.models.base import utc_now
from retail_queue.models.message import (
    DeduplicationRecord,
    MessageMetadata,
    MessagePriority,
    MessageStatus,
    MessageType,
    QueueMessage,
)
from retail_queue.models.results import (
    BatchResult,
    CleanupResult,
    EnqueueResult,
    FailedMessagesResult,
    HandlerResult,
    MetricsResult,
    QueueMetrics,
    ReleaseResult,
)
from retail_queue.repositories.base import (
    MESSAGE_QUEUE,
    PROCESSED_MESSAGES,
    DuplicateKeyError,
    MessageStore,
    TransactionConflictError,
)
from retail_queue.utils.observability import log_queue_event, logger

DUPLICATE_NOTE = "Duplicate message detected and skipped"
LEASE_EXPIRED_ERROR = "Lease expired before processing finished"
LEASE_LOST_ERROR = "Lease no longer held"


class QueueService:
    """
    Owns the lifecycle of queue messages and deduplication records.

    State machine:
        pending -> processing -> completed
        processing -> pending   (failure, retry_count <= max_retries)
        processing -> failed    (failure, retry_count > max_retries)

    Every transition out of processing clears the lease. Public methods
    never raise; they return result models.

    Usage:
        service = QueueService(store)
        await service.enqueue(MessageType.PAYMENT_STATUS_UPDATE, payload)
        result = await service.process_next_batch(batch_size=20)
    """

    def __init__(
        self,
        store: MessageStore,
        handlers: Optional[Mapping[str, MessageHandler]] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            store: Durable store for messages, dedup records and notifications
            handlers: message type -> handler; defaults to the built-in registry
            settings: Defaults for batch size, lease length, retries and backoff
        """
        self.store = store
        self.settings = settings or get_settings()
        self.handlers = dict(handlers) if handlers is not None else build_handler_registry(store)

    async def initialize(self) -> HandlerResult:
        """Create the store's indexes and unique constraints."""
        try:
            await self.store.ensure_schema()
            return HandlerResult(success=True)
        except Exception as e:
            logger.error(f"Error initializing queue store: {e}", exc_info=True)
            return HandlerResult(success=False, error=str(e))

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        message_type: Union[MessageType, str],
        payload: Union[BaseModel, dict[str, Any]],
        *,
        deduplication_id: Optional[str] = None,
        priority: MessagePriority = MessagePriority.NORMAL,
        max_retries: Optional[int] = None,
        producer: str = "system",
    ) -> EnqueueResult:
        """
        Add a message to the queue.

        When `deduplication_id` was already used, no message is created and the
        original message id is returned with `duplicate=True`. The message row
        and its deduplication record are written in one transaction.

        Args:
            message_type: One of MessageType
            payload: Payload model or dict; not validated here
            deduplication_id: Key collapsing repeated enqueues of the same event
            priority: Carried in metadata
            max_retries: Retries before the message is marked failed
            producer: Label of the enqueuing component

        Returns:
            EnqueueResult with the message id, or success=False and the error
        """
        try:
            message_type = MessageType(message_type)

            if deduplication_id:
                existing_id = await self._find_deduplicated(deduplication_id)
                if existing_id:
                    return self._duplicate_result(deduplication_id, existing_id)

            if isinstance(payload, BaseModel):
                payload = payload.model_dump(mode="json")

            message = QueueMessage(
                type=message_type.value,
                payload=dict(payload),
                metadata=MessageMetadata(
                    producer=producer,
                    priority=priority,
                    deduplication_id=deduplication_id,
                    max_retries=self.settings.queue_max_retries if max_retries is None else max_retries,
                ),
            )

            existing_id = await self._insert_message(message)
            if existing_id:
                return self._duplicate_result(deduplication_id, existing_id)

            log_queue_event(
                "enqueued",
                message.id,
                type=message_type.value,
                producer=producer,
                priority=message.metadata.priority,
            )
            return EnqueueResult(success=True, message_id=message.id)

        except Exception as e:
            logger.error(f"Error enqueueing message: {e}", exc_info=True)
            return EnqueueResult(success=False, error=str(e))

    async def _insert_message(self, message: QueueMessage) -> Optional[str]:
        """
        Write the message row and its deduplication record in one transaction.

        A concurrent enqueue of the same key shows up as a unique-key violation
        (in-memory store) or as a transaction conflict (MongoDB WriteConflict).
        Either way the winner's message id is returned. A conflict that is not
        a duplicate is retried once.

        Returns:
            Id of the message already owning the deduplication key, else None
        """
        deduplication_id = message.metadata.deduplication_id

        for attempt in (1, 2):
            try:
                async with self.store.transaction() as tx:
                    await tx.insert(MESSAGE_QUEUE, message.to_row())
                    if deduplication_id:
                        record = DeduplicationRecord(
                            deduplication_id=deduplication_id,
                            message_id=message.id,
                        )
                        await tx.insert(PROCESSED_MESSAGES, record.to_row())
                return None

            except DuplicateKeyError as e:
                if e.table != PROCESSED_MESSAGES:
                    raise
                existing_id = await self._find_deduplicated(deduplication_id)
                if existing_id is None:
                    raise
                return existing_id

            except TransactionConflictError:
                if deduplication_id:
                    existing_id = await self._find_deduplicated(deduplication_id)
                    if existing_id:
                        return existing_id
                if attempt == 2:
                    raise
                logger.warning(
                    f"Enqueue of message {message.id} hit a transaction conflict, retrying",
                    extra={"message_id": message.id, "deduplication_id": deduplication_id}
                )

    async def _find_deduplicated(self, deduplication_id: str) -> Optional[str]:
        rows = await self.store.select(
            PROCESSED_MESSAGES,
            {"deduplication_id": deduplication_id},
            limit=1,
        )
        return rows[0]["message_id"] if rows else None

    def _duplicate_result(self, deduplication_id: str, message_id: str) -> EnqueueResult:
        logger.info(
            f"Duplicate message skipped: {deduplication_id}",
            extra={"deduplication_id": deduplication_id, "message_id": message_id}
        )
        return EnqueueResult(
            success=True,
            message_id=message_id,
            error=DUPLICATE_NOTE,
            duplicate=True,
        )

    # ------------------------------------------------------------------
    # Claim and process
    # ------------------------------------------------------------------

    async def process_next_batch(
        self,
        *,
        batch_size: Optional[int] = None,
        lock_duration: Optional[int] = None,
        processor_id: Optional[str] = None,
        message_types: Optional[Iterable[Union[MessageType, str]]] = None,
    ) -> BatchResult:
        """
        Claim up to `batch_size` messages and process them one after another.

        Args:
            batch_size: Maximum messages to claim
            lock_duration: Lease length in seconds
            processor_id: Worker identity written to locked_by (generated if None)
            message_types: Only claim these types (dedicated workers)

        Returns:
            BatchResult; processed_count counts messages whose completion was
            recorded while this worker still held the lease.
            success is False only when the claim itself failed.
        """
        if batch_size is None:
            batch_size = self.settings.queue_batch_size
        if lock_duration is None:
            lock_duration = self.settings.queue_lock_duration_seconds
        processor_id = processor_id or f"processor-{uuid.uuid4()}"

        # MongoDB treats limit(0) as no limit
        if batch_size <= 0:
            return BatchResult(success=True, processed_count=0)

        try:
            messages = await self._claim_batch(batch_size, lock_duration, processor_id, message_types)
        except Exception as e:
            logger.error(f"Error claiming message batch: {e}", exc_info=True)
            return BatchResult(success=False, processed_count=0, error=str(e))

        if not messages:
            return BatchResult(success=True, processed_count=0)

        logger.debug(
            f"{processor_id} claimed {len(messages)} messages",
            extra={"processor_id": processor_id, "batch_size": batch_size}
        )

        processed_count = 0
        for message in messages:
            result = await self.process_message(message)
            if result.success:
                processed_count += 1

        return BatchResult(success=True, processed_count=processed_count)

    @staticmethod
    def _claimable_filter(now: dt.datetime) -> dict[str, Any]:
        """Pending, lease free or expired, and past any retry delay."""
        return {
            "status": MessageStatus.PENDING.value,
            "$and": [
                {"$or": [{"locked_by": None}, {"locked_until": {"$lt": now}}]},
                {"$or": [{"not_before": None}, {"not_before": {"$lte": now}}]},
            ],
        }

    async def _claim_batch(
        self,
        batch_size: int,
        lock_duration: int,
        processor_id: str,
        message_types: Optional[Iterable[Union[MessageType, str]]],
    ) -> list[QueueMessage]:
        """
        Select eligible rows oldest first and lease them, inside one transaction.

        The lock update re-checks eligibility and the rows are read back by
        owner, so a row leased by a concurrent worker is never returned twice.
        """
        now = utc_now()
        eligible = self._claimable_filter(now)

        query = dict(eligible)
        if message_types:
            query["type"] = {"$in": [str(t) for t in message_types]}

        async with self.store.transaction() as tx:
            rows = await tx.select(
                MESSAGE_QUEUE,
                query,
                order=[("created_at", 1)],
                limit=batch_size,
            )
            if not rows:
                return []

            ids = [row["id"] for row in rows]
            await tx.update(
                MESSAGE_QUEUE,
                {"id": {"$in": ids}, **eligible},
                {
                    "locked_by": processor_id,
                    "locked_until": now + dt.timedelta(seconds=lock_duration),
                },
            )
            claimed_rows = await tx.select(
                MESSAGE_QUEUE,
                {"id": {"$in": ids}, "locked_by": processor_id},
                order=[("created_at", 1)],
            )

        messages = []
        for row in claimed_rows:
            try:
                messages.append(QueueMessage.from_row(row))
            except ValidationError as e:
                await self._fail_unreadable_row(row, str(e))
        return messages

    async def _fail_unreadable_row(self, row: dict[str, Any], error: str) -> None:
        logger.error(
            f"Unreadable queue row {row.get('id')}, marking failed",
            extra={"message_id": row.get("id"), "error": error}
        )
        await self.store.update(
            MESSAGE_QUEUE,
            {"id": row.get("id")},
            {
                "status": MessageStatus.FAILED.value,
                "error": f"Unreadable message: {error}",
                "processed_at": utc_now(),
                "locked_by": None,
                "locked_until": None,
            },
        )

    async def process_message(self, message: QueueMessage) -> HandlerResult:
        """
        Process one claimed message.

        Marks it processing, dispatches to the handler for its type and records
        the outcome. The lease is released on every path, including unexpected
        store errors.
        """
        try:
            started = await self.store.update(
                MESSAGE_QUEUE,
                self._lease_filter(message),
                {"status": MessageStatus.PROCESSING.value},
            )
            if not started:
                self._warn_lease_lost(message)
                return HandlerResult(success=False, error=LEASE_LOST_ERROR)

            result = await self._dispatch(message)

            if result.success:
                if not await self._mark_completed(message):
                    return HandlerResult(success=False, error=LEASE_LOST_ERROR)
            else:
                await self._record_failure(message, result.error)

            return result

        except Exception as e:
            logger.error(f"Error processing message {message.id}: {e}", exc_info=True)
            await self._release_after_error(message, str(e))
            return HandlerResult(success=False, error=str(e))

    async def _dispatch(self, message: QueueMessage) -> HandlerResult:
        handler = self.handlers.get(message.type)
        if handler is None:
            return HandlerResult(success=False, error=f"Unknown message type: {message.type}")

        try:
            return await handler.handle(message.payload)
        except Exception as e:
            logger.error(
                f"Handler for {message.type} raised on message {message.id}: {e}",
                exc_info=True
            )
            return HandlerResult(success=False, error=f"Error processing message: {e}")

    @staticmethod
    def _lease_filter(message: QueueMessage) -> dict[str, Any]:
        # Transitions only apply while this worker still holds the lease
        return {"id": message.id, "locked_by": message.locked_by}

    async def _mark_completed(self, message: QueueMessage) -> bool:
        """Returns False when the lease was lost and the completion was not recorded."""
        updated = await self.store.update(
            MESSAGE_QUEUE,
            self._lease_filter(message),
            {
                "status": MessageStatus.COMPLETED.value,
                "processed_at": utc_now(),
                "locked_by": None,
                "locked_until": None,
            },
        )
        if not updated:
            self._warn_lease_lost(message)
            return False

        log_queue_event("completed", message.id, type=message.type, retry_count=message.retry_count)
        return True

    async def _record_failure(self, message: QueueMessage, error: Optional[str]) -> bool:
        """
        Count the failed attempt; back to pending while retries remain, else failed.
        Returns False when the lease was lost and nothing was written.
        """
        retry_count = message.retry_count + 1
        metadata = message.metadata.model_dump()
        metadata["retry_count"] = retry_count

        patch: dict[str, Any] = {
            "error": error,
            "retry_count": retry_count,
            "metadata": metadata,
            "locked_by": None,
            "locked_until": None,
        }

        if retry_count <= message.max_retries:
            patch["status"] = MessageStatus.PENDING.value
            patch["not_before"] = self._next_attempt_at(retry_count)
            event = "retry_scheduled"
        else:
            patch["status"] = MessageStatus.FAILED.value
            patch["processed_at"] = utc_now()
            event = "failed"

        updated = await self.store.update(MESSAGE_QUEUE, self._lease_filter(message), patch)
        if not updated:
            self._warn_lease_lost(message)
            return False

        log_queue_event(
            event,
            message.id,
            success=False,
            type=message.type,
            retry_count=retry_count,
            max_retries=message.max_retries,
            error=error,
        )
        return True

    def _next_attempt_at(self, retry_count: int) -> Optional[dt.datetime]:
        delays = self.settings.queue_retry_delays_seconds
        if not delays:
            return None
        delay = delays[min(retry_count - 1, len(delays) - 1)]
        return utc_now() + dt.timedelta(seconds=delay)

    async def _release_after_error(self, message: QueueMessage, error: str) -> None:
        """Count the attempt if the store allows it; otherwise at least drop the lease."""
        try:
            await self._record_failure(message, error)
            return
        except Exception as e:
            logger.error(f"Could not record failure for message {message.id}: {e}")

        try:
            await self.store.update(
                MESSAGE_QUEUE,
                self._lease_filter(message),
                {"locked_by": None, "locked_until": None},
            )
        except Exception as e:
            logger.error(f"Could not release lease on message {message.id}: {e}")

    @staticmethod
    def _warn_lease_lost(message: QueueMessage) -> None:
        logger.warning(
            f"Lease on message {message.id} no longer held by {message.locked_by}, result discarded",
            extra={"message_id": message.id, "processor_id": message.locked_by}
        )

    # ------------------------------------------------------------------
    # Maintenance and operator tools
    # ------------------------------------------------------------------

    async def cleanup_processed_messages(self, older_than_days: Optional[int] = None) -> CleanupResult:
        """
        Delete deduplication records older than the cutoff.
        Message rows are left untouched.
        """
        older_than_days = self.settings.dedup_retention_days if older_than_days is None else older_than_days
        cutoff = utc_now() - dt.timedelta(days=older_than_days)

        try:
            deleted = await self.store.delete(PROCESSED_MESSAGES, {"created_at": {"$lt": cutoff}})
        except Exception as e:
            logger.error(f"Error cleaning up processed messages: {e}", exc_info=True)
            return CleanupResult(success=False, deleted_count=0, error=str(e))

        logger.info(
            f"Removed {deleted} deduplication records older than {older_than_days} days",
            extra={"deleted_count": deleted}
        )
        return CleanupResult(success=True, deleted_count=deleted)

    async def release_expired_leases(self) -> ReleaseResult:
        """
        Recover messages stuck in processing after their worker died.

        Each one counts as a failed attempt, so a message that keeps killing
        its worker still ends up failed.

        Returns:
            ReleaseResult with the number of messages released
        """
        try:
            rows = await self.store.select(
                MESSAGE_QUEUE,
                {
                    "status": MessageStatus.PROCESSING.value,
                    "locked_until": {"$lt": utc_now()},
                },
                order=[("created_at", 1)],
            )

            released = 0
            for row in rows:
                if await self._record_failure(QueueMessage.from_row(row), LEASE_EXPIRED_ERROR):
                    released += 1
        except Exception as e:
            logger.error(f"Error releasing expired leases: {e}", exc_info=True)
            return ReleaseResult(success=False, error=str(e))

        if released:
            logger.warning(f"Released {released} messages with expired leases")
        return ReleaseResult(success=True, released_count=released)

    async def get_metrics(self) -> MetricsResult:
        """Count messages per status plus the deduplication index size."""
        try:
            counts = {}
            for status in MessageStatus:
                counts[status.value] = await self.store.count(MESSAGE_QUEUE, {"status": status.value})

            metrics = QueueMetrics(
                **counts,
                deduplication_records=await self.store.count(PROCESSED_MESSAGES),
            )
        except Exception as e:
            logger.error(f"Error reading queue metrics: {e}", exc_info=True)
            return MetricsResult(success=False, error=str(e))

        return MetricsResult(success=True, metrics=metrics)

    async def get_failed_messages(self, limit: int = 100) -> FailedMessagesResult:
        """Messages in the terminal failed state, most recent first."""
        try:
            rows = await self.store.select(
                MESSAGE_QUEUE,
                {"status": MessageStatus.FAILED.value},
                order=[("processed_at", -1)],
                limit=limit,
            )
            messages = [QueueMessage.from_row(row) for row in rows]
        except Exception as e:
            logger.error(f"Error listing failed messages: {e}", exc_info=True)
            return FailedMessagesResult(success=False, error=str(e))

        return FailedMessagesResult(success=True, messages=messages)

    async def retry_failed_message(self, message_id: str) -> HandlerResult:
        """
        Replay a failed message.

        Resets retry count and error and moves it back to pending.
        """
        try:
            rows = await self.store.select(
                MESSAGE_QUEUE,
                {"id": message_id, "status": MessageStatus.FAILED.value},
                limit=1,
            )
            if not rows:
                return HandlerResult(success=False, error=f"No failed message with id {message_id}")

            message = QueueMessage.from_row(rows[0])
            metadata = message.metadata.model_dump()
            metadata["retry_count"] = 0

            await self.store.update(
                MESSAGE_QUEUE,
                {"id": message_id, "status": MessageStatus.FAILED.value},
                {
                    "status": MessageStatus.PENDING.value,
                    "retry_count": 0,
                    "metadata": metadata,
                    "error": None,
                    "processed_at": None,
                    "not_before": None,
                    "locked_by": None,
                    "locked_until": None,
                },
            )
        except Exception as e:
            logger.error(f"Error retrying failed message {message_id}: {e}", exc_info=True)
            return HandlerResult(success=False, error=str(e))

        log_queue_event("replayed", message_id, type=message.type)
        return HandlerResult(success=True)
