"""
Queue Worker

Background driver that repeatedly calls QueueService.process_next_batch.
"""

import asyncio
import time
import uuid
from typing import Iterable, Optional, Union
from loguru import logger

from retail_queue.message_queue.service import QueueService
from retail_queue.models.message import MessageType


class QueueWorker:
    """
    Background worker for processing queued messages.

    Polls the queue in batches. When a batch claims nothing the worker
    sleeps for `poll_interval`; otherwise it polls again immediately.
    Periodically releases expired leases and sweeps old deduplication records.

    Attributes:
        service: Queue service to drive
        poll_interval: Seconds to wait after an empty poll
        batch_size: Messages claimed per batch
        lock_duration: Lease length in seconds
        message_types: Restrict this worker to some message types
        cleanup_interval: Seconds between maintenance passes
        processor_id: Identity written to locked_by
    """

    def __init__(
        self,
        service: QueueService,
        poll_interval: float = 5.0,
        batch_size: Optional[int] = None,
        lock_duration: Optional[int] = None,
        message_types: Optional[Iterable[Union[MessageType, str]]] = None,
        cleanup_interval: float = 3600.0,
        processor_id: Optional[str] = None,
    ):
        self.service = service
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.lock_duration = lock_duration
        self.message_types = list(message_types) if message_types else None
        self.cleanup_interval = cleanup_interval
        self.processor_id = processor_id or f"worker-{uuid.uuid4()}"
        self._running = False
        self._last_cleanup: Optional[float] = None
        self.batches_run = 0
        self.messages_processed = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start the worker.

        Runs until stop() is called.
        """
        if self._running:
            logger.warning("Worker already running")
            return

        self._running = True
        logger.info(
            f"🚀 Queue worker {self.processor_id} started "
            f"(poll_interval={self.poll_interval}s, types={self.message_types or 'all'})"
        )

        try:
            while self._running:
                processed = await self.run_once()

                if not processed:
                    await asyncio.sleep(self.poll_interval)

        finally:
            self._running = False
            logger.info(f"🛑 Queue worker {self.processor_id} stopped")

    async def stop(self) -> None:
        """
        Stop the worker.

        The batch in flight finishes; no new batch is claimed.
        """
        if not self._running:
            return

        logger.info("Stopping queue worker...")
        self._running = False

    async def run_once(self) -> int:
        """
        Run maintenance if due, then one batch.

        Errors are logged and swallowed so the loop keeps polling.

        Returns:
            Messages completed in this batch
        """
        await self._maybe_cleanup()

        try:
            result = await self.service.process_next_batch(
                batch_size=self.batch_size,
                lock_duration=self.lock_duration,
                processor_id=self.processor_id,
                message_types=self.message_types,
            )
        except Exception as e:
            logger.error(f"Queue worker batch crashed: {e}", exc_info=True)
            return 0

        self.batches_run += 1

        if not result.success:
            logger.error(f"Batch claim failed: {result.error}")
            return 0

        if result.processed_count:
            self.messages_processed += result.processed_count
            logger.info(f"✅ Processed {result.processed_count} messages")

        return result.processed_count

    async def _maybe_cleanup(self) -> None:
        now = time.monotonic()
        if self._last_cleanup is not None and now - self._last_cleanup < self.cleanup_interval:
            return
        self._last_cleanup = now

        # Each task runs even when the other one fails
        try:
            released = await self.service.release_expired_leases()
            if not released.success:
                logger.error(f"Releasing expired leases failed: {released.error}")
        except Exception as e:
            logger.error(f"Releasing expired leases crashed: {e}", exc_info=True)

        try:
            cleanup = await self.service.cleanup_processed_messages()
            if not cleanup.success:
                logger.error(f"Deduplication cleanup failed: {cleanup.error}")
        except Exception as e:
            logger.error(f"Deduplication cleanup crashed: {e}", exc_info=True)
