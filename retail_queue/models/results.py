"""
Operation Results

Public queue operations report outcomes through these models instead of raising.
"""
from typing import Optional
from pydantic import BaseModel

from retail_queue.models.message import QueueMessage


class HandlerResult(BaseModel):
    success: bool
    error: Optional[str] = None


class EnqueueResult(BaseModel):
    """
    Outcome of an enqueue call.

    A suppressed duplicate is a success: `message_id` is the original
    message and `duplicate` is True.
    """
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    duplicate: bool = False


class BatchResult(BaseModel):
    """`processed_count` counts messages that reached completed in the batch."""
    success: bool
    processed_count: int = 0
    error: Optional[str] = None


class CleanupResult(BaseModel):
    success: bool
    deleted_count: int = 0
    error: Optional[str] = None


class QueueMetrics(BaseModel):
    """
    Queue state snapshot.

    Attributes:
        pending: Messages awaiting a worker (including scheduled retries)
        processing: Messages currently held by a worker
        completed: Messages processed successfully
        failed: Messages that exhausted their retries
        deduplication_records: Size of the deduplication index
    """
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    deduplication_records: int = 0


class MetricsResult(BaseModel):
    success: bool
    metrics: Optional[QueueMetrics] = None
    error: Optional[str] = None


class FailedMessagesResult(BaseModel):
    success: bool
    messages: list[QueueMessage] = []
    error: Optional[str] = None


class ReleaseResult(BaseModel):
    """`released_count` counts expired leases returned to the retry path."""
    success: bool
    released_count: int = 0
    error: Optional[str] = None
