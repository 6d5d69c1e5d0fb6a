"""
Queue Message Models

The unit of work in transit and its deduplication index record.
"""
import datetime as dt
import uuid
from enum import StrEnum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from retail_queue.models.base import StoredModel, utc_now


class MessageType(StrEnum):
    NOTIFICATION_CREATE = "notification:create"
    DELIVERY_ASSIGN = "delivery:assign"
    ORDER_STATUS_UPDATE = "order:status_update"
    PAYMENT_STATUS_UPDATE = "payment:status_update"


class MessageStatus(StrEnum):
    """Message processing status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MessagePriority(StrEnum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class MessageMetadata(BaseModel):
    """
    Envelope metadata carried alongside the payload.

    Attributes:
        timestamp: Creation time
        producer: Label of the component that enqueued the message
        priority: Carried for consumers; claiming is FIFO by creation time
        deduplication_id: Caller-supplied key collapsing repeated enqueues
        retry_count: Failed attempts so far
        max_retries: Retries allowed before the message is marked failed
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    timestamp: dt.datetime = Field(default_factory=utc_now)
    producer: str = "system"
    priority: MessagePriority = MessagePriority.NORMAL
    deduplication_id: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3


class QueueMessage(StoredModel):
    """
    Message in the queue.

    Attributes:
        id: Unique message identifier
        type: One of MessageType; kept as a plain string so rows written by
            other producers still load and fail in the handler dispatch
        payload: Type-specific data, validated by the producer and handler
        metadata: Envelope metadata
        status: Current processing status
        created_at: Timestamp when message was queued
        processed_at: When the message reached a terminal status
        error: Last error message if an attempt failed
        retry_count: Number of failed attempts
        locked_until: Lease expiry of the worker currently holding the message
        locked_by: Identity of the worker holding the lease
        not_before: Earliest claim time when a retry delay is configured
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    payload: dict[str, Any]
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    status: MessageStatus = MessageStatus.PENDING
    created_at: dt.datetime = Field(default_factory=utc_now)
    processed_at: Optional[dt.datetime] = None
    error: Optional[str] = None
    retry_count: int = 0
    locked_until: Optional[dt.datetime] = None
    locked_by: Optional[str] = None
    not_before: Optional[dt.datetime] = None

    @property
    def max_retries(self) -> int:
        return self.metadata.max_retries

    @property
    def is_locked(self) -> bool:
        return self.locked_by is not None or self.locked_until is not None


class DeduplicationRecord(StoredModel):
    """Maps a deduplication key to the message it produced."""

    deduplication_id: str
    message_id: str
    created_at: dt.datetime = Field(default_factory=utc_now)
