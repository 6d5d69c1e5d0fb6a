"""
Message Queue System

Asynchronous notification dispatch for the marketplace:
- Durable queue with deduplication keys and lease-based claiming
- Bounded retry with optional backoff schedule
- Typed handlers fanning out to notification rows
- Typed producer façade for order, delivery and payment workflows
- Polling worker driving batch processing
"""

from retail_queue.message_queue.handlers import (
    MessageHandler,
    NotificationCreateHandler,
    DeliveryAssignHandler,
    OrderStatusUpdateHandler,
    PaymentStatusUpdateHandler,
    build_handler_registry,
)
from retail_queue.message_queue.service import QueueService
from retail_queue.message_queue.producer import NotificationProducer
from retail_queue.message_queue.worker import QueueWorker

__all__ = [
    "MessageHandler",
    "NotificationCreateHandler",
    "DeliveryAssignHandler",
    "OrderStatusUpdateHandler",
    "PaymentStatusUpdateHandler",
    "build_handler_registry",
    "QueueService",
    "NotificationProducer",
    "QueueWorker",
]
