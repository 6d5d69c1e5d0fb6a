"""
Notification Producer

Typed entry point for order, delivery and payment workflows. Each method
validates its payload, derives a deterministic deduplication key and
enqueues the matching message type.
"""

import time
from typing import Any, Union

from pydantic import ValidationError

from retail_queue.message_queue.service import QueueService
from retail_queue.models.message import MessagePriority, MessageType
from retail_queue.models.payloads import (
    DeliveryAssignPayload,
    NotificationCreatePayload,
    OrderStatusUpdatePayload,
    PayloadModel,
    PaymentStatusUpdatePayload,
)
from retail_queue.models.results import EnqueueResult
from retail_queue.utils.observability import logger

PRODUCER_NAME = "notification-producer"


class NotificationProducer:
    """
    Façade over QueueService.enqueue for the four notification events.

    Usage:
        producer = NotificationProducer(queue_service)
        result = await producer.create_delivery_assignment_notification(payload)
        if not result.success:
            ...  # the event was never queued
    """

    def __init__(self, queue: QueueService):
        self.queue = queue

    async def _produce(
        self,
        message_type: MessageType,
        payload: Union[PayloadModel, dict[str, Any]],
        payload_model: type[PayloadModel],
        dedup_key,
        priority: MessagePriority = MessagePriority.NORMAL,
    ) -> EnqueueResult:
        try:
            model = payload if isinstance(payload, payload_model) else payload_model.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                f"Rejected {message_type} payload",
                extra={"message_type": message_type, "error": str(e)}
            )
            return EnqueueResult(success=False, error=f"Invalid {message_type} payload: {e}")

        try:
            return await self.queue.enqueue(
                message_type,
                model,
                deduplication_id=dedup_key(model),
                priority=priority,
                producer=PRODUCER_NAME,
            )
        except Exception as e:
            logger.error(f"Error producing {message_type} message: {e}", exc_info=True)
            return EnqueueResult(success=False, error=str(e))

    async def create_notification(
        self,
        payload: Union[NotificationCreatePayload, dict[str, Any]]
    ) -> EnqueueResult:
        """
        Queue a single notification.

        The key ends in the current time in milliseconds, so only calls for
        the same user and entity within the same millisecond are collapsed.
        """
        return await self._produce(
            MessageType.NOTIFICATION_CREATE,
            payload,
            NotificationCreatePayload,
            lambda p: (
                f"notification:{p.user_id}:{p.entity_type or ''}:{p.entity_id or ''}:"
                f"{time.time_ns() // 1_000_000}"
            ),
        )

    async def create_delivery_assignment_notification(
        self,
        payload: Union[DeliveryAssignPayload, dict[str, Any]]
    ) -> EnqueueResult:
        """Queue the three-way delivery assignment notice at high priority."""
        return await self._produce(
            MessageType.DELIVERY_ASSIGN,
            payload,
            DeliveryAssignPayload,
            lambda p: f"delivery:assign:{p.order_id}:{p.delivery_partner_id}",
            priority=MessagePriority.HIGH,
        )

    async def create_order_status_update_notification(
        self,
        payload: Union[OrderStatusUpdatePayload, dict[str, Any]]
    ) -> EnqueueResult:
        """Queue an order status notice; one message per (order, status)."""
        return await self._produce(
            MessageType.ORDER_STATUS_UPDATE,
            payload,
            OrderStatusUpdatePayload,
            lambda p: f"order:status:{p.order_id}:{p.status}",
        )

    async def create_payment_status_update_notification(
        self,
        payload: Union[PaymentStatusUpdatePayload, dict[str, Any]]
    ) -> EnqueueResult:
        """Queue a payment status notice; one message per (payment, status)."""
        return await self._produce(
            MessageType.PAYMENT_STATUS_UPDATE,
            payload,
            PaymentStatusUpdatePayload,
            lambda p: f"payment:status:{p.payment_id}:{p.status}",
        )
