"""
Message Handlers

One handler per message type. Each translates a payload into one or more
notification rows; none of them enqueue further messages.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from retail_queue.models.message import MessageType
from retail_queue.models.notification import Notification, NotificationType
from retail_queue.models.payloads import (
    DeliveryAssignPayload,
    NotificationCreatePayload,
    OrderStatusUpdatePayload,
    PayloadModel,
    PaymentStatusUpdatePayload,
)
from retail_queue.models.results import HandlerResult
from retail_queue.repositories.base import NOTIFICATIONS, MessageStore
from retail_queue.utils.observability import logger


# Order status -> notification type; anything unlisted is informational
ORDER_STATUS_NOTIFICATION_TYPES = {
    "confirmed": NotificationType.SUCCESS,
    "delivered": NotificationType.SUCCESS,
    "placed": NotificationType.INFO,
    "dispatched": NotificationType.INFO,
    "rejected": NotificationType.ERROR,
}


def notification_type_for_order_status(status: str) -> NotificationType:
    return ORDER_STATUS_NOTIFICATION_TYPES.get(status, NotificationType.INFO)


def humanize_status(status: str) -> str:
    """'out_for_delivery' -> 'Out For Delivery'."""
    return re.sub(r"\b\w", lambda m: m.group().upper(), status.replace("_", " "))


class MessageHandler(ABC):
    """
    Base class for per-type message handlers.

    handle() validates the raw payload against `payload_model` and then calls
    process(). Invalid payloads are reported as failures, never raised.
    """

    message_type: MessageType
    payload_model: type[PayloadModel]

    async def handle(self, payload: dict) -> HandlerResult:
        try:
            model = self.payload_model.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                f"Invalid {self.message_type} payload",
                extra={"message_type": self.message_type, "error": str(e)}
            )
            return HandlerResult(success=False, error=f"Invalid {self.message_type} payload: {e}")

        return await self.process(model)

    @abstractmethod
    async def process(self, payload) -> HandlerResult:
        """Perform the side effects for a validated payload."""
        pass


class NotificationCreateHandler(MessageHandler):
    """
    Leaf primitive: writes exactly one notification row.
    The fan-out handlers call create() for each recipient.
    """

    message_type = MessageType.NOTIFICATION_CREATE
    payload_model = NotificationCreatePayload

    def __init__(self, store: MessageStore):
        self.store = store

    async def process(self, payload: NotificationCreatePayload) -> HandlerResult:
        return await self.create(payload)

    async def create(self, payload: NotificationCreatePayload) -> HandlerResult:
        notification = Notification(
            user_id=payload.user_id,
            title=payload.title,
            message=payload.message,
            type=payload.type,
            related_entity_type=payload.entity_type,
            related_entity_id=payload.entity_id,
            action_url=payload.action_url,
            data=payload.data,
        )

        try:
            await self.store.insert(NOTIFICATIONS, notification.to_row())
        except Exception as e:
            logger.error(
                f"Failed to create notification for user {payload.user_id}: {e}",
                extra={"user_id": payload.user_id, "title": payload.title, "error": str(e)}
            )
            return HandlerResult(success=False, error=str(e))

        logger.debug(
            f"Created notification {notification.id}",
            extra={"user_id": payload.user_id, "notification_type": notification.type}
        )
        return HandlerResult(success=True)


class FanOutHandler(MessageHandler):
    """
    Handler that notifies several recipients.

    Every recipient is attempted even when an earlier one fails. The verdict
    follows the primary recipient (the first one built); failures of the
    others are logged only, since a retry would duplicate the notifications
    that already went out.
    """

    def __init__(self, notifications: NotificationCreateHandler):
        self.notifications = notifications

    async def fan_out(self, recipients: list[NotificationCreatePayload]) -> HandlerResult:
        results = []
        for recipient in recipients:
            result = await self.notifications.create(recipient)
            if not result.success:
                logger.warning(
                    f"{self.message_type}: notification to {recipient.user_id} failed",
                    extra={"user_id": recipient.user_id, "error": result.error}
                )
            results.append(result)

        primary = results[0]
        if not primary.success:
            return HandlerResult(
                success=False,
                error=f"Notification to {recipients[0].user_id} failed: {primary.error}"
            )
        return HandlerResult(success=True)


class DeliveryAssignHandler(FanOutHandler):
    """Notifies the delivery partner, the retailer and the wholesaler of an assignment."""

    message_type = MessageType.DELIVERY_ASSIGN
    payload_model = DeliveryAssignPayload

    async def process(self, payload: DeliveryAssignPayload) -> HandlerResult:
        details = payload.order_details
        retailer = details.retailer_info
        wholesaler = details.wholesaler_info

        partner_data = {
            "pickup_address": wholesaler.address,
            "pickup_city": wholesaler.city,
            "pickup_pincode": wholesaler.pincode,
            "pickup_phone": wholesaler.phone,
            "pickup_business_name": wholesaler.business_name,
            "address": retailer.address,
            "city": retailer.city,
            "pincode": retailer.pincode,
            "phone": retailer.phone,
            "business_name": retailer.business_name,
        }
        if payload.instructions:
            partner_data["instructions"] = payload.instructions

        recipients = [
            NotificationCreatePayload(
                user_id=payload.delivery_partner_id,
                title="New Delivery Assignment",
                message=(
                    f"You have been assigned to deliver order #{details.order_number} "
                    f"to {retailer.business_name} in {retailer.city or 'your area'}."
                ),
                type=NotificationType.INFO,
                entity_type="delivery",
                entity_id=payload.order_id,
                action_url=f"/delivery-partner/tracking/{payload.order_id}",
                data=partner_data,
            ),
            NotificationCreatePayload(
                user_id=payload.retailer_id,
                title="Delivery Partner Assigned",
                message=(
                    f"A delivery partner has been assigned to deliver your order "
                    f"#{details.order_number}."
                ),
                type=NotificationType.INFO,
                entity_type="delivery",
                entity_id=payload.order_id,
                action_url=f"/orders/{payload.order_id}",
            ),
            NotificationCreatePayload(
                user_id=payload.wholesaler_id,
                title="Delivery Partner Assigned",
                message=(
                    f"A delivery partner has been assigned to deliver order "
                    f"#{details.order_number} to {retailer.business_name}."
                ),
                type=NotificationType.INFO,
                entity_type="delivery",
                entity_id=payload.order_id,
                action_url=f"/orders/{payload.order_id}",
            ),
        ]

        return await self.fan_out(recipients)


class OrderStatusUpdateHandler(FanOutHandler):
    """Notifies the retailer, the wholesaler and, when assigned, the delivery partner."""

    message_type = MessageType.ORDER_STATUS_UPDATE
    payload_model = OrderStatusUpdatePayload

    async def process(self, payload: OrderStatusUpdatePayload) -> HandlerResult:
        display_status = humanize_status(payload.status)
        verb = display_status.lower()
        notification_type = notification_type_for_order_status(payload.status)
        order_number = payload.order_details.order_number

        recipients = [
            NotificationCreatePayload(
                user_id=payload.retailer_id,
                title=f"Order Status Updated: {display_status}",
                message=f"Your order #{order_number} has been {verb}.",
                type=notification_type,
                entity_type="order",
                entity_id=payload.order_id,
                action_url=f"/orders/{payload.order_id}",
            ),
            NotificationCreatePayload(
                user_id=payload.wholesaler_id,
                title=f"Order Status Updated: {display_status}",
                message=f"Order #{order_number} has been {verb}.",
                type=notification_type,
                entity_type="order",
                entity_id=payload.order_id,
                action_url=f"/orders/{payload.order_id}",
            ),
        ]

        if payload.delivery_partner_id:
            recipients.append(
                NotificationCreatePayload(
                    user_id=payload.delivery_partner_id,
                    title=f"Delivery Update: {display_status}",
                    message=f"Delivery for order #{order_number} has been {verb}.",
                    type=notification_type,
                    entity_type="order",
                    entity_id=payload.order_id,
                    action_url=f"/delivery-partner/tracking/{payload.order_id}",
                )
            )

        return await self.fan_out(recipients)


class PaymentStatusUpdateHandler(FanOutHandler):
    """Notifies the paying user of a payment status change."""

    message_type = MessageType.PAYMENT_STATUS_UPDATE
    payload_model = PaymentStatusUpdatePayload

    @staticmethod
    def describe(payload: PaymentStatusUpdatePayload) -> tuple[str, str, NotificationType]:
        """Return (title, message, type) for the payment status."""
        order_number = payload.order_number

        match payload.status:
            case "paid" | "success":
                return (
                    "Payment Successful",
                    f"Your payment of ₹{payload.amount:.2f} for order #{order_number} "
                    f"has been completed successfully.",
                    NotificationType.SUCCESS,
                )
            case "failed":
                return (
                    "Payment Failed",
                    f"Your payment for order #{order_number} has failed. "
                    f"Please try again or contact support.",
                    NotificationType.ERROR,
                )
            case "pending":
                return (
                    "Payment Processing",
                    f"Your payment for order #{order_number} is being processed. "
                    f"We'll notify you once it's completed.",
                    NotificationType.INFO,
                )
            case _:
                return (
                    "Payment Update",
                    f"Payment status for order #{order_number} has been updated to {payload.status}.",
                    NotificationType.INFO,
                )

    async def process(self, payload: PaymentStatusUpdatePayload) -> HandlerResult:
        title, message, notification_type = self.describe(payload)

        return await self.fan_out([
            NotificationCreatePayload(
                user_id=payload.user_id,
                title=title,
                message=message,
                type=notification_type,
                entity_type="payment",
                entity_id=payload.order_id,
                action_url=f"/orders/{payload.order_id}",
            )
        ])


def build_handler_registry(
    store: MessageStore,
    notifications: Optional[NotificationCreateHandler] = None
) -> dict[str, MessageHandler]:
    """
    Build the message type -> handler mapping used by QueueService.

    Args:
        store: Store the notification rows are written to
        notifications: Leaf handler override (tests inject failing ones)
    """
    notifications = notifications or NotificationCreateHandler(store)

    return {
        MessageType.NOTIFICATION_CREATE: notifications,
        MessageType.DELIVERY_ASSIGN: DeliveryAssignHandler(notifications),
        MessageType.ORDER_STATUS_UPDATE: OrderStatusUpdateHandler(notifications),
        MessageType.PAYMENT_STATUS_UPDATE: PaymentStatusUpdateHandler(notifications),
    }
