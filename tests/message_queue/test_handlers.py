"""
Tests for the per-type message handlers.
"""
import pytest

from retail_queue.message_queue.handlers import (
    DeliveryAssignHandler,
    NotificationCreateHandler,
    OrderStatusUpdateHandler,
    PaymentStatusUpdateHandler,
    build_handler_registry,
    humanize_status,
    notification_type_for_order_status,
)
from retail_queue.models.message import MessageType
from retail_queue.models.notification import NotificationType
from retail_queue.models.payloads import PaymentStatusUpdatePayload
from retail_queue.models.results import HandlerResult
from retail_queue.repositories import NOTIFICATIONS


class FailingNotifications(NotificationCreateHandler):
    """Leaf handler that refuses to notify some users."""

    def __init__(self, store, failing_users):
        super().__init__(store)
        self.failing_users = set(failing_users)

    async def create(self, payload):
        if payload.user_id in self.failing_users:
            return HandlerResult(success=False, error="insert rejected")
        return await super().create(payload)


async def notifications_for(store, user_id):
    return await store.select(NOTIFICATIONS, {"user_id": user_id})


class TestStatusHelpers:

    @pytest.mark.parametrize("status,expected", [
        ("confirmed", NotificationType.SUCCESS),
        ("delivered", NotificationType.SUCCESS),
        ("placed", NotificationType.INFO),
        ("dispatched", NotificationType.INFO),
        ("rejected", NotificationType.ERROR),
        ("out_for_delivery", NotificationType.INFO),
    ])
    def test_order_status_mapping(self, status, expected):
        assert notification_type_for_order_status(status) == expected

    def test_humanize_status(self):
        assert humanize_status("out_for_delivery") == "Out For Delivery"
        assert humanize_status("confirmed") == "Confirmed"

    def test_registry_covers_every_type(self, store):
        registry = build_handler_registry(store)

        assert set(registry) == set(MessageType)
        assert isinstance(registry[MessageType.DELIVERY_ASSIGN], DeliveryAssignHandler)


@pytest.mark.asyncio
class TestNotificationCreateHandler:

    async def test_creates_one_row(self, store):
        handler = NotificationCreateHandler(store)

        result = await handler.handle({
            "userId": "u1",
            "title": "Welcome",
            "message": "Your shop is live",
            "type": "success",
            "entityType": "shop",
            "entityId": "s1",
        })

        assert result.success is True
        [row] = await notifications_for(store, "u1")
        assert row["title"] == "Welcome"
        assert row["type"] == "success"
        assert row["related_entity_type"] == "shop"
        assert row["related_entity_id"] == "s1"
        assert row["is_read"] is False

    async def test_invalid_payload_is_a_failure(self, store):
        handler = NotificationCreateHandler(store)

        result = await handler.handle({"userId": "u1", "type": "shouting"})

        assert result.success is False
        assert "Invalid notification:create payload" in result.error
        assert await store.count(NOTIFICATIONS) == 0


@pytest.mark.asyncio
class TestDeliveryAssignHandler:

    async def test_notifies_all_three_parties(self, store, delivery_assign_payload):
        handler = DeliveryAssignHandler(NotificationCreateHandler(store))

        result = await handler.handle(delivery_assign_payload)

        assert result.success is True
        assert await store.count(NOTIFICATIONS) == 3

        [partner] = await notifications_for(store, "dp-1")
        assert partner["title"] == "New Delivery Assignment"
        assert "ORD-2024-042" in partner["message"]
        assert "Sharma General Store" in partner["message"]
        assert partner["action_url"] == "/delivery-partner/tracking/order-42"
        assert partner["data"]["pickup_business_name"] == "Deccan Wholesale"
        assert partner["data"]["pickup_address"] == "Plot 7, MIDC"
        assert partner["data"]["address"] == "12 MG Road"
        assert "instructions" not in partner["data"]

        [retailer] = await notifications_for(store, "ret-1")
        assert retailer["title"] == "Delivery Partner Assigned"
        assert retailer["action_url"] == "/orders/order-42"

        [wholesaler] = await notifications_for(store, "whl-1")
        assert "Sharma General Store" in wholesaler["message"]

    async def test_instructions_are_forwarded(self, store, delivery_assign_payload):
        handler = DeliveryAssignHandler(NotificationCreateHandler(store))
        delivery_assign_payload["instructions"] = "Call on arrival"

        await handler.handle(delivery_assign_payload)

        [partner] = await notifications_for(store, "dp-1")
        assert partner["data"]["instructions"] == "Call on arrival"

    async def test_secondary_failure_does_not_fail_message(self, store, delivery_assign_payload):
        handler = DeliveryAssignHandler(FailingNotifications(store, ["whl-1"]))

        result = await handler.handle(delivery_assign_payload)

        assert result.success is True
        assert await store.count(NOTIFICATIONS) == 2

    async def test_primary_failure_fails_message(self, store, delivery_assign_payload):
        handler = DeliveryAssignHandler(FailingNotifications(store, ["dp-1"]))

        result = await handler.handle(delivery_assign_payload)

        assert result.success is False
        assert "dp-1" in result.error
        # Remaining recipients are still attempted
        assert await store.count(NOTIFICATIONS) == 2

    async def test_missing_order_details(self, store, delivery_assign_payload):
        handler = DeliveryAssignHandler(NotificationCreateHandler(store))
        del delivery_assign_payload["orderDetails"]

        result = await handler.handle(delivery_assign_payload)

        assert result.success is False
        assert await store.count(NOTIFICATIONS) == 0


@pytest.mark.asyncio
class TestOrderStatusUpdateHandler:

    async def test_rejected_without_partner(self, store, order_status_payload):
        handler = OrderStatusUpdateHandler(NotificationCreateHandler(store))
        order_status_payload["status"] = "rejected"

        result = await handler.handle(order_status_payload)

        assert result.success is True
        rows = await store.select(NOTIFICATIONS, {})
        assert {row["user_id"] for row in rows} == {"ret-1", "whl-1"}
        assert all(row["type"] == "error" for row in rows)
        assert all(row["title"] == "Order Status Updated: Rejected" for row in rows)

    async def test_partner_gets_delivery_update(self, store, order_status_payload):
        handler = OrderStatusUpdateHandler(NotificationCreateHandler(store))
        order_status_payload["status"] = "out_for_delivery"
        order_status_payload["deliveryPartnerId"] = "dp-9"

        await handler.handle(order_status_payload)

        assert await store.count(NOTIFICATIONS) == 3
        [partner] = await notifications_for(store, "dp-9")
        assert partner["title"] == "Delivery Update: Out For Delivery"
        assert partner["message"] == "Delivery for order #ORD-2024-042 has been out for delivery."
        assert partner["type"] == "info"

        [retailer] = await notifications_for(store, "ret-1")
        assert retailer["message"] == "Your order #ORD-2024-042 has been out for delivery."

    async def test_confirmed_is_success(self, store, order_status_payload):
        handler = OrderStatusUpdateHandler(NotificationCreateHandler(store))

        await handler.handle(order_status_payload)

        [retailer] = await notifications_for(store, "ret-1")
        assert retailer["type"] == "success"
        assert retailer["related_entity_type"] == "order"


@pytest.mark.asyncio
class TestPaymentStatusUpdateHandler:

    async def test_paid(self, store, payment_status_payload):
        handler = PaymentStatusUpdateHandler(NotificationCreateHandler(store))

        result = await handler.handle(payment_status_payload)

        assert result.success is True
        [row] = await notifications_for(store, "u1")
        assert row["title"] == "Payment Successful"
        assert row["type"] == "success"
        assert "1150.00" in row["message"]
        assert "ORD-2024-001" in row["message"]
        assert row["related_entity_type"] == "payment"
        assert row["related_entity_id"] == "order-1"

    @pytest.mark.parametrize("status,title,notification_type", [
        ("success", "Payment Successful", NotificationType.SUCCESS),
        ("failed", "Payment Failed", NotificationType.ERROR),
        ("pending", "Payment Processing", NotificationType.INFO),
        ("refunded", "Payment Update", NotificationType.INFO),
    ])
    async def test_describe(self, payment_status_payload, status, title, notification_type):
        payment_status_payload["status"] = status
        payload = PaymentStatusUpdatePayload.model_validate(payment_status_payload)

        described_title, message, described_type = PaymentStatusUpdateHandler.describe(payload)

        assert described_title == title
        assert described_type == notification_type
        assert "ORD-2024-001" in message

    async def test_negative_amount_rejected(self, store, payment_status_payload):
        handler = PaymentStatusUpdateHandler(NotificationCreateHandler(store))
        payment_status_payload["amount"] = -5

        result = await handler.handle(payment_status_payload)

        assert result.success is False
        assert await store.count(NOTIFICATIONS) == 0

    async def test_store_failure_fails_message(self, store, payment_status_payload):
        handler = PaymentStatusUpdateHandler(FailingNotifications(store, ["u1"]))

        result = await handler.handle(payment_status_payload)

        assert result.success is False
