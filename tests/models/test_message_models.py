"""
Tests for queue message, notification and payload models.
"""
import pytest
from pydantic import ValidationError

from retail_queue.models.message import (
    MessageMetadata,
    MessagePriority,
    MessageStatus,
    MessageType,
    QueueMessage,
)
from retail_queue.models.payloads import (
    PAYLOAD_MODELS,
    DeliveryAssignPayload,
    OrderStatusUpdatePayload,
)


class TestQueueMessage:

    def test_defaults(self):
        message = QueueMessage(type=MessageType.DELIVERY_ASSIGN.value, payload={"orderId": "o1"})

        assert message.status == MessageStatus.PENDING
        assert message.retry_count == 0
        assert message.max_retries == 3
        assert message.metadata.priority == MessagePriority.NORMAL
        assert message.created_at.tzinfo is not None
        assert not message.is_locked

    def test_row_keeps_enum_values_as_strings(self):
        row = QueueMessage(type="delivery:assign", payload={}).to_row()

        assert row["status"] == "pending"
        assert type(row["status"]) is str
        assert row["metadata"]["priority"] == "normal"
        assert type(row["metadata"]["priority"]) is str

    def test_explicit_enum_members_stored_as_strings(self):
        message = QueueMessage(
            type=MessageType.DELIVERY_ASSIGN,
            payload={},
            status=MessageStatus.FAILED,
            metadata=MessageMetadata(priority=MessagePriority.HIGH),
        )

        row = message.to_row()

        assert type(row["status"]) is str
        assert type(row["metadata"]["priority"]) is str
        assert row["metadata"]["priority"] == "high"

    def test_from_row_ignores_store_keys(self):
        row = QueueMessage(type="delivery:assign", payload={}).to_row()
        row["_id"] = "6650f0c2e4b0a1a2b3c4d5e6"

        message = QueueMessage.from_row(row)

        assert message.type == "delivery:assign"
        assert not hasattr(message, "_id")

    def test_is_locked(self):
        message = QueueMessage(type="delivery:assign", payload={}, locked_by="worker-1")

        assert message.is_locked


class TestPayloads:

    def test_every_message_type_has_a_payload_model(self):
        assert set(PAYLOAD_MODELS) == set(MessageType)

    def test_camel_case_and_snake_case_accepted(self, order_status_payload):
        camel = OrderStatusUpdatePayload.model_validate(order_status_payload)
        snake = OrderStatusUpdatePayload.model_validate(camel.model_dump())

        assert camel == snake
        assert camel.order_details.total_amount == 1150
        assert camel.delivery_partner_id is None

    def test_camel_case_dump(self, delivery_assign_payload):
        payload = DeliveryAssignPayload.model_validate(delivery_assign_payload)

        dumped = payload.model_dump(by_alias=True)

        assert dumped["deliveryPartnerId"] == "dp-1"
        assert dumped["orderDetails"]["retailerInfo"]["businessName"] == "Sharma General Store"

    def test_missing_required_field(self, delivery_assign_payload):
        del delivery_assign_payload["retailerId"]

        with pytest.raises(ValidationError):
            DeliveryAssignPayload.model_validate(delivery_assign_payload)
