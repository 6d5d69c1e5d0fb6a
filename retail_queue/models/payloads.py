"""
Message Payloads

One payload shape per MessageType. Producers validate against these before
enqueueing; handlers validate again when a message is dispatched.
"""
from typing import Any, Optional
from pydantic import Field

from retail_queue.models.base import PayloadModel
from retail_queue.models.message import MessageType
from retail_queue.models.notification import NotificationType


class NotificationCreatePayload(PayloadModel):
    """A fully-formed notification descriptor."""
    user_id: str
    title: str
    message: str
    type: NotificationType
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    action_url: Optional[str] = None
    data: Optional[dict[str, Any]] = None


class OrderParty(PayloadModel):
    """Denormalized retailer / wholesaler details attached to an order."""
    business_name: str
    address: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None
    phone: Optional[str] = None


class DeliveryOrderDetails(PayloadModel):
    order_number: str
    retailer_info: OrderParty
    wholesaler_info: OrderParty


class DeliveryAssignPayload(PayloadModel):
    order_id: str
    delivery_partner_id: str
    retailer_id: str
    wholesaler_id: str
    instructions: Optional[str] = None
    order_details: DeliveryOrderDetails


class OrderSummary(PayloadModel):
    order_number: str
    total_amount: float = 0.0


class OrderStatusUpdatePayload(PayloadModel):
    order_id: str
    status: str
    previous_status: Optional[str] = None
    retailer_id: str
    wholesaler_id: str
    delivery_partner_id: Optional[str] = None
    order_details: OrderSummary


class PaymentStatusUpdatePayload(PayloadModel):
    order_id: str
    payment_id: str
    status: str
    previous_status: Optional[str] = None
    amount: float = Field(..., ge=0)
    user_id: str
    order_number: str


PAYLOAD_MODELS: dict[str, type[PayloadModel]] = {
    MessageType.NOTIFICATION_CREATE: NotificationCreatePayload,
    MessageType.DELIVERY_ASSIGN: DeliveryAssignPayload,
    MessageType.ORDER_STATUS_UPDATE: OrderStatusUpdatePayload,
    MessageType.PAYMENT_STATUS_UPDATE: PaymentStatusUpdatePayload,
}
