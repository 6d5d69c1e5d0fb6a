import pytest

from retail_queue.config import Settings
from retail_queue.message_queue import NotificationProducer, QueueService
from retail_queue.repositories import InMemoryMessageStore


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, environment="test", store_backend="memory")


@pytest.fixture
def store():
    """Returns a fresh in-memory message store."""
    return InMemoryMessageStore()


@pytest.fixture
def service(store, settings):
    """Queue service with the built-in handlers over the in-memory store."""
    return QueueService(store, settings=settings)


@pytest.fixture
def producer(service):
    return NotificationProducer(service)


@pytest.fixture
def delivery_assign_payload():
    """A well-formed delivery:assign payload in the frontend's camelCase shape."""
    return {
        "orderId": "order-42",
        "deliveryPartnerId": "dp-1",
        "retailerId": "ret-1",
        "wholesalerId": "whl-1",
        "orderDetails": {
            "orderNumber": "ORD-2024-042",
            "retailerInfo": {
                "businessName": "Sharma General Store",
                "address": "12 MG Road",
                "city": "Pune",
                "pincode": "411001",
                "phone": "9800000001",
            },
            "wholesalerInfo": {
                "businessName": "Deccan Wholesale",
                "address": "Plot 7, MIDC",
                "city": "Pune",
                "pincode": "411019",
                "phone": "9800000002",
            },
        },
    }


@pytest.fixture
def order_status_payload():
    return {
        "orderId": "order-42",
        "status": "confirmed",
        "previousStatus": "placed",
        "retailerId": "ret-1",
        "wholesalerId": "whl-1",
        "orderDetails": {"orderNumber": "ORD-2024-042", "totalAmount": 1150},
    }


@pytest.fixture
def payment_status_payload():
    return {
        "orderId": "order-1",
        "paymentId": "pay-1",
        "status": "paid",
        "previousStatus": "pending",
        "amount": 1150,
        "userId": "u1",
        "orderNumber": "ORD-2024-001",
    }
