import datetime as dt
import uuid
from enum import StrEnum
from typing import Any, Optional
from pydantic import Field

from retail_queue.models.base import StoredModel, utc_now


class NotificationType(StrEnum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notification(StoredModel):
    """
    User-facing notification row.
    Written by the notification:create handler, read and marked as read by the dashboards.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    title: str
    message: str
    type: NotificationType
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    action_url: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    is_read: bool = False
    created_at: dt.datetime = Field(default_factory=utc_now)
