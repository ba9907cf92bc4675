# matterflow/api/v1/schemas/notifications.py
from pydantic import BaseModel, Field, UUID4
from typing import Optional, List, Dict, Any
from datetime import datetime

from matterflow.db.models import NotificationEvent


class NotificationResponse(BaseModel):
    id: UUID4
    user_id: str
    event_type: NotificationEvent
    payload: Dict[str, Any]
    case_id: Optional[str] = None
    entity_id: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_model(cls, notification):
        return cls(
            id=notification.uuid,
            user_id=notification.user_id,
            event_type=notification.event_type,
            payload=notification.payload or {},
            case_id=notification.case_id,
            entity_id=notification.entity_id,
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationInbox(BaseModel):
    user_id: str
    unread_count: int
    items: List[NotificationResponse]


class MarkReadRequest(BaseModel):
    user_id: Optional[str] = Field(None, max_length=64, description="Only mark if the notification is theirs")


class MarkAllReadResponse(BaseModel):
    user_id: str
    marked_read: int
