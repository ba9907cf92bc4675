# matterflow/db/models/notification.py
"""Per-user notification inbox model"""
from sqlalchemy import Column, String, JSON, Boolean, Enum, DateTime, Index

from matterflow.core.timeutils import utc_now
from matterflow.db.models.base import Base, UUIDMixin
from matterflow.db.models.enums import NotificationEvent


class Notification(Base, UUIDMixin):
    __tablename__ = "notifications"

    user_id = Column(String(64), nullable=False)
    event_type = Column(Enum(NotificationEvent), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    case_id = Column(String(64), nullable=True)
    entity_id = Column(String(64), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_notification_user_read', 'user_id', 'is_read'),
        Index('idx_notification_event_entity', 'event_type', 'entity_id'),
    )

    def as_event(self) -> dict:
        """Shape handed to the delivery relay"""
        return {
            "id": str(self.uuid),
            "user_id": self.user_id,
            "event_type": self.event_type.value,
            "case_id": self.case_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
