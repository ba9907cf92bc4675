# matterflow/engine/notifications.py
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.metrics import NOTIFICATIONS_CREATED
from matterflow.core.timeutils import Clock, utc_now
from matterflow.db import crud
from matterflow.db.models import AuditEntityType, Notification, NotificationEvent
from matterflow.engine.base import after_commit, json_value, transaction
from matterflow.exceptions import NotFoundError


class NotificationDispatcher:
    """Per-user event inbox.

    ``notify`` joins the caller's transaction; the relay only sees the event
    after that transaction commits. Delivery itself belongs to the relay.
    """

    def __init__(self, audit, relay=None, clock: Clock = utc_now):
        self.audit = audit
        self.relay = relay
        self.clock = clock

    def notify(
            self,
            db: AsyncSession,
            user_id: Optional[str],
            event_type: NotificationEvent,
            payload: Dict[str, Any],
            case_id: Optional[str] = None,
            entity_id: Optional[Any] = None
    ) -> Optional[Notification]:
        if not user_id:
            return None

        notification = Notification(
            user_id=user_id,
            event_type=event_type,
            payload=json_value(payload),
            case_id=case_id,
            entity_id=str(entity_id) if entity_id is not None else None,
            is_read=False,
            created_at=self.clock(),
        )
        db.add(notification)
        after_commit(db, lambda: self._released(notification))
        return notification

    def _released(self, notification: Notification) -> None:
        NOTIFICATIONS_CREATED.labels(event_type=notification.event_type.value).inc()
        if self.relay is not None:
            self.relay.submit(notification.as_event())

    async def get_notifications(
            self,
            db: AsyncSession,
            user_id: str,
            unread_only: bool = False,
            limit: int = 100
    ) -> List[Notification]:
        return await crud.notification.list_user_notifications(db, user_id, unread_only=unread_only, limit=limit)

    async def unread_count(self, db: AsyncSession, user_id: str) -> int:
        return await crud.notification.count_unread(db, user_id)

    async def mark_notification_read(self, db: AsyncSession, notification_id: UUID, user_id: Optional[str] = None) -> Notification:
        """Idempotent: only the first transition to read is audited"""
        async with transaction(db):
            notification = await crud.notification.get_notification_by_uuid(db, notification_id)
            if notification is None or (user_id and notification.user_id != user_id):
                raise NotFoundError("Notification", notification_id)

            if not notification.is_read:
                notification.is_read = True
                notification.read_at = self.clock()
                self.audit.record(
                    db, AuditEntityType.NOTIFICATION, notification.uuid, "read",
                    actor_id=user_id or notification.user_id,
                    case_id=notification.case_id,
                    before={"is_read": False},
                    after={"is_read": True},
                )
        return notification

    async def mark_all_read(self, db: AsyncSession, user_id: str) -> int:
        """Mark every unread notification of the user read; one audit entry for the batch"""
        async with transaction(db):
            now = self.clock()
            unread = await crud.notification.list_unread(db, user_id)
            for notification in unread:
                notification.is_read = True
                notification.read_at = now
            count = len(unread)
            if count:
                self.audit.record(
                    db, AuditEntityType.NOTIFICATION, user_id, "read_all",
                    actor_id=user_id,
                    after={"marked_read": count},
                )
        logger.info("Notifications marked read", user_id=user_id, count=count)
        return count
