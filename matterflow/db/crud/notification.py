# matterflow/db/crud/notification.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Optional, List
from uuid import UUID

from matterflow.db.models import Notification, NotificationEvent


async def get_notification_by_uuid(db: AsyncSession, notification_uuid: UUID) -> Optional[Notification]:
    result = await db.execute(select(Notification).filter(Notification.uuid == notification_uuid))
    return result.scalars().first()


async def list_user_notifications(
        db: AsyncSession,
        user_id: str,
        unread_only: bool = False,
        limit: int = 100
) -> List[Notification]:
    query = select(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    result = await db.execute(query.order_by(Notification.id.desc()).limit(limit))
    return list(result.scalars().all())


async def count_unread(db: AsyncSession, user_id: str) -> int:
    count = await db.scalar(
        select(func.count(Notification.id))
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return count or 0


async def exists_for_entity(
        db: AsyncSession,
        event_type: NotificationEvent,
        entity_id: str,
        user_id: Optional[str] = None
) -> bool:
    """Whether this event was already raised for the entity (used to de-duplicate SLA warnings)"""
    query = select(Notification.id).filter(
        Notification.event_type == event_type,
        Notification.entity_id == entity_id,
    )
    if user_id:
        query = query.filter(Notification.user_id == user_id)
    return (await db.scalar(query.limit(1))) is not None


async def list_unread(db: AsyncSession, user_id: str) -> List[Notification]:
    result = await db.execute(
        select(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .order_by(Notification.id.asc())
    )
    return list(result.scalars().all())
