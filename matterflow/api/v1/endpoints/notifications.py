# matterflow/api/v1/endpoints/notifications.py
"""Notification inbox endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Query, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine
from matterflow.api.v1.schemas.notifications import (
    NotificationResponse, NotificationInbox, MarkReadRequest, MarkAllReadResponse
)
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.put("/user/{user_id}/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user_id: str = Path(..., max_length=64, description="User id"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Mark every unread notification of the user read"""
    try:
        count = await engine.notifications.mark_all_read(db, user_id)
        return MarkAllReadResponse(user_id=user_id, marked_read=count)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to mark notifications read for {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark notifications read"
        )


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID = Path(..., description="Notification UUID"),
    body: Optional[MarkReadRequest] = None,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Mark one notification read; repeating it is a no-op"""
    try:
        notification = await engine.notifications.mark_notification_read(
            db, notification_id, user_id=body.user_id if body else None
        )
        return NotificationResponse.from_model(notification)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to mark notification {notification_id} read: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark notification read"
        )


@router.get("/{user_id}", response_model=NotificationInbox)
async def get_notifications(
    user_id: str = Path(..., max_length=64, description="User id"),
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """A user's notifications, newest first"""
    try:
        items = await engine.notifications.get_notifications(db, user_id, unread_only=unread_only, limit=limit)
        unread = await engine.notifications.unread_count(db, user_id)
        return NotificationInbox(
            user_id=user_id,
            unread_count=unread,
            items=[NotificationResponse.from_model(item) for item in items]
        )

    except Exception as e:
        logger.error(f"Failed to get notifications for {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get notifications"
        )
