# matterflow/db/crud/audit.py
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, List

from matterflow.db.models import AuditEntry, AuditEntityType


def _filtered(
        query,
        entity_type: Optional[AuditEntityType] = None,
        entity_id: Optional[str] = None,
        case_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
):
    """``action`` matches as a substring; ``start`` and ``end`` are inclusive"""
    if entity_type:
        query = query.filter(AuditEntry.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditEntry.entity_id == entity_id)
    if case_id:
        query = query.filter(AuditEntry.case_id == case_id)
    if actor_id:
        query = query.filter(AuditEntry.actor_id == actor_id)
    if action:
        query = query.filter(AuditEntry.action.contains(action, autoescape=True))
    if start:
        query = query.filter(AuditEntry.created_at >= start)
    if end:
        query = query.filter(AuditEntry.created_at <= end)
    return query


async def list_entries(
        db: AsyncSession,
        limit: Optional[int] = 100,
        offset: int = 0,
        **filters
) -> List[AuditEntry]:
    """Audit entries newest first"""
    query = _filtered(select(AuditEntry), **filters)
    query = query.order_by(AuditEntry.id.desc()).offset(offset)
    if limit is not None:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())

