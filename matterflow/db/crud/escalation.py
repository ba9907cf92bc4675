# matterflow/db/crud/escalation.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import List, Dict, Iterable

from matterflow.db.models import SLAEscalation, Task


async def current_levels(db: AsyncSession, task_ids: Iterable[int]) -> Dict[int, int]:
    """Highest escalation level reached per task; tasks never escalated are absent"""
    ids = list(task_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(SLAEscalation.task_id, func.max(SLAEscalation.level))
        .filter(SLAEscalation.task_id.in_(ids))
        .group_by(SLAEscalation.task_id)
    )
    return {task_id: level for task_id, level in result.all()}


async def list_task_escalations(db: AsyncSession, task: Task) -> List[SLAEscalation]:
    result = await db.execute(
        select(SLAEscalation)
        .filter(SLAEscalation.task_id == task.id)
        .order_by(SLAEscalation.level.asc())
    )
    return list(result.scalars().all())
