# matterflow/db/crud/time_entry.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, List

from matterflow.db.models import TimeEntry, Task


async def get_open_entry(db: AsyncSession, task: Task, user_id: str) -> Optional[TimeEntry]:
    result = await db.execute(
        select(TimeEntry).filter(
            TimeEntry.task_id == task.id,
            TimeEntry.user_id == user_id,
            TimeEntry.stopped_at.is_(None),
        )
    )
    return result.scalars().first()


async def list_open_entries(db: AsyncSession, task: Task) -> List[TimeEntry]:
    result = await db.execute(
        select(TimeEntry).filter(TimeEntry.task_id == task.id, TimeEntry.stopped_at.is_(None))
    )
    return list(result.scalars().all())


async def list_task_entries(db: AsyncSession, task: Task) -> List[TimeEntry]:
    result = await db.execute(
        select(TimeEntry)
        .filter(TimeEntry.task_id == task.id)
        .order_by(TimeEntry.started_at.asc(), TimeEntry.id.asc())
    )
    return list(result.scalars().all())

