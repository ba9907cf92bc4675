# matterflow/db/crud/parallel_group.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, List
from uuid import UUID

from matterflow.db.models import ParallelGroup, ParallelGroupMember, Stage


async def get_group_by_uuid(db: AsyncSession, group_uuid: UUID) -> Optional[ParallelGroup]:
    result = await db.execute(select(ParallelGroup).filter(ParallelGroup.uuid == group_uuid))
    return result.scalars().first()


async def list_stage_groups(db: AsyncSession, stage: Stage) -> List[ParallelGroup]:
    result = await db.execute(
        select(ParallelGroup)
        .filter(ParallelGroup.stage_id == stage.id)
        .order_by(ParallelGroup.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_grouped_task_ids(db: AsyncSession, stage: Stage) -> List[int]:
    """Ids of tasks in the stage that belong to at least one parallel group"""
    result = await db.execute(
        select(ParallelGroupMember.task_id)
        .join(ParallelGroup, ParallelGroup.id == ParallelGroupMember.group_id)
        .filter(ParallelGroup.stage_id == stage.id)
        .distinct()
    )
    return list(result.scalars().all())
