# matterflow/db/crud/stage.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, List
from uuid import UUID

from matterflow.db.models import Stage, StageStatus


async def get_stage_by_uuid(db: AsyncSession, stage_uuid: UUID) -> Optional[Stage]:
    result = await db.execute(select(Stage).filter(Stage.uuid == stage_uuid))
    return result.scalars().first()


async def lock_stage(db: AsyncSession, stage_uuid: UUID) -> Optional[Stage]:
    """Load the stage row for update, overwriting any copy already in the session.

    Settlement of one stage is serialized on this row lock; SQLite ignores
    FOR UPDATE and relies on the version check instead.
    """
    result = await db.execute(
        select(Stage)
        .filter(Stage.uuid == stage_uuid)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_case_stages(db: AsyncSession, case_id: str) -> List[Stage]:
    """Stages of a case in workflow order"""
    result = await db.execute(
        select(Stage)
        .filter(Stage.case_id == case_id)
        .order_by(Stage.order_index.asc(), Stage.id.asc())
    )
    return list(result.scalars().all())


async def list_stages(db: AsyncSession, case_id: Optional[str] = None) -> List[Stage]:
    query = select(Stage)
    if case_id:
        query = query.filter(Stage.case_id == case_id)
    result = await db.execute(query.order_by(Stage.case_id, Stage.order_index, Stage.id))
    return list(result.scalars().all())


async def get_next_pending_stage(db: AsyncSession, stage: Stage) -> Optional[Stage]:
    """First pending stage after ``stage`` in the same case"""
    result = await db.execute(
        select(Stage)
        .filter(
            Stage.case_id == stage.case_id,
            Stage.status == StageStatus.PENDING,
            Stage.order_index > stage.order_index,
        )
        .order_by(Stage.order_index.asc(), Stage.id.asc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


def add_stage(db: AsyncSession, **fields) -> Stage:
    stage = Stage(**fields)
    db.add(stage)
    return stage
