# matterflow/db/crud/approval.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from matterflow.db.models import ApprovalChain, ApprovalOutcome, Task


async def get_latest_chain(db: AsyncSession, task: Task) -> Optional[ApprovalChain]:
    """Most recently created chain for the task, whatever its outcome"""
    result = await db.execute(
        select(ApprovalChain)
        .filter(ApprovalChain.task_id == task.id)
        .order_by(ApprovalChain.id.desc())
        .limit(1)
    )
    return result.scalars().first()


async def get_pending_chain(db: AsyncSession, task: Task) -> Optional[ApprovalChain]:
    result = await db.execute(
        select(ApprovalChain)
        .filter(ApprovalChain.task_id == task.id, ApprovalChain.outcome == ApprovalOutcome.PENDING)
    )
    return result.scalars().first()
