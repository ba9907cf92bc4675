# matterflow/db/crud/reassignment.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from typing import Optional, List
from uuid import UUID

from matterflow.db.models import Reassignment, ReassignmentRule, Task


async def list_task_history(db: AsyncSession, task: Task) -> List[Reassignment]:
    """Assignee changes of one task, oldest first"""
    result = await db.execute(
        select(Reassignment)
        .filter(Reassignment.task_id == task.id)
        .order_by(Reassignment.created_at.asc(), Reassignment.id.asc())
    )
    return list(result.scalars().all())


async def list_user_history(db: AsyncSession, user_id: str, limit: int = 100) -> List[Reassignment]:
    """Changes that moved a task to or away from the user, newest first"""
    result = await db.execute(
        select(Reassignment)
        .filter(or_(Reassignment.from_user_id == user_id, Reassignment.to_user_id == user_id))
        .order_by(Reassignment.created_at.desc(), Reassignment.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_task_reassignments(db: AsyncSession, task: Task) -> int:
    return (await db.scalar(
        select(func.count(Reassignment.id)).filter(Reassignment.task_id == task.id)
    )) or 0


async def get_rule_by_uuid(db: AsyncSession, rule_uuid: UUID) -> Optional[ReassignmentRule]:
    result = await db.execute(select(ReassignmentRule).filter(ReassignmentRule.uuid == rule_uuid))
    return result.scalars().first()


async def list_rules(db: AsyncSession, case_id: Optional[str] = None) -> List[ReassignmentRule]:
    """Global rules plus, when ``case_id`` is given, that case's rules"""
    query = select(ReassignmentRule)
    if case_id:
        query = query.filter(or_(ReassignmentRule.case_id.is_(None), ReassignmentRule.case_id == case_id))
    result = await db.execute(query.order_by(ReassignmentRule.id.asc()))
    return list(result.scalars().all())
