# matterflow/db/crud/task.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Optional, List, Iterable, Dict
from uuid import UUID

from matterflow.db.models import Task, Stage, TaskStatus

OPEN_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


async def get_task_by_uuid(db: AsyncSession, task_uuid: UUID) -> Optional[Task]:
    """Get task by UUID with its stage loaded"""
    result = await db.execute(select(Task).filter(Task.uuid == task_uuid))
    return result.scalars().first()


async def get_tasks_by_uuids(db: AsyncSession, task_uuids: Iterable[UUID]) -> Dict[UUID, Task]:
    uuids = list(task_uuids)
    if not uuids:
        return {}
    result = await db.execute(select(Task).filter(Task.uuid.in_(uuids)))
    return {task.uuid: task for task in result.scalars().all()}


async def get_tasks_by_ids(db: AsyncSession, task_ids: Iterable[int]) -> Dict[int, Task]:
    ids = list(task_ids)
    if not ids:
        return {}
    result = await db.execute(select(Task).filter(Task.id.in_(ids)))
    return {task.id: task for task in result.scalars().all()}


async def list_stage_tasks(
        db: AsyncSession,
        stage: Stage,
        status_filter: Optional[TaskStatus] = None,
        fresh: bool = False
) -> List[Task]:
    """``fresh`` re-reads rows already held by the session"""
    query = select(Task).filter(Task.stage_id == stage.id)
    if status_filter:
        query = query.filter(Task.status == status_filter)
    if fresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query.order_by(Task.created_at.asc(), Task.id.asc()))
    return list(result.scalars().all())


async def list_tasks(
        db: AsyncSession,
        case_id: Optional[str] = None,
        statuses: Optional[Iterable[TaskStatus]] = None,
        assignee_id: Optional[str] = None
) -> List[Task]:
    """Tasks filtered by case, status set and assignee"""
    query = select(Task)
    if case_id:
        query = query.filter(Task.case_id == case_id)
    if statuses is not None:
        query = query.filter(Task.status.in_(list(statuses)))
    if assignee_id is not None:
        query = query.filter(Task.assignee_id == assignee_id)
    result = await db.execute(query.order_by(Task.id.asc()))
    return list(result.scalars().all())


async def list_open_tasks_for_assignee(db: AsyncSession, assignee_id: str, case_id: Optional[str] = None) -> List[Task]:
    return await list_tasks(db, case_id=case_id, statuses=OPEN_STATUSES, assignee_id=assignee_id)


async def count_stage_tasks_by_status(db: AsyncSession, stage: Stage) -> Dict[TaskStatus, int]:
    result = await db.execute(
        select(Task.status, func.count(Task.id))
        .filter(Task.stage_id == stage.id)
        .group_by(Task.status)
    )
    return {status: count for status, count in result.all()}


def add_task(db: AsyncSession, **fields) -> Task:
    task = Task(**fields)
    db.add(task)
    return task
