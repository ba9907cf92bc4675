# matterflow/db/crud/dependency.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from typing import List, Dict, Set

from matterflow.db.models import Task, TaskDependency


async def list_task_dependencies(db: AsyncSession, task: Task) -> List[TaskDependency]:
    """Outgoing edges of ``task`` with the upstream task loaded"""
    result = await db.execute(
        select(TaskDependency)
        .filter(TaskDependency.task_id == task.id)
        .order_by(TaskDependency.id.asc())
    )
    return list(result.scalars().all())


async def list_dependents(db: AsyncSession, task: Task) -> List[TaskDependency]:
    """Incoming edges: tasks that depend on ``task``"""
    result = await db.execute(
        select(TaskDependency)
        .filter(TaskDependency.depends_on_id == task.id)
        .order_by(TaskDependency.id.asc())
    )
    return list(result.scalars().all())


async def load_case_graph(db: AsyncSession, case_id: str) -> Dict[int, Set[int]]:
    """Adjacency map task id -> ids it depends on, for every edge in the case"""
    result = await db.execute(
        select(TaskDependency.task_id, TaskDependency.depends_on_id)
        .filter(TaskDependency.case_id == case_id)
    )
    graph: Dict[int, Set[int]] = {}
    for task_id, depends_on_id in result.all():
        graph.setdefault(task_id, set()).add(depends_on_id)
    return graph


async def list_edges(db: AsyncSession, case_id=None) -> List[TaskDependency]:
    """All edges, optionally case-scoped; callers filter on status"""
    query = select(TaskDependency)
    if case_id:
        query = query.filter(TaskDependency.case_id == case_id)
    result = await db.execute(query.order_by(TaskDependency.id.asc()))
    return list(result.scalars().all())


async def delete_task_dependencies(db: AsyncSession, task: Task) -> None:
    await db.execute(delete(TaskDependency).where(TaskDependency.task_id == task.id))
