# matterflow/engine/dependencies.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.locks import KeyedLock, advisory_xact_lock
from matterflow.core.timeutils import Clock, utc_now
from matterflow.db import crud
from matterflow.db.models import (
    AuditEntityType, DependencyType, Task, TaskDependency, TaskStatus
)
from matterflow.engine.base import EngineComponent, transaction
from matterflow.exceptions import NotFoundError, WorkflowValidationError


@dataclass
class StartReadiness:
    task_id: UUID
    can_start: bool
    unstartable: bool = False
    reason: Optional[str] = None
    waiting_on: List[UUID] = field(default_factory=list)
    cancelled_upstream: List[UUID] = field(default_factory=list)


def find_cycle(graph: Dict[int, Set[int]], start: int) -> Optional[List[int]]:
    """Return a dependency path leading from ``start`` back to itself, if any.

    Iterative DFS over ``graph`` (task -> tasks it depends on).
    """
    stack = [(dep, [start, dep]) for dep in graph.get(start, ())]
    visited: Set[int] = set()

    while stack:
        current, path = stack.pop()
        if current == start:
            return path
        if current in visited:
            continue
        visited.add(current)
        for dep in graph.get(current, ()):
            stack.append((dep, path + [dep]))
    return None


def _edge_summary(edges: Sequence[TaskDependency]) -> List[dict]:
    return [{"task_id": str(e.depends_on.uuid), "type": e.dependency_type.value} for e in edges]


class TaskGraphManager(EngineComponent):
    """Dependency edges between tasks of a case and start-readiness queries.

    Edits for one case are serialized across the cycle check and the commit,
    in process by a keyed asyncio lock and across processes by a database
    advisory lock, so two concurrent edits cannot each pass the check and
    jointly close a cycle.
    """

    def __init__(self, audit, locks: Optional[KeyedLock] = None, clock: Clock = utc_now):
        super().__init__(audit, clock)
        self.locks = locks or KeyedLock()

    async def _get_task(self, db: AsyncSession, task_id: UUID) -> Task:
        task = await crud.task.get_task_by_uuid(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def set_task_dependencies(
            self,
            db: AsyncSession,
            task_id: UUID,
            depends_on: Sequence[UUID],
            dependency_type: DependencyType = DependencyType.BLOCKING,
            actor_id: Optional[str] = None
    ) -> List[TaskDependency]:
        """Replace the task's dependency set after validating ids and acyclicity"""
        task = await self._get_task(db, task_id)
        case_id = task.case_id

        async with self.locks.hold(case_id):
            async with transaction(db, integrity_message="Duplicate dependency edge"):
                await advisory_xact_lock(db, case_id)
                if task.status.is_terminal:
                    raise WorkflowValidationError(
                        f"Cannot change dependencies of a {task.status.value} task"
                    )

                wanted = list(dict.fromkeys(depends_on))
                if task.uuid in wanted:
                    raise WorkflowValidationError("A task cannot depend on itself")

                found = await crud.task.get_tasks_by_uuids(db, wanted)
                for dep_uuid in wanted:
                    if dep_uuid not in found:
                        raise NotFoundError("Task", dep_uuid)
                    if found[dep_uuid].case_id != case_id:
                        raise WorkflowValidationError(
                            f"Task {dep_uuid} belongs to a different case",
                            {"case_id": found[dep_uuid].case_id},
                        )

                graph = await crud.dependency.load_case_graph(db, case_id)
                graph[task.id] = {found[dep_uuid].id for dep_uuid in wanted}
                cycle = find_cycle(graph, task.id)
                if cycle:
                    tasks_by_id = await crud.task.get_tasks_by_ids(db, cycle)
                    path = [str(tasks_by_id[node].uuid) for node in cycle if node in tasks_by_id]
                    raise WorkflowValidationError(
                        "Dependency would create a cycle",
                        {"cycle": path},
                    )

                previous = await crud.dependency.list_task_dependencies(db, task)
                before = _edge_summary(previous)

                await crud.dependency.delete_task_dependencies(db, task)
                edges = [
                    TaskDependency(
                        case_id=case_id,
                        task=task,
                        depends_on=found[dep_uuid],
                        dependency_type=dependency_type,
                        created_at=self.clock(),
                    )
                    for dep_uuid in wanted
                ]
                db.add_all(edges)

                self.audit.record(
                    db, AuditEntityType.TASK, task.uuid, "dependencies_set",
                    actor_id=actor_id,
                    case_id=case_id,
                    before={"dependencies": before},
                    after={"dependencies": _edge_summary(edges)},
                )

        logger.info("Task dependencies set", task_id=str(task.uuid), count=len(edges))
        return edges

    async def get_task_dependencies(self, db: AsyncSession, task_id: UUID) -> List[TaskDependency]:
        task = await self._get_task(db, task_id)
        return await crud.dependency.list_task_dependencies(db, task)

    async def get_dependents(self, db: AsyncSession, task_id: UUID) -> List[TaskDependency]:
        task = await self._get_task(db, task_id)
        return await crud.dependency.list_dependents(db, task)

    async def can_start_task(self, db: AsyncSession, task_id: UUID) -> StartReadiness:
        task = await self._get_task(db, task_id)
        return await self.readiness(db, task)

    async def readiness(self, db: AsyncSession, task: Task) -> StartReadiness:
        """Blocking dependencies must be completed; cancelled ones make the task unstartable"""
        edges = await crud.dependency.list_task_dependencies(db, task)
        blocking = [e.depends_on for e in edges if e.dependency_type == DependencyType.BLOCKING]
        cancelled = [t.uuid for t in blocking if t.status == TaskStatus.CANCELLED]
        waiting = [t.uuid for t in blocking if not t.status.is_terminal]

        if task.status.is_terminal:
            return StartReadiness(task.uuid, False, reason=f"Task is already {task.status.value}")
        if cancelled:
            return StartReadiness(
                task.uuid, False,
                unstartable=True,
                reason="Unstartable: upstream cancelled",
                waiting_on=waiting,
                cancelled_upstream=cancelled,
            )
        if waiting:
            return StartReadiness(task.uuid, False, reason="Waiting on blocking dependencies", waiting_on=waiting)
        return StartReadiness(task.uuid, True)
