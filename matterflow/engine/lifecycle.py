# matterflow/engine/lifecycle.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.metrics import TASK_TRANSITIONS
from matterflow.core.timeutils import Clock, utc_now
from matterflow.db import crud
from matterflow.db.models import (
    AuditEntityType, NotificationEvent, Stage, StageStatus, Task, TaskPriority, TaskStatus
)
from matterflow.engine.base import EngineComponent, after_commit, snapshot, transaction
from matterflow.exceptions import NotFoundError, WorkflowValidationError

STAGE_FIELDS = ("case_id", "name", "order_index", "status", "progress", "started_at", "completed_at")
TASK_FIELDS = ("title", "status", "priority", "assignee_id", "due_date", "started_at", "completed_at",
               "cancelled_at")


@dataclass
class StageOutcome:
    progress: float
    stage_completed: bool = False
    next_stage: Optional[Stage] = None
    matched_rule_id: Optional[UUID] = None
    satisfied_group_ids: List[UUID] = field(default_factory=list)


@dataclass
class CompletionResult:
    task: Task
    stage: Stage
    stage_completed: bool
    progress: float
    next_stage_id: Optional[UUID] = None
    matched_rule_id: Optional[UUID] = None
    satisfied_group_ids: List[UUID] = field(default_factory=list)
    closed_time_entries: int = 0


class TaskLifecycle(EngineComponent):
    """Stage and task creation plus the start/complete/cancel transitions.

    Completing or cancelling a task re-evaluates its stage: progress is
    recomputed, parallel groups are judged, and once every group is satisfied
    and every ungrouped task is terminal the stage completes and the next one
    (conditional branch first, otherwise the next pending stage by order)
    becomes active.
    """

    def __init__(self, audit, notifier, graph, time_tracking, parallel, conditions, clock: Clock = utc_now):
        super().__init__(audit, clock)
        self.notifier = notifier
        self.graph = graph
        self.time_tracking = time_tracking
        self.parallel = parallel
        self.conditions = conditions

    async def _get_stage(self, db: AsyncSession, stage_id: UUID) -> Stage:
        stage = await crud.stage.get_stage_by_uuid(db, stage_id)
        if stage is None:
            raise NotFoundError("Stage", stage_id)
        return stage

    async def _lock_stage(self, db: AsyncSession, stage_id: UUID) -> Stage:
        stage = await crud.stage.lock_stage(db, stage_id)
        if stage is None:
            raise NotFoundError("Stage", stage_id)
        return stage

    async def _get_task(self, db: AsyncSession, task_id: UUID) -> Task:
        task = await crud.task.get_task_by_uuid(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def _count_transition(self, db: AsyncSession, status: TaskStatus) -> None:
        after_commit(db, lambda: TASK_TRANSITIONS.labels(status=status.value).inc())

    # Stages

    async def create_stage(
            self,
            db: AsyncSession,
            case_id: str,
            name: str,
            order_index: int = 0,
            actor_id: Optional[str] = None,
            description: Optional[str] = None
    ) -> Stage:
        if not case_id or not name or not name.strip():
            raise WorkflowValidationError("Stage needs a case id and a name")

        async with transaction(db):
            stage = crud.stage.add_stage(
                db,
                case_id=case_id,
                name=name.strip(),
                description=description,
                order_index=order_index,
                status=StageStatus.PENDING,
                progress=0.0,
                created_by=actor_id,
            )
            await db.flush()
            self.audit.record(
                db, AuditEntityType.STAGE, stage.uuid, "created",
                actor_id=actor_id,
                case_id=case_id,
                after=snapshot(stage, STAGE_FIELDS),
            )

        logger.info("Stage created", stage_id=str(stage.uuid), case_id=case_id, order=order_index)
        return stage

    async def activate_stage(self, db: AsyncSession, stage_id: UUID, actor_id: Optional[str] = None) -> Stage:
        async with transaction(db):
            stage = await self._lock_stage(db, stage_id)
            if stage.status != StageStatus.PENDING:
                raise WorkflowValidationError(f"Only pending stages can be activated, stage is {stage.status.value}")

            before = snapshot(stage, ("status", "started_at"))
            stage.status = StageStatus.ACTIVE
            stage.started_at = self.clock()
            self.audit.record(
                db, AuditEntityType.STAGE, stage.uuid, "activated",
                actor_id=actor_id,
                case_id=stage.case_id,
                before=before,
                after=snapshot(stage, ("status", "started_at")),
            )

        logger.info("Stage activated", stage_id=str(stage.uuid), case_id=stage.case_id)
        return stage

    async def get_stage(self, db: AsyncSession, stage_id: UUID) -> Stage:
        return await self._get_stage(db, stage_id)

    async def list_case_stages(self, db: AsyncSession, case_id: str) -> List[Stage]:
        return await crud.stage.list_case_stages(db, case_id)

    # Tasks

    async def create_task(
            self,
            db: AsyncSession,
            stage_id: UUID,
            title: str,
            priority: TaskPriority = TaskPriority.MEDIUM,
            actor_id: Optional[str] = None,
            assignee_id: Optional[str] = None,
            due_date: Optional[datetime] = None,
            description: Optional[str] = None
    ) -> Task:
        if not title or not title.strip():
            raise WorkflowValidationError("Task title is required")

        async with transaction(db):
            stage = await self._lock_stage(db, stage_id)
            if stage.status == StageStatus.COMPLETED:
                raise WorkflowValidationError("Cannot add tasks to a completed stage")

            task = crud.task.add_task(
                db,
                stage=stage,
                case_id=stage.case_id,
                title=title.strip(),
                description=description,
                priority=priority,
                status=TaskStatus.PENDING,
                assignee_id=assignee_id,
                due_date=due_date,
                created_by=actor_id,
                created_at=self.clock(),
            )
            await db.flush()
            await self._refresh_progress(db, stage)

            if assignee_id:
                self.notifier.notify(
                    db, assignee_id, NotificationEvent.TASK_ASSIGNED,
                    {"task_id": task.uuid, "task_title": task.title, "assigned_by": actor_id},
                    case_id=task.case_id, entity_id=task.uuid,
                )
            self.audit.record(
                db, AuditEntityType.TASK, task.uuid, "created",
                actor_id=actor_id,
                case_id=task.case_id,
                after={**snapshot(task, TASK_FIELDS), "stage_id": stage.uuid},
            )
            self._count_transition(db, TaskStatus.PENDING)

        logger.info("Task created", task_id=str(task.uuid), stage_id=str(stage.uuid), priority=priority.value)
        return task

    async def get_task(self, db: AsyncSession, task_id: UUID) -> Task:
        return await self._get_task(db, task_id)

    async def list_stage_tasks(
            self,
            db: AsyncSession,
            stage_id: UUID,
            status_filter: Optional[TaskStatus] = None
    ) -> List[Task]:
        stage = await self._get_stage(db, stage_id)
        return await crud.task.list_stage_tasks(db, stage, status_filter)

    async def _require_ready(self, db: AsyncSession, task: Task) -> None:
        readiness = await self.graph.readiness(db, task)
        if not readiness.can_start:
            raise WorkflowValidationError(
                readiness.reason or "Task cannot start",
                {
                    "waiting_on": [str(t) for t in readiness.waiting_on],
                    "cancelled_upstream": [str(t) for t in readiness.cancelled_upstream],
                    "unstartable": readiness.unstartable,
                },
            )

    async def start_task(self, db: AsyncSession, task_id: UUID, actor_id: Optional[str] = None) -> Task:
        async with transaction(db):
            task = await self._get_task(db, task_id)
            if task.status != TaskStatus.PENDING:
                raise WorkflowValidationError(f"Only pending tasks can be started, task is {task.status.value}")
            await self._require_ready(db, task)

            before = snapshot(task, ("status", "started_at"))
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = self.clock()
            self.audit.record(
                db, AuditEntityType.TASK, task.uuid, "started",
                actor_id=actor_id,
                case_id=task.case_id,
                before=before,
                after=snapshot(task, ("status", "started_at")),
            )
            self._count_transition(db, TaskStatus.IN_PROGRESS)

        logger.info("Task started", task_id=str(task.uuid), actor=actor_id)
        return task

    async def complete_task(
            self,
            db: AsyncSession,
            task_id: UUID,
            actor_id: Optional[str] = None,
            context: Optional[Mapping[str, Any]] = None
    ) -> CompletionResult:
        async with transaction(db):
            task = await self._get_task(db, task_id)
            if task.status.is_terminal:
                raise WorkflowValidationError(f"Task is already {task.status.value}")
            await self._require_ready(db, task)

            now = self.clock()
            before = snapshot(task, ("status", "completed_at"))
            task.status = TaskStatus.COMPLETED
            task.completed_at = now
            closed = await self.time_tracking.close_open_entries(db, task, now)

            stage = await self._lock_stage(db, task.stage.uuid)
            outcome = await self._settle_stage(db, stage, task, context, now)

            self.audit.record(
                db, AuditEntityType.TASK, task.uuid, "completed",
                actor_id=actor_id,
                case_id=task.case_id,
                before=before,
                after={
                    **snapshot(task, ("status", "completed_at")),
                    "closed_time_entries": len(closed),
                    "stage_id": stage.uuid,
                    "stage_progress": outcome.progress,
                    "stage_completed": outcome.stage_completed,
                    "next_stage_id": outcome.next_stage.uuid if outcome.next_stage else None,
                    "matched_rule_id": outcome.matched_rule_id,
                },
            )
            self._count_transition(db, TaskStatus.COMPLETED)

        logger.info("Task completed", task_id=str(task.uuid), stage_completed=outcome.stage_completed,
                    progress=outcome.progress)
        return CompletionResult(
            task=task,
            stage=stage,
            stage_completed=outcome.stage_completed,
            progress=outcome.progress,
            next_stage_id=outcome.next_stage.uuid if outcome.next_stage else None,
            matched_rule_id=outcome.matched_rule_id,
            satisfied_group_ids=outcome.satisfied_group_ids,
            closed_time_entries=len(closed),
        )

    async def cancel_task(
            self,
            db: AsyncSession,
            task_id: UUID,
            actor_id: Optional[str] = None,
            reason: Optional[str] = None
    ) -> CompletionResult:
        """Cancel an open task; dependents become unstartable, nothing else is cancelled"""
        async with transaction(db):
            task = await self._get_task(db, task_id)
            if task.status.is_terminal:
                raise WorkflowValidationError(f"Task is already {task.status.value}")

            now = self.clock()
            before = snapshot(task, ("status", "cancelled_at"))
            task.status = TaskStatus.CANCELLED
            task.cancelled_at = now
            closed = await self.time_tracking.close_open_entries(db, task, now)

            stage = await self._lock_stage(db, task.stage.uuid)
            outcome = await self._settle_stage(db, stage, task, None, now)

            self.audit.record(
                db, AuditEntityType.TASK, task.uuid, "cancelled",
                actor_id=actor_id,
                case_id=task.case_id,
                before=before,
                after={
                    **snapshot(task, ("status", "cancelled_at")),
                    "reason": reason,
                    "closed_time_entries": len(closed),
                    "stage_progress": outcome.progress,
                    "stage_completed": outcome.stage_completed,
                    "next_stage_id": outcome.next_stage.uuid if outcome.next_stage else None,
                },
            )
            self._count_transition(db, TaskStatus.CANCELLED)

        logger.info("Task cancelled", task_id=str(task.uuid), reason=reason)
        return CompletionResult(
            task=task,
            stage=stage,
            stage_completed=outcome.stage_completed,
            progress=outcome.progress,
            next_stage_id=outcome.next_stage.uuid if outcome.next_stage else None,
            matched_rule_id=outcome.matched_rule_id,
            satisfied_group_ids=outcome.satisfied_group_ids,
            closed_time_entries=len(closed),
        )

    # Stage evaluation

    async def _refresh_progress(self, db: AsyncSession, stage: Stage) -> Dict[TaskStatus, int]:
        """Progress is completed over non-cancelled tasks"""
        counts = await crud.task.count_stage_tasks_by_status(db, stage)
        completed = counts.get(TaskStatus.COMPLETED, 0)
        live = sum(counts.values()) - counts.get(TaskStatus.CANCELLED, 0)
        if live:
            stage.progress = round(completed * 100.0 / live, 2)
        else:
            stage.progress = 100.0 if counts else 0.0
        return counts

    def _branch_context(self, stage: Stage, task: Task, counts: Dict[TaskStatus, int],
                        context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        base = {
            "case_id": stage.case_id,
            "stage": {"name": stage.name, "order": stage.order_index, "progress": stage.progress},
            "task": {"title": task.title, "priority": task.priority.value, "status": task.status.value},
            "completed_tasks": counts.get(TaskStatus.COMPLETED, 0),
            "cancelled_tasks": counts.get(TaskStatus.CANCELLED, 0),
            "total_tasks": sum(counts.values()),
        }
        base.update(context or {})
        return base

    async def _settle_stage(
            self,
            db: AsyncSession,
            stage: Stage,
            task: Task,
            context: Optional[Mapping[str, Any]],
            now: datetime
    ) -> StageOutcome:
        await db.flush()
        counts = await self._refresh_progress(db, stage)
        # reads below overwrite session state from the database
        await db.flush()
        outcome = StageOutcome(progress=stage.progress)

        groups = await self.parallel.evaluate_stage_groups(db, stage)
        outcome.satisfied_group_ids = [g.group_id for g in groups if g.completed]
        if stage.status == StageStatus.COMPLETED:
            return outcome

        grouped = set(await crud.parallel_group.list_grouped_task_ids(db, stage))
        tasks = await crud.task.list_stage_tasks(db, stage, fresh=True)
        ungrouped_done = all(t.status.is_terminal for t in tasks if t.id not in grouped)
        if not (ungrouped_done and all(g.completed for g in groups)):
            return outcome

        stage.status = StageStatus.COMPLETED
        stage.completed_at = now
        if stage.started_at is None:
            stage.started_at = now
        outcome.stage_completed = True

        decision = await self.conditions.decide(db, stage, self._branch_context(stage, task, counts, context))
        if decision.matched:
            outcome.matched_rule_id = decision.rule_id
            if decision.target_stage.status == StageStatus.PENDING:
                outcome.next_stage = decision.target_stage
            else:
                logger.warning("Branch target is not pending, no stage activated",
                               stage_id=str(stage.uuid), target_stage_id=str(decision.target_stage_id),
                               target_status=decision.target_stage.status.value)
        else:
            outcome.next_stage = await crud.stage.get_next_pending_stage(db, stage)

        if outcome.next_stage is not None:
            outcome.next_stage.status = StageStatus.ACTIVE
            outcome.next_stage.started_at = now

        self.notifier.notify(
            db, task.owner_id, NotificationEvent.STAGE_COMPLETED,
            {
                "stage_id": stage.uuid,
                "stage_name": stage.name,
                "next_stage_id": outcome.next_stage.uuid if outcome.next_stage else None,
                "next_stage_name": outcome.next_stage.name if outcome.next_stage else None,
            },
            case_id=stage.case_id, entity_id=stage.uuid,
        )
        logger.info("Stage completed", stage_id=str(stage.uuid), case_id=stage.case_id,
                    next_stage_id=str(outcome.next_stage.uuid) if outcome.next_stage else None)
        return outcome
