# matterflow/engine/parallel.py
from dataclasses import dataclass
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.db import crud
from matterflow.db.models import (
    AuditEntityType, CompletionRule, ParallelGroup, ParallelGroupMember, ParallelGroupStatus,
    Stage, TaskStatus
)
from matterflow.engine.base import EngineComponent, transaction
from matterflow.exceptions import NotFoundError, WorkflowValidationError


@dataclass
class GroupCompletion:
    group_id: UUID
    completed: bool
    percent: float
    completed_count: int
    total_count: int
    completion_rule: CompletionRule
    threshold: Optional[float] = None


def evaluate_group(group: ParallelGroup) -> GroupCompletion:
    """Judge a group against its rule; cancelled members still count in the total"""
    tasks = group.tasks
    total = len(tasks)
    done = sum(1 for task in tasks if task.status == TaskStatus.COMPLETED)
    ratio = done * 100.0 / total if total else 0.0

    if group.completion_rule == CompletionRule.ALL:
        completed = total > 0 and done == total
    elif group.completion_rule == CompletionRule.ANY:
        completed = done >= 1
    else:
        # compare unrounded; only the reported figure is rounded
        completed = total > 0 and ratio >= group.threshold

    return GroupCompletion(
        group_id=group.uuid,
        completed=completed,
        percent=round(ratio, 2),
        completed_count=done,
        total_count=total,
        completion_rule=group.completion_rule,
        threshold=group.threshold,
    )


class ParallelGroupCoordinator(EngineComponent):
    """Tasks of a stage that are judged together.

    Members of an ``any`` group that did not win stay open; nothing here
    cancels tasks.
    """

    async def create_parallel_group(
            self,
            db: AsyncSession,
            stage_id: UUID,
            task_ids: Sequence[UUID],
            completion_rule: CompletionRule,
            threshold: Optional[float] = None,
            name: Optional[str] = None,
            actor_id: Optional[str] = None
    ) -> ParallelGroup:
        wanted = list(dict.fromkeys(task_ids))
        if len(wanted) < 2:
            raise WorkflowValidationError("A parallel group needs at least two distinct tasks")

        if completion_rule == CompletionRule.PERCENTAGE:
            if threshold is None or not (0 < threshold <= 100):
                raise WorkflowValidationError("Percentage groups need a threshold in (0, 100]")
        elif threshold is not None:
            raise WorkflowValidationError(f"Threshold is only allowed for percentage groups, not {completion_rule.value}")

        async with transaction(db):
            stage = await crud.stage.get_stage_by_uuid(db, stage_id)
            if stage is None:
                raise NotFoundError("Stage", stage_id)

            found = await crud.task.get_tasks_by_uuids(db, wanted)
            for task_uuid in wanted:
                if task_uuid not in found:
                    raise NotFoundError("Task", task_uuid)
                if found[task_uuid].stage_id != stage.id:
                    raise WorkflowValidationError(f"Task {task_uuid} does not belong to stage {stage.uuid}")

            group = ParallelGroup(
                stage=stage,
                name=name,
                completion_rule=completion_rule,
                threshold=threshold,
                status=ParallelGroupStatus.PENDING,
                created_by=actor_id,
                members=[ParallelGroupMember(task=found[task_uuid]) for task_uuid in wanted],
            )
            db.add(group)
            await db.flush()

            self.audit.record(
                db, AuditEntityType.PARALLEL_GROUP, group.uuid, "created",
                actor_id=actor_id,
                case_id=stage.case_id,
                after={
                    "stage_id": stage.uuid,
                    "task_ids": wanted,
                    "completion_rule": completion_rule,
                    "threshold": threshold,
                },
            )

        logger.info("Parallel group created", group_id=str(group.uuid), members=len(wanted),
                    rule=completion_rule.value)
        return group

    async def check_parallel_group_completion(self, db: AsyncSession, group_id: UUID) -> GroupCompletion:
        group = await crud.parallel_group.get_group_by_uuid(db, group_id)
        if group is None:
            raise NotFoundError("Parallel group", group_id)
        return evaluate_group(group)

    async def list_parallel_groups(self, db: AsyncSession, stage_id: UUID) -> List[ParallelGroup]:
        stage = await crud.stage.get_stage_by_uuid(db, stage_id)
        if stage is None:
            raise NotFoundError("Stage", stage_id)
        return await crud.parallel_group.list_stage_groups(db, stage)

    async def evaluate_stage_groups(self, db: AsyncSession, stage: Stage) -> List[GroupCompletion]:
        """Evaluate every group of the stage, recording newly observed completions.

        Joins the caller's transaction.
        """
        results = []
        for group in await crud.parallel_group.list_stage_groups(db, stage):
            completion = evaluate_group(group)
            if completion.completed and group.status != ParallelGroupStatus.COMPLETED:
                group.status = ParallelGroupStatus.COMPLETED
                group.completed_at = self.clock()
            results.append(completion)
        return results
