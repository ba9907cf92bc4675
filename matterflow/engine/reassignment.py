# matterflow/engine/reassignment.py
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.timeutils import Clock, utc_now
from matterflow.db import crud
from matterflow.db.models import AuditEntityType, NotificationEvent, Reassignment, ReassignmentRule, Task
from matterflow.engine.base import EngineComponent, snapshot, transaction
from matterflow.exceptions import ConflictError, NotFoundError, WorkflowError, WorkflowValidationError

RULE_FIELDS = ("name", "case_id", "allowed_assignees", "blocked_assignees", "max_reassignments")


@dataclass
class ReassignmentItem:
    task_id: UUID
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class BulkReassignmentResult:
    succeeded: int = 0
    failed: int = 0
    results: List[ReassignmentItem] = field(default_factory=list)

    def add(self, item: ReassignmentItem) -> None:
        self.results.append(item)
        if item.success:
            self.succeeded += 1
        else:
            self.failed += 1


def check_rules(rules: Sequence[ReassignmentRule], new_assignee_id: str, reassignment_count: int) -> None:
    """Raise on the first rule the move would break"""
    for rule in rules:
        context = {"rule_id": str(rule.uuid), "rule_name": rule.name}
        if rule.blocked_assignees and new_assignee_id in rule.blocked_assignees:
            raise WorkflowValidationError(f"{new_assignee_id} is blocked by rule {rule.name}", context)
        if rule.allowed_assignees is not None and new_assignee_id not in rule.allowed_assignees:
            raise WorkflowValidationError(f"{new_assignee_id} is not an allowed assignee under rule {rule.name}",
                                          context)
        if rule.max_reassignments is not None and reassignment_count >= rule.max_reassignments:
            raise WorkflowValidationError(
                f"Task reached the limit of {rule.max_reassignments} reassignments",
                {**context, "reassignments": reassignment_count},
            )


class ReassignmentService(EngineComponent):
    """Moves open tasks between assignees, one transaction per task.

    Every move is kept as a ``Reassignment`` row, which is what the history
    queries and the ``max_reassignments`` constraint read.
    """

    def __init__(self, audit, notifier, clock: Clock = utc_now):
        super().__init__(audit, clock)
        self.notifier = notifier

    def hand_over(
            self,
            db: AsyncSession,
            task: Task,
            new_assignee_id: str,
            reassigned_by: str,
            reason: Optional[str] = None
    ) -> Reassignment:
        """Change the assignee inside the caller's transaction, with notices, history and audit"""
        previous = task.assignee_id
        task.assignee_id = new_assignee_id
        record = Reassignment(
            task=task,
            from_user_id=previous,
            to_user_id=new_assignee_id,
            reassigned_by=reassigned_by,
            reason=reason,
            created_at=self.clock(),
        )
        db.add(record)

        payload = {"task_id": task.uuid, "task_title": task.title, "reassigned_by": reassigned_by,
                   "reason": reason}
        self.notifier.notify(db, new_assignee_id, NotificationEvent.TASK_ASSIGNED, payload,
                             case_id=task.case_id, entity_id=task.uuid)
        if previous:
            self.notifier.notify(db, previous, NotificationEvent.TASK_UNASSIGNED,
                                 {**payload, "new_assignee_id": new_assignee_id},
                                 case_id=task.case_id, entity_id=task.uuid)

        self.audit.record(
            db, AuditEntityType.TASK, task.uuid, "reassigned",
            actor_id=reassigned_by,
            case_id=task.case_id,
            before={"assignee_id": previous},
            after={"assignee_id": new_assignee_id, "reason": reason},
        )
        return record

    async def reassign_task(
            self,
            db: AsyncSession,
            task_id: UUID,
            new_assignee_id: str,
            reassigned_by: str,
            reason: Optional[str] = None,
            expected_version: Optional[int] = None
    ) -> Task:
        if not new_assignee_id:
            raise WorkflowValidationError("New assignee is required")

        async with transaction(db):
            task = await crud.task.get_task_by_uuid(db, task_id)
            if task is None:
                raise NotFoundError("Task", task_id)
            if expected_version is not None and task.version != expected_version:
                raise ConflictError(
                    "Task was modified since it was read",
                    {"expected_version": expected_version, "current_version": task.version},
                )
            if task.status.is_terminal:
                raise WorkflowValidationError(f"Cannot reassign a {task.status.value} task")
            if task.assignee_id == new_assignee_id:
                raise WorkflowValidationError(f"Task is already assigned to {new_assignee_id}")

            rules = await crud.reassignment.list_rules(db, task.case_id)
            if rules:
                count = await crud.reassignment.count_task_reassignments(db, task)
                check_rules(rules, new_assignee_id, count)

            previous = task.assignee_id
            self.hand_over(db, task, new_assignee_id, reassigned_by, reason=reason)

        logger.info("Task reassigned", task_id=str(task_id), from_user=previous, to_user=new_assignee_id)
        return task

    async def bulk_reassign_tasks(
            self,
            db: AsyncSession,
            task_ids: Sequence[UUID],
            new_assignee_id: str,
            reassigned_by: str,
            reason: Optional[str] = None
    ) -> BulkReassignmentResult:
        """Reassign each task on its own; failures are reported, not raised"""
        result = BulkReassignmentResult()
        for task_id in dict.fromkeys(task_ids):
            try:
                await self.reassign_task(db, task_id, new_assignee_id, reassigned_by, reason=reason)
                result.add(ReassignmentItem(task_id=task_id, success=True))
            except WorkflowError as e:
                result.add(ReassignmentItem(task_id=task_id, success=False, error=e.detail, error_type=e.error_type))

        logger.info("Bulk reassignment finished", succeeded=result.succeeded, failed=result.failed,
                    to_user=new_assignee_id)
        return result

    async def reassign_all_from_user(
            self,
            db: AsyncSession,
            from_user_id: str,
            to_user_id: str,
            reassigned_by: str,
            case_id: Optional[str] = None,
            reason: Optional[str] = None
    ) -> BulkReassignmentResult:
        """Hand every open task of one user to another, e.g. when someone leaves the matter"""
        if from_user_id == to_user_id:
            raise WorkflowValidationError("Source and target users are the same")
        tasks = await crud.task.list_open_tasks_for_assignee(db, from_user_id, case_id=case_id)
        task_ids = [task.uuid for task in tasks]
        return await self.bulk_reassign_tasks(db, task_ids, to_user_id, reassigned_by, reason=reason)

    async def get_task_history(self, db: AsyncSession, task_id: UUID) -> List[Reassignment]:
        task = await crud.task.get_task_by_uuid(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return await crud.reassignment.list_task_history(db, task)

    async def get_user_history(self, db: AsyncSession, user_id: str, limit: int = 100) -> List[Reassignment]:
        return await crud.reassignment.list_user_history(db, user_id, limit=limit)

    # Constraint rules

    async def create_rule(
            self,
            db: AsyncSession,
            name: str,
            case_id: Optional[str] = None,
            allowed_assignees: Optional[Sequence[str]] = None,
            blocked_assignees: Optional[Sequence[str]] = None,
            max_reassignments: Optional[int] = None,
            actor_id: Optional[str] = None
    ) -> ReassignmentRule:
        if not name or not name.strip():
            raise WorkflowValidationError("Reassignment rule needs a name")
        if allowed_assignees is None and not blocked_assignees and max_reassignments is None:
            raise WorkflowValidationError("Reassignment rule must have at least one constraint")
        if max_reassignments is not None and max_reassignments < 0:
            raise WorkflowValidationError("max_reassignments cannot be negative")
        allowed = list(dict.fromkeys(allowed_assignees)) if allowed_assignees is not None else None
        blocked = list(dict.fromkeys(blocked_assignees)) if blocked_assignees else None
        if allowed and blocked and set(allowed) & set(blocked):
            raise WorkflowValidationError(
                "Assignees cannot be both allowed and blocked",
                {"assignees": sorted(set(allowed) & set(blocked))},
            )

        async with transaction(db):
            rule = ReassignmentRule(
                name=name.strip(),
                case_id=case_id,
                allowed_assignees=allowed,
                blocked_assignees=blocked,
                max_reassignments=max_reassignments,
                created_by=actor_id,
            )
            db.add(rule)
            await db.flush()
            self.audit.record(
                db, AuditEntityType.REASSIGNMENT_RULE, rule.uuid, "created",
                actor_id=actor_id,
                case_id=case_id,
                after=snapshot(rule, RULE_FIELDS),
            )

        logger.info("Reassignment rule created", rule_id=str(rule.uuid), case_id=case_id)
        return rule

    async def list_rules(self, db: AsyncSession, case_id: Optional[str] = None) -> List[ReassignmentRule]:
        return await crud.reassignment.list_rules(db, case_id)

    async def delete_rule(self, db: AsyncSession, rule_id: UUID, actor_id: Optional[str] = None) -> None:
        async with transaction(db):
            rule = await crud.reassignment.get_rule_by_uuid(db, rule_id)
            if rule is None:
                raise NotFoundError("Reassignment rule", rule_id)
            before = snapshot(rule, RULE_FIELDS)
            await db.delete(rule)
            self.audit.record(
                db, AuditEntityType.REASSIGNMENT_RULE, rule_id, "deleted",
                actor_id=actor_id,
                case_id=before["case_id"],
                before=before,
            )

        logger.info("Reassignment rule deleted", rule_id=str(rule_id))
