# matterflow/engine/approvals.py
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.timeutils import Clock, utc_now
from matterflow.db import crud
from matterflow.db.models import (
    ApprovalAction, ApprovalChain, ApprovalDecision, ApprovalOutcome, ApprovalStep,
    AuditEntityType, NotificationEvent, Task
)
from matterflow.engine.base import EngineComponent, transaction
from matterflow.exceptions import NotFoundError, WorkflowValidationError


def chain_state(chain: ApprovalChain) -> dict:
    return {
        "outcome": chain.outcome.value,
        "current_index": chain.current_index,
        "steps": [{"approver_id": s.approver_id, "decision": s.decision.value} for s in chain.steps],
    }


class ApprovalChainEngine(EngineComponent):
    """Sequential approver chains.

    Decisions are accepted only from the approver at the pointer. A reject
    freezes the chain; later approvers are never asked. Approval does not
    change the task's status.
    """

    def __init__(self, audit, notifier, clock: Clock = utc_now):
        super().__init__(audit, clock)
        self.notifier = notifier

    async def _get_task(self, db: AsyncSession, task_id: UUID) -> Task:
        task = await crud.task.get_task_by_uuid(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def create_approval_chain(
            self,
            db: AsyncSession,
            task_id: UUID,
            approver_ids: Sequence[str],
            actor_id: Optional[str] = None
    ) -> ApprovalChain:
        approvers = [a.strip() for a in approver_ids if a and a.strip()]
        if not approvers:
            raise WorkflowValidationError("An approval chain needs at least one approver")
        if len(set(approvers)) != len(approvers):
            raise WorkflowValidationError("Approvers must be distinct")

        async with transaction(db, integrity_message="Task already has an active approval chain"):
            task = await self._get_task(db, task_id)
            if task.status.is_terminal:
                raise WorkflowValidationError(f"Cannot request approval on a {task.status.value} task")
            if await crud.approval.get_pending_chain(db, task) is not None:
                raise WorkflowValidationError("Task already has an active approval chain")

            chain = ApprovalChain(
                task=task,
                case_id=task.case_id,
                current_index=0,
                outcome=ApprovalOutcome.PENDING,
                created_by=actor_id,
                steps=[
                    ApprovalStep(position=i, approver_id=approver, decision=ApprovalDecision.PENDING)
                    for i, approver in enumerate(approvers)
                ],
            )
            db.add(chain)
            await db.flush()

            self.notifier.notify(
                db, approvers[0], NotificationEvent.APPROVAL_REQUIRED,
                {"task_id": task.uuid, "task_title": task.title, "chain_id": chain.uuid, "position": 0},
                case_id=task.case_id, entity_id=chain.uuid,
            )
            self.audit.record(
                db, AuditEntityType.APPROVAL_CHAIN, chain.uuid, "created",
                actor_id=actor_id,
                case_id=task.case_id,
                after={"task_id": task.uuid, **chain_state(chain)},
            )

        logger.info("Approval chain created", task_id=str(task.uuid), approvers=len(approvers))
        return chain

    async def process_approval(
            self,
            db: AsyncSession,
            task_id: UUID,
            approver_id: str,
            action: ApprovalAction,
            comments: Optional[str] = None
    ) -> ApprovalChain:
        """Record the current approver's decision and advance or freeze the chain"""
        async with transaction(db):
            task = await self._get_task(db, task_id)
            chain = await crud.approval.get_latest_chain(db, task)
            if chain is None:
                raise NotFoundError("Approval chain for task", task_id)
            if chain.outcome != ApprovalOutcome.PENDING:
                raise WorkflowValidationError(
                    f"Approval chain is already {chain.outcome.value}",
                    {"outcome": chain.outcome.value},
                )

            step = chain.current_step
            if step is None or step.approver_id != approver_id:
                raise WorkflowValidationError(
                    "Approver is not next in the chain",
                    {"expected_approver": step.approver_id if step else None, "position": chain.current_index},
                )

            before = chain_state(chain)
            now = self.clock()
            step.decided_at = now
            step.comments = comments

            if action == ApprovalAction.REJECT:
                step.decision = ApprovalDecision.REJECTED
                chain.outcome = ApprovalOutcome.REJECTED
                chain.completed_at = now
                self.notifier.notify(
                    db, task.owner_id, NotificationEvent.APPROVAL_REJECTED,
                    {"task_id": task.uuid, "task_title": task.title, "rejected_by": approver_id, "comments": comments},
                    case_id=task.case_id, entity_id=chain.uuid,
                )
            else:
                step.decision = ApprovalDecision.APPROVED
                chain.current_index += 1
                if chain.current_index >= len(chain.steps):
                    chain.outcome = ApprovalOutcome.APPROVED
                    chain.completed_at = now
                    self.notifier.notify(
                        db, task.owner_id, NotificationEvent.APPROVAL_COMPLETED,
                        {"task_id": task.uuid, "task_title": task.title},
                        case_id=task.case_id, entity_id=chain.uuid,
                    )
                else:
                    following = chain.steps[chain.current_index]
                    self.notifier.notify(
                        db, following.approver_id, NotificationEvent.APPROVAL_REQUIRED,
                        {"task_id": task.uuid, "task_title": task.title, "chain_id": chain.uuid,
                         "position": chain.current_index},
                        case_id=task.case_id, entity_id=chain.uuid,
                    )

            self.audit.record(
                db, AuditEntityType.APPROVAL_CHAIN, chain.uuid, action.value,
                actor_id=approver_id,
                case_id=task.case_id,
                before=before,
                after={**chain_state(chain), "comments": comments},
            )

        logger.info("Approval processed", task_id=str(task_id), approver=approver_id,
                    action=action.value, outcome=chain.outcome.value)
        return chain

    async def get_approval_chain(self, db: AsyncSession, task_id: UUID) -> ApprovalChain:
        task = await self._get_task(db, task_id)
        chain = await crud.approval.get_latest_chain(db, task)
        if chain is None:
            raise NotFoundError("Approval chain for task", task_id)
        return chain
