# tests/test_approvals.py
from uuid import uuid4

import pytest

from matterflow.db.models import (
    ApprovalAction, ApprovalDecision, ApprovalOutcome, AuditEntityType, NotificationEvent, TaskStatus
)
from matterflow.exceptions import NotFoundError, WorkflowValidationError

APPROVERS = ["senior-associate", "partner-1", "general-counsel"]


async def inbox_events(workflow_engine, db_session, user_id):
    return [n.event_type for n in await workflow_engine.notifications.get_notifications(db_session, user_id)]


@pytest.mark.asyncio
async def test_chain_approves_in_order(db_session, workflow_engine, make_stage, make_task):
    approvals = workflow_engine.approvals
    task = await make_task(await make_stage(), assignee_id="associate-1")

    chain = await approvals.create_approval_chain(db_session, task.uuid, APPROVERS, actor_id="associate-1")
    assert chain.outcome == ApprovalOutcome.PENDING
    assert [s.approver_id for s in chain.steps] == APPROVERS
    assert await inbox_events(workflow_engine, db_session, "senior-associate") == [NotificationEvent.APPROVAL_REQUIRED]
    assert await inbox_events(workflow_engine, db_session, "partner-1") == []

    chain = await approvals.process_approval(db_session, task.uuid, "senior-associate", ApprovalAction.APPROVE)
    assert chain.current_index == 1
    assert await inbox_events(workflow_engine, db_session, "partner-1") == [NotificationEvent.APPROVAL_REQUIRED]

    await approvals.process_approval(db_session, task.uuid, "partner-1", ApprovalAction.APPROVE)
    chain = await approvals.process_approval(
        db_session, task.uuid, "general-counsel", ApprovalAction.APPROVE, comments="Cleared"
    )

    assert chain.outcome == ApprovalOutcome.APPROVED
    assert chain.completed_at is not None
    assert [s.decision for s in chain.steps] == [ApprovalDecision.APPROVED] * 3
    assert chain.steps[2].comments == "Cleared"
    assert NotificationEvent.APPROVAL_COMPLETED in await inbox_events(workflow_engine, db_session, "associate-1")

    task = await workflow_engine.lifecycle.get_task(db_session, task.uuid)
    assert task.status == TaskStatus.PENDING


@pytest.mark.asyncio
async def test_out_of_turn_approver_rejected(db_session, workflow_engine, make_stage, make_task):
    approvals = workflow_engine.approvals
    task = await make_task(await make_stage())
    task_id = task.uuid
    await approvals.create_approval_chain(db_session, task_id, APPROVERS)

    with pytest.raises(WorkflowValidationError) as exc_info:
        await approvals.process_approval(db_session, task_id, "partner-1", ApprovalAction.APPROVE)
    assert exc_info.value.context["expected_approver"] == "senior-associate"

    chain = await approvals.get_approval_chain(db_session, task_id)
    assert chain.current_index == 0
    assert chain.steps[1].decision == ApprovalDecision.PENDING


@pytest.mark.asyncio
async def test_rejection_freezes_chain(db_session, workflow_engine, make_stage, make_task):
    approvals = workflow_engine.approvals
    task = await make_task(await make_stage(), assignee_id="associate-1")
    task_id = task.uuid
    await approvals.create_approval_chain(db_session, task_id, APPROVERS)

    chain = await approvals.process_approval(
        db_session, task_id, "senior-associate", ApprovalAction.REJECT, comments="Missing exhibits"
    )
    assert chain.outcome == ApprovalOutcome.REJECTED
    assert chain.steps[0].decision == ApprovalDecision.REJECTED
    assert chain.steps[1].decision == ApprovalDecision.PENDING
    assert NotificationEvent.APPROVAL_REJECTED in await inbox_events(workflow_engine, db_session, "associate-1")
    assert await inbox_events(workflow_engine, db_session, "partner-1") == []

    with pytest.raises(WorkflowValidationError):
        await approvals.process_approval(db_session, task_id, "partner-1", ApprovalAction.APPROVE)


@pytest.mark.asyncio
async def test_new_chain_allowed_after_rejection_only(db_session, workflow_engine, make_stage, make_task):
    approvals = workflow_engine.approvals
    task = await make_task(await make_stage())
    task_id = task.uuid
    first = await approvals.create_approval_chain(db_session, task_id, ["partner-1"])
    first_id = first.uuid

    with pytest.raises(WorkflowValidationError):
        await approvals.create_approval_chain(db_session, task_id, ["partner-2"])

    await approvals.process_approval(db_session, task_id, "partner-1", ApprovalAction.REJECT)
    second = await approvals.create_approval_chain(db_session, task_id, ["partner-2"])

    latest = await approvals.get_approval_chain(db_session, task_id)
    assert latest.uuid == second.uuid != first_id


@pytest.mark.asyncio
async def test_invalid_chains_rejected(db_session, workflow_engine, make_stage, make_task):
    approvals = workflow_engine.approvals
    task = await make_task(await make_stage())
    task_id = task.uuid

    with pytest.raises(WorkflowValidationError):
        await approvals.create_approval_chain(db_session, task_id, [])
    with pytest.raises(WorkflowValidationError):
        await approvals.create_approval_chain(db_session, task_id, ["partner-1", "partner-1"])
    with pytest.raises(NotFoundError):
        await approvals.create_approval_chain(db_session, uuid4(), ["partner-1"])
    with pytest.raises(NotFoundError):
        await approvals.get_approval_chain(db_session, task_id)

    await workflow_engine.lifecycle.complete_task(db_session, task_id)
    with pytest.raises(WorkflowValidationError):
        await approvals.create_approval_chain(db_session, task_id, ["partner-1"])


@pytest.mark.asyncio
async def test_decisions_are_audited(db_session, workflow_engine, make_stage, make_task):
    approvals = workflow_engine.approvals
    task = await make_task(await make_stage())
    chain = await approvals.create_approval_chain(db_session, task.uuid, ["partner-1", "partner-2"])
    await approvals.process_approval(db_session, task.uuid, "partner-1", ApprovalAction.APPROVE)

    entries = await workflow_engine.audit.get_audit_log(
        db_session, entity_type=AuditEntityType.APPROVAL_CHAIN, entity_id=str(chain.uuid)
    )
    assert [e.action for e in entries] == ["approve", "created"]
    assert entries[0].actor_id == "partner-1"
    assert entries[0].before["current_index"] == 0
    assert entries[0].after["current_index"] == 1
