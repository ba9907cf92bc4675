# tests/test_reassignment.py
import pytest
from uuid import uuid4

from matterflow.db.models import AuditEntityType, NotificationEvent
from matterflow.exceptions import ConflictError, NotFoundError, WorkflowValidationError


@pytest.mark.asyncio
async def test_reassign_notifies_both_users(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage, "Prepare witness list", assignee_id="associate-1")

    await workflow_engine.reassignment.reassign_task(
        db_session, task.uuid, "associate-2", "partner-1", reason="Workload"
    )

    assert task.assignee_id == "associate-2"
    assert task.version == 2

    inbox = await workflow_engine.notifications.get_notifications(db_session, "associate-2")
    assert [n.event_type for n in inbox] == [NotificationEvent.TASK_ASSIGNED]
    assert inbox[0].payload["reason"] == "Workload"

    previous = await workflow_engine.notifications.get_notifications(db_session, "associate-1")
    assert previous[0].event_type == NotificationEvent.TASK_UNASSIGNED
    assert previous[0].payload["new_assignee_id"] == "associate-2"

    entries = await workflow_engine.audit.get_audit_log(
        db_session, entity_type=AuditEntityType.TASK, entity_id=str(task.uuid)
    )
    reassigned = entries[0]
    assert reassigned.action == "reassigned"
    assert reassigned.actor_id == "partner-1"
    assert reassigned.before == {"assignee_id": "associate-1"}


@pytest.mark.asyncio
async def test_stale_version_conflicts(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage, assignee_id="associate-1")
    task_id = task.uuid

    with pytest.raises(ConflictError) as exc_info:
        await workflow_engine.reassignment.reassign_task(
            db_session, task_id, "associate-2", "partner-1", expected_version=7
        )
    assert exc_info.value.context["current_version"] == 1

    task = await workflow_engine.reassignment.reassign_task(
        db_session, task_id, "associate-2", "partner-1", expected_version=1
    )
    assert task.assignee_id == "associate-2"


@pytest.mark.asyncio
async def test_invalid_reassignments(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage, assignee_id="associate-1")
    done = await make_task(stage, "Filed")
    task_id, done_id = task.uuid, done.uuid
    await workflow_engine.lifecycle.complete_task(db_session, done_id)
    reassignment = workflow_engine.reassignment

    with pytest.raises(WorkflowValidationError):
        await reassignment.reassign_task(db_session, task_id, "associate-1", "partner-1")
    with pytest.raises(WorkflowValidationError):
        await reassignment.reassign_task(db_session, task_id, "", "partner-1")
    with pytest.raises(WorkflowValidationError):
        await reassignment.reassign_task(db_session, done_id, "associate-2", "partner-1")


@pytest.mark.asyncio
async def test_bulk_reports_each_task(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    first = await make_task(stage, "Index exhibits", assignee_id="associate-1")
    second = await make_task(stage, "Serve subpoena", assignee_id="associate-2")
    first_id, second_id, missing_id = first.uuid, second.uuid, uuid4()

    result = await workflow_engine.reassignment.bulk_reassign_tasks(
        db_session, [first_id, second_id, missing_id, first_id], "associate-2", "partner-1"
    )

    assert result.succeeded == 1
    assert result.failed == 2
    by_task = {item.task_id: item for item in result.results}
    assert len(by_task) == 3
    assert by_task[first_id].success is True
    assert by_task[second_id].error_type == "validation_error"
    assert by_task[missing_id].error_type == "not_found"


@pytest.mark.asyncio
async def test_reassign_all_from_user(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    await make_task(stage, "Draft motion", assignee_id="associate-1")
    await make_task(stage, "Research precedent", assignee_id="associate-1")
    closed = await make_task(stage, "Closed item", assignee_id="associate-1")
    other = await make_task(stage, "Someone else", assignee_id="paralegal-2")
    await workflow_engine.lifecycle.cancel_task(db_session, closed.uuid)

    result = await workflow_engine.reassignment.reassign_all_from_user(
        db_session, "associate-1", "associate-3", "partner-1"
    )

    assert result.succeeded == 2
    assert result.failed == 0
    tasks = await workflow_engine.lifecycle.list_stage_tasks(db_session, stage.uuid)
    assignees = {t.title: t.assignee_id for t in tasks}
    assert assignees["Draft motion"] == "associate-3"
    assert assignees["Research precedent"] == "associate-3"
    assert assignees["Closed item"] == "associate-1"
    assert other.assignee_id == "paralegal-2"

    with pytest.raises(WorkflowValidationError):
        await workflow_engine.reassignment.reassign_all_from_user(
            db_session, "associate-3", "associate-3", "partner-1"
        )


@pytest.mark.asyncio
async def test_unknown_task_leaves_no_audit_entry(db_session, workflow_engine):
    missing = uuid4()

    with pytest.raises(NotFoundError):
        await workflow_engine.reassignment.reassign_task(db_session, missing, "associate-2", "partner-1")

    assert await workflow_engine.audit.get_audit_log(db_session, entity_id=str(missing)) == []


@pytest.mark.asyncio
async def test_history_per_task_and_user(db_session, workflow_engine, make_stage, make_task, clock):
    stage = await make_stage(activate=True)
    task = await make_task(stage, "Draft complaint", assignee_id="associate-1")
    other = await make_task(stage, "Client intake call", assignee_id="associate-2")
    reassignment = workflow_engine.reassignment

    await reassignment.reassign_task(db_session, task.uuid, "associate-2", "partner-1", reason="Vacation")
    clock.advance(hours=1)
    await reassignment.reassign_task(db_session, task.uuid, "associate-3", "partner-1")
    await reassignment.reassign_task(db_session, other.uuid, "paralegal-1", "partner-1")

    history = await reassignment.get_task_history(db_session, task.uuid)
    assert [(h.from_user_id, h.to_user_id) for h in history] == [
        ("associate-1", "associate-2"), ("associate-2", "associate-3")
    ]
    assert history[0].reason == "Vacation"
    assert history[1].created_at == clock()

    moves = await reassignment.get_user_history(db_session, "associate-2")
    assert [(m.task.uuid, m.to_user_id) for m in moves] == [
        (other.uuid, "paralegal-1"), (task.uuid, "associate-3"), (task.uuid, "associate-2")
    ]

    with pytest.raises(NotFoundError):
        await reassignment.get_task_history(db_session, uuid4())


@pytest.mark.asyncio
async def test_rules_constrain_assignees(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage, "Privilege log", assignee_id="associate-1")
    task_id = task.uuid
    reassignment = workflow_engine.reassignment

    await reassignment.create_rule(db_session, "No contractors", blocked_assignees=["contractor-1"],
                                   actor_id="partner-1")
    await reassignment.create_rule(db_session, "Litigation team", case_id="CASE-2026-001",
                                   allowed_assignees=["associate-1", "associate-2", "contractor-1"])
    await reassignment.create_rule(db_session, "Other matter", case_id="CASE-OTHER",
                                   allowed_assignees=["nobody"])

    with pytest.raises(WorkflowValidationError) as exc_info:
        await reassignment.reassign_task(db_session, task_id, "contractor-1", "partner-1")
    assert exc_info.value.context["rule_name"] == "No contractors"

    with pytest.raises(WorkflowValidationError) as exc_info:
        await reassignment.reassign_task(db_session, task_id, "associate-9", "partner-1")
    assert exc_info.value.context["rule_name"] == "Litigation team"

    task = await reassignment.reassign_task(db_session, task_id, "associate-2", "partner-1")
    assert task.assignee_id == "associate-2"
    assert len(await reassignment.list_rules(db_session, case_id="CASE-2026-001")) == 2


@pytest.mark.asyncio
async def test_rule_limits_reassignments(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage, "Expert report", assignee_id="associate-1")
    task_id = task.uuid
    reassignment = workflow_engine.reassignment
    rule = await reassignment.create_rule(db_session, "Two moves", max_reassignments=2)
    rule_id = rule.uuid

    await reassignment.reassign_task(db_session, task_id, "associate-2", "partner-1")
    await reassignment.reassign_task(db_session, task_id, "associate-3", "partner-1")
    with pytest.raises(WorkflowValidationError) as exc_info:
        await reassignment.reassign_task(db_session, task_id, "associate-4", "partner-1")
    assert exc_info.value.context["reassignments"] == 2

    await reassignment.delete_rule(db_session, rule_id, actor_id="partner-1")
    task = await reassignment.reassign_task(db_session, task_id, "associate-4", "partner-1")
    assert task.assignee_id == "associate-4"

    entries = await workflow_engine.audit.get_audit_log(
        db_session, entity_type=AuditEntityType.REASSIGNMENT_RULE, entity_id=str(rule_id)
    )
    assert [e.action for e in entries] == ["deleted", "created"]


@pytest.mark.asyncio
async def test_invalid_rules_rejected(db_session, workflow_engine):
    reassignment = workflow_engine.reassignment

    with pytest.raises(WorkflowValidationError):
        await reassignment.create_rule(db_session, "Empty")
    with pytest.raises(WorkflowValidationError):
        await reassignment.create_rule(db_session, "Contradiction", allowed_assignees=["a", "b"],
                                       blocked_assignees=["b"])
    with pytest.raises(NotFoundError):
        await reassignment.delete_rule(db_session, uuid4())

    assert await reassignment.list_rules(db_session) == []
