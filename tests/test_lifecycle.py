# tests/test_lifecycle.py
import pytest
from uuid import uuid4

from matterflow.db.models import CompletionRule, NotificationEvent, StageStatus, TaskStatus
from matterflow.exceptions import NotFoundError, WorkflowValidationError


@pytest.mark.asyncio
async def test_stage_runs_to_completion(db_session, workflow_engine, clock, make_stage, make_task):
    intake = await make_stage("Intake", order_index=0, activate=True)
    discovery = await make_stage("Discovery", order_index=1)
    lifecycle = workflow_engine.lifecycle

    letter = await make_task(intake, "Engagement letter", assignee_id="associate-1")
    conflicts = await make_task(intake, "Conflict check", assignee_id="associate-1")
    assert intake.progress == 0.0

    clock.advance(hours=1)
    started = await lifecycle.start_task(db_session, letter.uuid, actor_id="associate-1")
    assert started.status == TaskStatus.IN_PROGRESS
    assert started.started_at == clock()

    result = await lifecycle.complete_task(db_session, letter.uuid, actor_id="associate-1")
    assert result.stage_completed is False
    assert result.progress == 50.0
    assert discovery.status == StageStatus.PENDING

    clock.advance(hours=1)
    result = await lifecycle.complete_task(db_session, conflicts.uuid, actor_id="associate-1")
    assert result.stage_completed is True
    assert result.progress == 100.0
    assert result.next_stage_id == discovery.uuid
    assert intake.status == StageStatus.COMPLETED
    assert intake.completed_at == clock()
    assert discovery.status == StageStatus.ACTIVE
    assert discovery.started_at == clock()

    inbox = await workflow_engine.notifications.get_notifications(db_session, "associate-1")
    stage_events = [n for n in inbox if n.event_type == NotificationEvent.STAGE_COMPLETED]
    assert len(stage_events) == 1
    assert stage_events[0].payload["next_stage_name"] == "Discovery"


@pytest.mark.asyncio
async def test_progress_ignores_cancelled_tasks(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    tasks = [await make_task(stage, f"Task {n}") for n in range(4)]

    await workflow_engine.lifecycle.cancel_task(db_session, tasks[0].uuid, reason="Not needed")
    result = await workflow_engine.lifecycle.complete_task(db_session, tasks[1].uuid)

    assert result.progress == pytest.approx(33.33)
    assert stage.progress == pytest.approx(33.33)
    assert stage.status == StageStatus.ACTIVE


@pytest.mark.asyncio
async def test_cancelling_last_open_task_completes_stage(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    done = await make_task(stage, "Done")
    dropped = await make_task(stage, "Dropped")

    await workflow_engine.lifecycle.complete_task(db_session, done.uuid)
    result = await workflow_engine.lifecycle.cancel_task(db_session, dropped.uuid)

    assert result.stage_completed is True
    assert result.next_stage_id is None
    assert stage.progress == 100.0


@pytest.mark.asyncio
async def test_terminal_tasks_cannot_transition(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    done = await make_task(stage, "Done")
    open_task = await make_task(stage, "Still open")
    done_id, open_id = done.uuid, open_task.uuid
    lifecycle = workflow_engine.lifecycle
    await lifecycle.complete_task(db_session, done_id)

    with pytest.raises(WorkflowValidationError):
        await lifecycle.complete_task(db_session, done_id)
    with pytest.raises(WorkflowValidationError):
        await lifecycle.cancel_task(db_session, done_id)
    with pytest.raises(WorkflowValidationError):
        await lifecycle.start_task(db_session, done_id)

    await lifecycle.start_task(db_session, open_id)
    with pytest.raises(WorkflowValidationError):
        await lifecycle.start_task(db_session, open_id)


@pytest.mark.asyncio
async def test_stage_rules(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage)
    stage_id = stage.uuid
    lifecycle = workflow_engine.lifecycle

    with pytest.raises(WorkflowValidationError):
        await lifecycle.activate_stage(db_session, stage_id)

    await lifecycle.complete_task(db_session, task.uuid)
    with pytest.raises(WorkflowValidationError):
        await lifecycle.create_task(db_session, stage_id, "Late addition")

    with pytest.raises(WorkflowValidationError):
        await lifecycle.create_stage(db_session, "CASE-2026-001", "   ")
    with pytest.raises(WorkflowValidationError):
        await lifecycle.create_task(db_session, stage_id, "")


@pytest.mark.asyncio
async def test_tasks_can_be_added_to_pending_stage(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    task = await make_task(stage, "Prepare")

    tasks = await workflow_engine.lifecycle.list_stage_tasks(db_session, stage.uuid)
    assert [t.uuid for t in tasks] == [task.uuid]
    assert stage.status == StageStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_ids(db_session, workflow_engine):
    with pytest.raises(NotFoundError) as exc_info:
        await workflow_engine.lifecycle.get_task(db_session, uuid4())
    assert exc_info.value.context["entity"] == "Task"

    with pytest.raises(NotFoundError):
        await workflow_engine.lifecycle.activate_stage(db_session, uuid4())


@pytest.mark.asyncio
async def test_case_stages_in_order(db_session, workflow_engine, make_stage):
    await make_stage("Trial", order_index=2)
    await make_stage("Intake", order_index=0)
    await make_stage("Discovery", order_index=1)

    stages = await workflow_engine.lifecycle.list_case_stages(db_session, "CASE-2026-001")

    assert [s.name for s in stages] == ["Intake", "Discovery", "Trial"]


@pytest.mark.asyncio
async def test_blocking_dependency_and_parallel_group(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage("Pleadings", activate=True)
    draft = await make_task(stage, "Draft complaint")
    review = await make_task(stage, "Partner review")
    filing_fee = await make_task(stage, "Pay filing fee")
    graph = workflow_engine.dependencies

    await graph.set_task_dependencies(db_session, review.uuid, [draft.uuid])
    group = await workflow_engine.parallel.create_parallel_group(
        db_session, stage.uuid, [review.uuid, filing_fee.uuid], CompletionRule.ALL
    )
    assert (await graph.can_start_task(db_session, review.uuid)).can_start is False

    await workflow_engine.lifecycle.complete_task(db_session, draft.uuid)
    assert (await graph.can_start_task(db_session, review.uuid)).can_start is True

    await workflow_engine.lifecycle.complete_task(db_session, review.uuid)
    result = await workflow_engine.lifecycle.complete_task(db_session, filing_fee.uuid)

    completion = await workflow_engine.parallel.check_parallel_group_completion(db_session, group.uuid)
    assert completion.completed is True
    assert completion.percent == 100.0
    assert result.stage_completed is True
