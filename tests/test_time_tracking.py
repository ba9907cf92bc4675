# tests/test_time_tracking.py
import pytest
from uuid import uuid4

from matterflow.exceptions import NotFoundError, WorkflowValidationError


@pytest.mark.asyncio
async def test_start_and_stop_records_duration(db_session, workflow_engine, clock, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage, "Review discovery production")
    timers = workflow_engine.time_tracking

    entry = await timers.start_time_tracking(db_session, task.uuid, "associate-1", description="First pass")
    assert entry.is_open

    clock.advance(minutes=95)
    stopped = await timers.stop_time_tracking(db_session, task.uuid, "associate-1")

    assert stopped.uuid == entry.uuid
    assert stopped.duration_minutes == 95
    assert stopped.description == "First pass"


@pytest.mark.asyncio
async def test_one_running_timer_per_user(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage)
    task_id = task.uuid
    timers = workflow_engine.time_tracking

    await timers.start_time_tracking(db_session, task_id, "associate-1")
    with pytest.raises(WorkflowValidationError):
        await timers.start_time_tracking(db_session, task_id, "associate-1")

    # a second user may track the same task
    await timers.start_time_tracking(db_session, task_id, "paralegal-2")
    summary = await timers.get_task_time_summary(db_session, task_id)
    assert summary.open_entries == 2


@pytest.mark.asyncio
async def test_stop_without_running_timer(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    task = await make_task(stage)

    with pytest.raises(WorkflowValidationError):
        await workflow_engine.time_tracking.stop_time_tracking(db_session, task.uuid, "associate-1")


@pytest.mark.asyncio
async def test_terminal_task_cannot_be_tracked(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage)
    task_id = task.uuid
    await workflow_engine.lifecycle.cancel_task(db_session, task_id, actor_id="partner-1")

    with pytest.raises(WorkflowValidationError):
        await workflow_engine.time_tracking.start_time_tracking(db_session, task_id, "associate-1")


@pytest.mark.asyncio
async def test_unknown_task(db_session, workflow_engine):
    with pytest.raises(NotFoundError):
        await workflow_engine.time_tracking.start_time_tracking(db_session, uuid4(), "associate-1")


@pytest.mark.asyncio
async def test_completing_task_closes_timers(db_session, workflow_engine, clock, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage)
    timers = workflow_engine.time_tracking

    await timers.start_time_tracking(db_session, task.uuid, "associate-1")
    await timers.start_time_tracking(db_session, task.uuid, "paralegal-2", billable=False)
    clock.advance(minutes=30)

    result = await workflow_engine.lifecycle.complete_task(db_session, task.uuid, actor_id="associate-1")

    assert result.closed_time_entries == 2
    summary = await timers.get_task_time_summary(db_session, task.uuid)
    assert summary.open_entries == 0
    assert summary.total_minutes == 60
    assert summary.billable_minutes == 30


@pytest.mark.asyncio
async def test_summary_counts_only_closed_entries(db_session, workflow_engine, clock, make_stage, make_task):
    stage = await make_stage(activate=True)
    task = await make_task(stage)
    timers = workflow_engine.time_tracking

    await timers.start_time_tracking(db_session, task.uuid, "associate-1")
    clock.advance(hours=2)
    await timers.stop_time_tracking(db_session, task.uuid, "associate-1")
    await timers.start_time_tracking(db_session, task.uuid, "associate-1")
    clock.advance(minutes=10)

    summary = await timers.get_task_time_summary(db_session, task.uuid)
    assert summary.entry_count == 2
    assert summary.open_entries == 1
    assert summary.total_minutes == 120
    assert summary.billable_minutes == 120
