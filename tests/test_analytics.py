# tests/test_analytics.py
import pytest
from datetime import timedelta

from matterflow.db.models import SLAScope, TaskPriority
from matterflow.engine import WorkflowEngine


@pytest.mark.asyncio
async def test_workflow_metrics(db_session, workflow_engine, clock, make_stage, make_task):
    stage = await make_stage(activate=True)
    lifecycle = workflow_engine.lifecycle
    first = await make_task(stage, "Conflict check", assignee_id="associate-1")
    second = await make_task(stage, "Engagement letter", priority=TaskPriority.HIGH, assignee_id="associate-1")
    dropped = await make_task(stage, "Retainer invoice")
    await make_task(stage, "Kickoff call", due_date=clock() + timedelta(hours=1))

    clock.advance(hours=3)
    await lifecycle.complete_task(db_session, first.uuid)
    await lifecycle.complete_task(db_session, second.uuid)
    await lifecycle.cancel_task(db_session, dropped.uuid)

    metrics = await workflow_engine.analytics.get_workflow_metrics(db_session, case_id="CASE-2026-001")

    assert metrics.total_tasks == 4
    assert metrics.completed_tasks == 2
    assert metrics.cancelled_tasks == 1
    assert metrics.open_tasks == 1
    assert metrics.overdue_tasks == 1
    assert metrics.completion_rate == 50.0
    assert metrics.average_cycle_hours == 3.0
    assert metrics.sla_compliance == 100.0
    assert metrics.tasks_by_status == {"completed": 2, "cancelled": 1, "pending": 1}
    assert metrics.tasks_by_assignee["unassigned"] == 2
    assert metrics.stage_progress[0].progress == pytest.approx(66.67)
    assert len(metrics.timeline) == 30
    assert metrics.timeline[-1].day == clock().date()
    assert metrics.timeline[-1].completed == 2
    assert metrics.timeline[-1].created == 4


@pytest.mark.asyncio
async def test_sla_compliance(db_session, workflow_engine, clock, make_stage, make_task):
    await workflow_engine.sla.set_sla_rule(db_session, SLAScope.DEFAULT, allowed_hours=4)
    stage = await make_stage(activate=True)
    on_time = await make_task(stage, "Answer complaint")
    await make_task(stage, "Serve answer")

    clock.advance(hours=3)
    await workflow_engine.lifecycle.complete_task(db_session, on_time.uuid)
    clock.advance(hours=3)

    metrics = await workflow_engine.analytics.get_workflow_metrics(db_session)
    assert metrics.sla_breaches == 1
    assert metrics.sla_compliance == 50.0


@pytest.mark.asyncio
async def test_empty_case_metrics(db_session, workflow_engine):
    metrics = await workflow_engine.analytics.get_workflow_metrics(db_session, case_id="CASE-EMPTY")

    assert metrics.total_tasks == 0
    assert metrics.completion_rate == 0.0
    assert metrics.sla_compliance == 100.0
    assert metrics.stage_progress == []


@pytest.mark.asyncio
async def test_task_velocity(db_session, workflow_engine, clock, make_stage, make_task):
    stage = await make_stage(activate=True)
    tasks = [await make_task(stage, f"Deposition {n}") for n in range(3)]

    await workflow_engine.lifecycle.complete_task(db_session, tasks[0].uuid)
    clock.advance(days=1)
    await workflow_engine.lifecycle.complete_task(db_session, tasks[1].uuid)
    await workflow_engine.lifecycle.complete_task(db_session, tasks[2].uuid)

    velocity = await workflow_engine.analytics.get_task_velocity(db_session, days=7)

    assert velocity.days == 7
    assert velocity.completed == 3
    assert velocity.per_day == 0.43
    assert [d.completed for d in velocity.daily[-2:]] == [1, 2]

    narrow = await workflow_engine.analytics.get_task_velocity(db_session, days=1)
    assert narrow.completed == 2
    assert narrow.per_day == 2.0


@pytest.mark.asyncio
async def test_bottlenecks(db_session, workflow_engine, clock, make_stage, make_task):
    analytics = WorkflowEngine(clock=clock, overload_threshold=2).analytics
    stage = await make_stage(activate=True)
    research = await make_task(stage, "Legal research", assignee_id="associate-1")
    brief = await make_task(stage, "Write brief", assignee_id="associate-1")
    clock.advance(hours=1)
    await make_task(stage, "Cite check", assignee_id="associate-1")
    await make_task(stage, "Table of authorities", assignee_id="paralegal-2")
    await workflow_engine.dependencies.set_task_dependencies(db_session, brief.uuid, [research.uuid])
    clock.advance(hours=5)

    bottlenecks = await analytics.get_bottlenecks(db_session, case_id="CASE-2026-001")

    assert [b.task_id for b in bottlenecks.blocked_tasks] == [brief.uuid]
    assert bottlenecks.blocked_tasks[0].blocked_by == [research.uuid]
    assert bottlenecks.blocked_tasks[0].unstartable is False

    assert [(a.assignee_id, a.open_tasks) for a in bottlenecks.overloaded_assignees] == [("associate-1", 3)]

    oldest = bottlenecks.slowest_open_tasks[0]
    assert oldest.task_id == research.uuid
    assert oldest.age_hours == 6.0
    assert bottlenecks.slowest_stages[0].open_tasks == 4
    assert bottlenecks.slowest_stages[0].average_dwell_hours == 5.5


@pytest.mark.asyncio
async def test_cancelled_blocker_marks_task_unstartable(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    research = await make_task(stage, "Legal research")
    brief = await make_task(stage, "Write brief")
    await workflow_engine.dependencies.set_task_dependencies(db_session, brief.uuid, [research.uuid])
    await workflow_engine.lifecycle.cancel_task(db_session, research.uuid)

    bottlenecks = await workflow_engine.analytics.get_bottlenecks(db_session)

    assert bottlenecks.blocked_tasks[0].unstartable is True


@pytest.mark.asyncio
async def test_stuck_stage_ranks_as_slowest(db_session, workflow_engine, clock, make_stage, make_task):
    intake = await make_stage("Intake", order_index=0, activate=True)
    filing = await make_stage("Filing", order_index=1)
    quick = await make_task(intake, "Conflict check")
    await make_task(filing, "File complaint")

    clock.advance(hours=2)
    await workflow_engine.lifecycle.complete_task(db_session, quick.uuid)
    clock.advance(hours=8)

    bottlenecks = await workflow_engine.analytics.get_bottlenecks(db_session)

    slowest = bottlenecks.slowest_stages[0]
    assert slowest.name == "Filing"
    assert slowest.completed_tasks == 0
    assert slowest.average_dwell_hours == 10.0
    assert bottlenecks.slowest_stages[1].average_dwell_hours == 2.0
