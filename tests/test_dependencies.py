# tests/test_dependencies.py
from uuid import uuid4

import pytest

from matterflow.db.models import AuditEntityType, DependencyType, TaskStatus
from matterflow.engine.dependencies import find_cycle
from matterflow.exceptions import NotFoundError, WorkflowValidationError

CASE_ID = "CASE-2026-001"


def test_find_cycle():
    graph = {1: {2}, 2: {3}, 3: set()}
    assert find_cycle(graph, 1) is None

    graph[3] = {1}
    assert find_cycle(graph, 1) == [1, 2, 3, 1]


@pytest.mark.asyncio
async def test_blocking_dependency_gates_start(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage(activate=True)
    research = await make_task(stage, "Legal research")
    memo = await make_task(stage, "Draft memo")
    research_id, memo_id = research.uuid, memo.uuid

    await workflow_engine.dependencies.set_task_dependencies(db_session, memo_id, [research_id])

    readiness = await workflow_engine.dependencies.can_start_task(db_session, memo_id)
    assert readiness.can_start is False
    assert readiness.waiting_on == [research_id]

    with pytest.raises(WorkflowValidationError) as exc_info:
        await workflow_engine.lifecycle.start_task(db_session, memo_id)
    assert exc_info.value.context["waiting_on"] == [str(research_id)]

    await workflow_engine.lifecycle.complete_task(db_session, research_id)

    readiness = await workflow_engine.dependencies.can_start_task(db_session, memo_id)
    assert readiness.can_start is True
    started = await workflow_engine.lifecycle.start_task(db_session, memo_id)
    assert started.status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_informational_dependency_never_blocks(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    background = await make_task(stage, "Background reading")
    filing = await make_task(stage, "File complaint")

    await workflow_engine.dependencies.set_task_dependencies(
        db_session, filing.uuid, [background.uuid], dependency_type=DependencyType.INFORMATIONAL
    )

    readiness = await workflow_engine.dependencies.can_start_task(db_session, filing.uuid)
    assert readiness.can_start is True


@pytest.mark.asyncio
async def test_cycle_is_rejected_and_state_unchanged(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    a = await make_task(stage, "A")
    b = await make_task(stage, "B")
    c = await make_task(stage, "C")
    a_id, b_id, c_id = a.uuid, b.uuid, c.uuid

    await workflow_engine.dependencies.set_task_dependencies(db_session, b_id, [a_id])
    await workflow_engine.dependencies.set_task_dependencies(db_session, c_id, [b_id])

    with pytest.raises(WorkflowValidationError) as exc_info:
        await workflow_engine.dependencies.set_task_dependencies(db_session, a_id, [c_id])
    assert "cycle" in exc_info.value.context
    assert str(a_id) in exc_info.value.context["cycle"]

    edges = await workflow_engine.dependencies.get_task_dependencies(db_session, a_id)
    assert edges == []


@pytest.mark.asyncio
async def test_self_and_unknown_dependencies_rejected(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    task = await make_task(stage)
    task_id = task.uuid

    with pytest.raises(WorkflowValidationError):
        await workflow_engine.dependencies.set_task_dependencies(db_session, task_id, [task_id])

    with pytest.raises(NotFoundError):
        await workflow_engine.dependencies.set_task_dependencies(db_session, task_id, [uuid4()])


@pytest.mark.asyncio
async def test_cross_case_dependency_rejected(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    other_stage = await make_stage(case_id="CASE-OTHER")
    task = await make_task(stage)
    foreign = await make_task(other_stage)
    task_id, foreign_id = task.uuid, foreign.uuid

    with pytest.raises(WorkflowValidationError) as exc_info:
        await workflow_engine.dependencies.set_task_dependencies(db_session, task_id, [foreign_id])
    assert exc_info.value.context["case_id"] == "CASE-OTHER"


@pytest.mark.asyncio
async def test_replacing_dependencies_is_audited(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    a = await make_task(stage, "A")
    b = await make_task(stage, "B")
    c = await make_task(stage, "C")

    await workflow_engine.dependencies.set_task_dependencies(db_session, c.uuid, [a.uuid], actor_id="associate-1")
    await workflow_engine.dependencies.set_task_dependencies(db_session, c.uuid, [b.uuid], actor_id="associate-1")

    edges = await workflow_engine.dependencies.get_task_dependencies(db_session, c.uuid)
    assert [edge.depends_on.uuid for edge in edges] == [b.uuid]

    entries = await workflow_engine.audit.get_audit_log(
        db_session, entity_type=AuditEntityType.TASK, entity_id=str(c.uuid)
    )
    changes = [e for e in entries if e.action == "dependencies_set"]
    assert len(changes) == 2
    latest = changes[0]
    assert latest.before == {"dependencies": [{"task_id": str(a.uuid), "type": "blocking"}]}
    assert latest.after == {"dependencies": [{"task_id": str(b.uuid), "type": "blocking"}]}
    assert latest.case_id == CASE_ID


@pytest.mark.asyncio
async def test_cancelled_upstream_makes_task_unstartable(db_session, workflow_engine, make_stage, make_task):
    stage = await make_stage()
    upstream = await make_task(stage, "Obtain consent")
    downstream = await make_task(stage, "Disclose documents")

    await workflow_engine.dependencies.set_task_dependencies(db_session, downstream.uuid, [upstream.uuid])
    await workflow_engine.lifecycle.cancel_task(db_session, upstream.uuid, reason="Client withdrew")

    readiness = await workflow_engine.dependencies.can_start_task(db_session, downstream.uuid)
    assert readiness.can_start is False
    assert readiness.unstartable is True
    assert readiness.cancelled_upstream == [upstream.uuid]

    refreshed = await workflow_engine.lifecycle.get_task(db_session, downstream.uuid)
    assert refreshed.status == TaskStatus.PENDING
