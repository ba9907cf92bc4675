# tests/test_concurrency.py
"""Interleaved writers on one database, each with its own session"""
import asyncio

import pytest

from matterflow.core.locks import advisory_xact_lock
from matterflow.db.models import ApprovalAction, StageStatus
from matterflow.engine.base import transaction
from matterflow.exceptions import ConflictError, WorkflowValidationError

CASE_ID = "CASE-2026-001"


async def actions_for(session_factory, workflow_engine, entity_id):
    async with session_factory() as db:
        entries = await workflow_engine.audit.get_audit_log(db, entity_id=str(entity_id))
        return [e.action for e in entries]


@pytest.mark.asyncio
async def test_second_approval_from_stale_read_conflicts(session_factory, workflow_engine):
    approvals = workflow_engine.approvals
    async with session_factory() as db:
        stage = await workflow_engine.lifecycle.create_stage(db, CASE_ID, "Review", actor_id="partner-1")
        task = await workflow_engine.lifecycle.create_task(db, stage.uuid, "Settlement memo", actor_id="partner-1")
        chain = await approvals.create_approval_chain(db, task.uuid, ["assoc", "partner-1"], actor_id="assoc")
        task_id, chain_id = task.uuid, chain.uuid

    async with session_factory() as db_a, session_factory() as db_b:
        await approvals.get_approval_chain(db_b, task_id)

        await approvals.process_approval(db_a, task_id, "assoc", ApprovalAction.APPROVE)
        with pytest.raises(ConflictError):
            await approvals.process_approval(db_b, task_id, "assoc", ApprovalAction.APPROVE)

    actions = await actions_for(session_factory, workflow_engine, chain_id)
    assert actions.count("approve") == 1

    async with session_factory() as db:
        notices = await workflow_engine.notifications.get_notifications(db, "partner-1")
        assert len(notices) == 1


@pytest.mark.asyncio
async def test_stale_time_entry_write_conflicts(session_factory, workflow_engine, clock):
    timers = workflow_engine.time_tracking
    async with session_factory() as db:
        stage = await workflow_engine.lifecycle.create_stage(db, CASE_ID, "Discovery", actor_id="partner-1")
        task = await workflow_engine.lifecycle.create_task(db, stage.uuid, "Document review", actor_id="partner-1")
        entry = await timers.start_time_tracking(db, task.uuid, "associate-1")
        task_id, entry_id = task.uuid, entry.uuid

    clock.advance(minutes=30)
    async with session_factory() as db_a, session_factory() as db_b:
        stale = (await timers.get_time_entries(db_b, task_id))[0]

        stopped = await timers.stop_time_tracking(db_a, task_id, "associate-1")
        assert stopped.duration_minutes == 30

        clock.advance(minutes=5)
        with pytest.raises(ConflictError):
            async with transaction(db_b):
                stale.stopped_at = clock()
                stale.duration_minutes = 35

    assert await actions_for(session_factory, workflow_engine, entry_id) == ["stopped", "started"]
    async with session_factory() as db:
        entries = await timers.get_time_entries(db, task_id)
        assert entries[0].duration_minutes == 30


@pytest.mark.asyncio
async def test_last_completion_sees_sibling_committed_elsewhere(session_factory, workflow_engine):
    lifecycle = workflow_engine.lifecycle
    async with session_factory() as db:
        intake = await lifecycle.create_stage(db, CASE_ID, "Intake", order_index=0, actor_id="partner-1")
        await lifecycle.activate_stage(db, intake.uuid, actor_id="partner-1")
        discovery = await lifecycle.create_stage(db, CASE_ID, "Discovery", order_index=1, actor_id="partner-1")
        letter = await lifecycle.create_task(db, intake.uuid, "Engagement letter", actor_id="partner-1")
        conflicts = await lifecycle.create_task(db, intake.uuid, "Conflict check", actor_id="partner-1")
        intake_id, discovery_id = intake.uuid, discovery.uuid
        letter_id, conflicts_id = letter.uuid, conflicts.uuid

    async with session_factory() as db_a, session_factory() as db_b:
        # both writers have the stage and its tasks in hand before either commits
        await lifecycle.list_stage_tasks(db_b, intake_id)

        first = await lifecycle.complete_task(db_a, letter_id, actor_id="associate-1")
        assert first.stage_completed is False

        second = await lifecycle.complete_task(db_b, conflicts_id, actor_id="associate-2")
        assert second.stage_completed is True
        assert second.progress == 100.0
        assert second.next_stage_id == discovery_id

    async with session_factory() as db:
        stages = await lifecycle.list_case_stages(db, CASE_ID)
        assert [s.status for s in stages] == [StageStatus.COMPLETED, StageStatus.ACTIVE]


@pytest.mark.asyncio
async def test_concurrent_dependency_edits_cannot_close_a_cycle(session_factory, workflow_engine):
    graph = workflow_engine.dependencies
    async with session_factory() as db:
        stage = await workflow_engine.lifecycle.create_stage(db, CASE_ID, "Trial prep", actor_id="partner-1")
        brief = await workflow_engine.lifecycle.create_task(db, stage.uuid, "Trial brief", actor_id="partner-1")
        exhibits = await workflow_engine.lifecycle.create_task(db, stage.uuid, "Exhibit list", actor_id="partner-1")
        brief_id, exhibits_id = brief.uuid, exhibits.uuid

    async def edit(task_id, upstream_id):
        async with session_factory() as db:
            return await graph.set_task_dependencies(db, task_id, [upstream_id], actor_id="partner-1")

    results = await asyncio.gather(
        edit(brief_id, exhibits_id),
        edit(exhibits_id, brief_id),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], WorkflowValidationError)
    assert "cycle" in failures[0].detail

    async with session_factory() as db:
        edges = [len(await graph.get_task_dependencies(db, t)) for t in (brief_id, exhibits_id)]
        assert sorted(edges) == [0, 1]


class _Dialect:
    def __init__(self, name):
        self.name = name


class _Bind:
    def __init__(self, name):
        self.dialect = _Dialect(name)


class RecordingSession:
    def __init__(self, dialect_name):
        self.bind = _Bind(dialect_name)
        self.statements = []

    def get_bind(self):
        return self.bind

    async def execute(self, statement, params=None):
        self.statements.append((str(statement), params))


@pytest.mark.asyncio
async def test_advisory_lock_taken_on_postgresql():
    db = RecordingSession("postgresql")

    assert await advisory_xact_lock(db, CASE_ID) is True
    assert db.statements == [("SELECT pg_advisory_xact_lock(hashtext(:key))", {"key": CASE_ID})]


@pytest.mark.asyncio
async def test_advisory_lock_skipped_on_sqlite():
    db = RecordingSession("sqlite")

    assert await advisory_xact_lock(db, CASE_ID) is False
    assert db.statements == []
