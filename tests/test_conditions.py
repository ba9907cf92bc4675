# tests/test_conditions.py
import pytest

from matterflow.db.models import StageStatus
from matterflow.exceptions import WorkflowValidationError


@pytest.fixture
async def pipeline(make_stage):
    intake = await make_stage("Intake", order_index=0, activate=True)
    litigation = await make_stage("Litigation", order_index=1)
    settlement = await make_stage("Settlement", order_index=2)
    return intake, litigation, settlement


@pytest.mark.asyncio
async def test_first_match_by_priority(db_session, workflow_engine, pipeline):
    intake, litigation, settlement = pipeline
    conditions = workflow_engine.conditions

    await conditions.add_conditional_rule(db_session, intake.uuid, "claim_value > 1000", litigation.uuid, priority=20)
    preferred = await conditions.add_conditional_rule(
        db_session, intake.uuid, "settlement_offer == true", settlement.uuid, priority=10
    )

    decision = await conditions.evaluate_conditions(
        db_session, intake.uuid, {"claim_value": 5000, "settlement_offer": True}
    )
    assert decision.matched is True
    assert decision.rule_id == preferred.uuid
    assert decision.target_stage_id == settlement.uuid

    decision = await conditions.evaluate_conditions(db_session, intake.uuid, {"claim_value": 10})
    assert decision.matched is False
    assert decision.target_stage_id is None


@pytest.mark.asyncio
async def test_stage_completion_follows_matching_rule(db_session, workflow_engine, make_task, pipeline):
    intake, litigation, settlement = pipeline
    await workflow_engine.conditions.add_conditional_rule(
        db_session, intake.uuid, "settlement_offer == true", settlement.uuid
    )
    task = await make_task(intake, "Client interview")

    result = await workflow_engine.lifecycle.complete_task(
        db_session, task.uuid, context={"settlement_offer": True}
    )

    assert result.stage_completed is True
    assert result.next_stage_id == settlement.uuid
    assert settlement.status == StageStatus.ACTIVE
    assert litigation.status == StageStatus.PENDING


@pytest.mark.asyncio
async def test_no_match_falls_back_to_next_stage_by_order(db_session, workflow_engine, make_task, pipeline):
    intake, litigation, settlement = pipeline
    await workflow_engine.conditions.add_conditional_rule(
        db_session, intake.uuid, "settlement_offer == true", settlement.uuid
    )
    task = await make_task(intake, "Client interview")

    result = await workflow_engine.lifecycle.complete_task(db_session, task.uuid, context={"settlement_offer": False})

    assert result.matched_rule_id is None
    assert result.next_stage_id == litigation.uuid
    assert litigation.status == StageStatus.ACTIVE
    assert settlement.status == StageStatus.PENDING


@pytest.mark.asyncio
async def test_rules_see_stage_facts(db_session, workflow_engine, make_task, pipeline):
    intake, litigation, settlement = pipeline
    await workflow_engine.conditions.add_conditional_rule(
        db_session, intake.uuid, "cancelled_tasks >= 1", settlement.uuid
    )
    kept = await make_task(intake, "Kept")
    dropped = await make_task(intake, "Dropped")

    await workflow_engine.lifecycle.cancel_task(db_session, dropped.uuid)
    result = await workflow_engine.lifecycle.complete_task(db_session, kept.uuid)

    assert result.next_stage_id == settlement.uuid


@pytest.mark.asyncio
async def test_invalid_rules_rejected(db_session, workflow_engine, pipeline, make_stage):
    intake, litigation, _ = pipeline
    foreign = await make_stage("Appeal", case_id="CASE-OTHER")
    intake_id, litigation_id, foreign_id = intake.uuid, litigation.uuid, foreign.uuid
    conditions = workflow_engine.conditions

    with pytest.raises(WorkflowValidationError) as exc_info:
        await conditions.add_conditional_rule(db_session, intake_id, "claim_value >", litigation_id)
    assert exc_info.value.context["expression"] == "claim_value >"

    with pytest.raises(WorkflowValidationError):
        await conditions.add_conditional_rule(db_session, intake_id, "claim_value > 1", intake_id)
    with pytest.raises(WorkflowValidationError):
        await conditions.add_conditional_rule(db_session, intake_id, "claim_value > 1", foreign_id)

    assert await conditions.list_conditional_rules(db_session, intake_id) == []
