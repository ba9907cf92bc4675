# matterflow/api/v1/endpoints/conditions.py
"""Conditional stage branching endpoints"""
from fastapi import APIRouter, Depends, HTTPException, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine, get_actor_id, resolve_actor
from matterflow.api.v1.schemas.conditions import (
    ConditionalRuleCreate, ConditionalRuleResponse, ConditionEvaluationRequest, BranchDecisionResponse
)
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.post("", response_model=ConditionalRuleResponse, status_code=status.HTTP_201_CREATED)
async def add_conditional_rule(
    rule_data: ConditionalRuleCreate,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Add a branching rule to a stage"""
    try:
        rule = await engine.conditions.add_conditional_rule(
            db,
            stage_id=rule_data.stage_id,
            expression=rule_data.expression,
            target_stage_id=rule_data.target_stage_id,
            priority=rule_data.priority,
            actor_id=resolve_actor(rule_data.actor_id, actor_id),
            description=rule_data.description
        )
        return ConditionalRuleResponse.from_model(rule)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to add conditional rule: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add conditional rule"
        )


@router.get("/stage/{stage_id}", response_model=List[ConditionalRuleResponse])
async def list_conditional_rules(
    stage_id: UUID = Path(..., description="Stage UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Branching rules of a stage in evaluation order"""
    try:
        rules = await engine.conditions.list_conditional_rules(db, stage_id)
        return [ConditionalRuleResponse.from_model(rule) for rule in rules]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to list conditional rules for stage {stage_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list conditional rules"
        )


@router.post("/stage/{stage_id}/evaluate", response_model=BranchDecisionResponse)
async def evaluate_conditions(
    evaluation: ConditionEvaluationRequest,
    stage_id: UUID = Path(..., description="Stage UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Dry run: which rule, if any, matches the given context"""
    try:
        decision = await engine.conditions.evaluate_conditions(db, stage_id, evaluation.context)
        return BranchDecisionResponse.from_decision(decision)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to evaluate conditions for stage {stage_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate conditions"
        )
