# matterflow/api/v1/endpoints/sla.py
"""SLA rule and deadline status endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Query, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine, get_actor_id, resolve_actor
from matterflow.api.v1.schemas.sla import (
    SLARuleSet, SLARuleResponse, SLAStatusResponse, SLABreachReportResponse, SLAEscalationResponse
)
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.put("/rules", response_model=SLARuleResponse)
async def set_sla_rule(
    rule_data: SLARuleSet,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Create or replace the SLA rule for a scope and target"""
    try:
        rule = await engine.sla.set_sla_rule(
            db,
            scope=rule_data.scope,
            allowed_hours=rule_data.allowed_hours,
            target_key=rule_data.target_key,
            warning_hours=rule_data.warning_hours,
            escalation_target=rule_data.escalation_target,
            name=rule_data.name,
            auto_notify=rule_data.auto_notify,
            max_escalation_level=rule_data.max_escalation_level,
            escalation_interval_hours=rule_data.escalation_interval_hours,
            auto_reassign=rule_data.auto_reassign,
            notify_assignee=rule_data.notify_assignee,
            actor_id=resolve_actor(rule_data.actor_id, actor_id)
        )
        return SLARuleResponse.from_model(rule)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to set SLA rule: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set SLA rule"
        )


@router.get("/rules", response_model=List[SLARuleResponse])
async def list_sla_rules(
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """List all SLA rules"""
    try:
        rules = await engine.sla.list_sla_rules(db)
        return [SLARuleResponse.from_model(rule) for rule in rules]

    except Exception as e:
        logger.error(f"Failed to list SLA rules: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list SLA rules"
        )


@router.get("/tasks/{task_id}", response_model=SLAStatusResponse)
async def get_task_sla_status(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Deadline status of one task under its resolved rule"""
    try:
        sla_status = await engine.sla.get_task_sla_status(db, task_id)
        return SLAStatusResponse.from_status(sla_status)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to get SLA status for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get SLA status"
        )


@router.get("/tasks/{task_id}/escalations", response_model=List[SLAEscalationResponse])
async def get_task_escalations(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Escalation levels the task has reached, lowest first"""
    try:
        escalations = await engine.sla.get_task_escalations(db, task_id)
        return [SLAEscalationResponse.from_model(item) for item in escalations]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to get escalations for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get escalations"
        )


@router.get("/breaches", response_model=SLABreachReportResponse)
async def check_sla_breaches(
    case_id: Optional[str] = Query(None, max_length=64, description="Limit to one case"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Open tasks past their deadline, most overdue first"""
    try:
        report = await engine.sla.check_sla_breaches(db, case_id=case_id)
        return SLABreachReportResponse.from_report(report)

    except Exception as e:
        logger.error(f"Failed to check SLA breaches: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check SLA breaches"
        )
