# matterflow/api/v1/endpoints/analytics.py
"""Workflow analytics endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine
from matterflow.api.v1.schemas.analytics import (
    WorkflowMetricsResponse, VelocityResponse, BottlenecksResponse
)
from matterflow.engine import WorkflowEngine

router = APIRouter()


@router.get("/metrics", response_model=WorkflowMetricsResponse)
async def get_workflow_metrics(
    case_id: Optional[str] = Query(None, max_length=64, description="Limit to one case"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Task totals, completion rate, cycle time and SLA compliance"""
    try:
        metrics = await engine.analytics.get_workflow_metrics(db, case_id=case_id)
        return WorkflowMetricsResponse.model_validate(metrics)

    except Exception as e:
        logger.error(f"Failed to compute workflow metrics: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute workflow metrics"
        )


@router.get("/velocity", response_model=VelocityResponse)
async def get_task_velocity(
    case_id: Optional[str] = Query(None, max_length=64, description="Limit to one case"),
    days: Optional[int] = Query(None, ge=1, le=365, description="Trailing window in days"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Completed tasks per day over a trailing window"""
    try:
        velocity = await engine.analytics.get_task_velocity(db, case_id=case_id, days=days)
        return VelocityResponse.model_validate(velocity)

    except Exception as e:
        logger.error(f"Failed to compute task velocity: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute task velocity"
        )


@router.get("/bottlenecks", response_model=BottlenecksResponse)
async def get_bottlenecks(
    case_id: Optional[str] = Query(None, max_length=64, description="Limit to one case"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Slow stages, blocked tasks and overloaded assignees"""
    try:
        bottlenecks = await engine.analytics.get_bottlenecks(db, case_id=case_id)
        return BottlenecksResponse.model_validate(bottlenecks)

    except Exception as e:
        logger.error(f"Failed to compute bottlenecks: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute bottlenecks"
        )
