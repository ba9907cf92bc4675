# matterflow/api/v1/endpoints/time_tracking.py
"""Time tracking endpoints"""
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine
from matterflow.api.v1.schemas.time_tracking import (
    TimerStart, TimerStop, TimeEntryResponse, TimeSummaryResponse, TaskTimeResponse
)
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.post("/{task_id}/start", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
async def start_time_tracking(
    timer: TimerStart,
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Start a timer for the user on the task"""
    try:
        entry = await engine.time_tracking.start_time_tracking(
            db, task_id, timer.user_id, description=timer.description, billable=timer.billable
        )
        return TimeEntryResponse.from_model(entry)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to start time tracking on task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start time tracking"
        )


@router.post("/{task_id}/stop", response_model=TimeEntryResponse)
async def stop_time_tracking(
    timer: TimerStop,
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Stop the user's running timer on the task"""
    try:
        entry = await engine.time_tracking.stop_time_tracking(
            db, task_id, timer.user_id, description=timer.description
        )
        return TimeEntryResponse.from_model(entry)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to stop time tracking on task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to stop time tracking"
        )


@router.get("/{task_id}", response_model=TaskTimeResponse)
async def get_time_entries(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Time entries of a task with totals"""
    try:
        entries = await engine.time_tracking.get_time_entries(db, task_id)
        summary = await engine.time_tracking.get_task_time_summary(db, task_id)
        return TaskTimeResponse(
            entries=[TimeEntryResponse.from_model(entry) for entry in entries],
            summary=TimeSummaryResponse(**asdict(summary))
        )

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to get time entries for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get time entries"
        )
