# matterflow/api/v1/endpoints/parallel_groups.py
"""Parallel task group endpoints"""
from fastapi import APIRouter, Depends, HTTPException, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine, get_actor_id, resolve_actor
from matterflow.api.v1.schemas.parallel_groups import (
    ParallelGroupCreate, ParallelGroupResponse, GroupCompletionResponse
)
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.post("", response_model=ParallelGroupResponse, status_code=status.HTTP_201_CREATED)
async def create_parallel_group(
    group_data: ParallelGroupCreate,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Group tasks of one stage under an all/any/percentage rule"""
    try:
        group = await engine.parallel.create_parallel_group(
            db,
            stage_id=group_data.stage_id,
            task_ids=group_data.task_ids,
            completion_rule=group_data.completion_rule,
            threshold=group_data.threshold,
            name=group_data.name,
            actor_id=resolve_actor(group_data.actor_id, actor_id)
        )
        return ParallelGroupResponse.from_model(group)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to create parallel group: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create parallel group"
        )


@router.get("/stage/{stage_id}", response_model=List[ParallelGroupResponse])
async def list_parallel_groups(
    stage_id: UUID = Path(..., description="Stage UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Parallel groups of a stage"""
    try:
        groups = await engine.parallel.list_parallel_groups(db, stage_id)
        return [ParallelGroupResponse.from_model(group) for group in groups]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to list parallel groups for stage {stage_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list parallel groups"
        )


@router.get("/{group_id}/completion", response_model=GroupCompletionResponse)
async def check_parallel_group_completion(
    group_id: UUID = Path(..., description="Parallel group UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Whether the group currently satisfies its completion rule"""
    try:
        completion = await engine.parallel.check_parallel_group_completion(db, group_id)
        return GroupCompletionResponse.from_completion(completion)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to check parallel group {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check parallel group completion"
        )
