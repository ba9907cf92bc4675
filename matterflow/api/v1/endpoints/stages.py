# matterflow/api/v1/endpoints/stages.py
"""Stage management endpoints"""
from fastapi import APIRouter, Depends, HTTPException, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine, get_actor_id, resolve_actor
from matterflow.api.v1.schemas.stages import StageCreate, StageActivate, StageResponse
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.post("", response_model=StageResponse, status_code=status.HTTP_201_CREATED)
async def create_stage(
    stage_data: StageCreate,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Create a pending stage in a case"""
    try:
        stage = await engine.lifecycle.create_stage(
            db,
            case_id=stage_data.case_id,
            name=stage_data.name,
            order_index=stage_data.order_index,
            actor_id=resolve_actor(stage_data.actor_id, actor_id),
            description=stage_data.description
        )
        return StageResponse.from_model(stage)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to create stage: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create stage"
        )


@router.get("/case/{case_id}", response_model=List[StageResponse])
async def list_case_stages(
    case_id: str = Path(..., max_length=64, description="External case id"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """List the stages of a case in workflow order"""
    try:
        stages = await engine.lifecycle.list_case_stages(db, case_id)
        return [StageResponse.from_model(stage) for stage in stages]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to list stages for case {case_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list stages"
        )


@router.post("/{stage_id}/activate", response_model=StageResponse)
async def activate_stage(
    stage_id: UUID = Path(..., description="Stage UUID"),
    body: Optional[StageActivate] = None,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Move a pending stage to active"""
    try:
        stage = await engine.lifecycle.activate_stage(
            db, stage_id, actor_id=resolve_actor(body.actor_id if body else None, actor_id)
        )
        return StageResponse.from_model(stage)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to activate stage {stage_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to activate stage"
        )
