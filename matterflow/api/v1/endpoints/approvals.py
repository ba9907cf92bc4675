# matterflow/api/v1/endpoints/approvals.py
"""Approval chain endpoints"""
from fastapi import APIRouter, Depends, HTTPException, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine, get_actor_id, resolve_actor
from matterflow.api.v1.schemas.approvals import (
    ApprovalChainCreate, ApprovalDecisionRequest, ApprovalChainResponse
)
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.post("", response_model=ApprovalChainResponse, status_code=status.HTTP_201_CREATED)
async def create_approval_chain(
    chain_data: ApprovalChainCreate,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Request sequential approval of a task"""
    try:
        chain = await engine.approvals.create_approval_chain(
            db,
            chain_data.task_id,
            chain_data.approver_ids,
            actor_id=resolve_actor(chain_data.actor_id, actor_id)
        )
        return ApprovalChainResponse.from_model(chain)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to create approval chain: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create approval chain"
        )


@router.post("/{task_id}/process", response_model=ApprovalChainResponse)
async def process_approval(
    decision: ApprovalDecisionRequest,
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Approve or reject as the approver whose turn it is"""
    try:
        chain = await engine.approvals.process_approval(
            db,
            task_id,
            decision.approver_id,
            decision.action,
            comments=decision.comments
        )
        return ApprovalChainResponse.from_model(chain)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to process approval for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process approval"
        )


@router.get("/{task_id}", response_model=ApprovalChainResponse)
async def get_approval_chain(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Latest approval chain of a task"""
    try:
        chain = await engine.approvals.get_approval_chain(db, task_id)
        return ApprovalChainResponse.from_model(chain)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to get approval chain for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get approval chain"
        )
