# matterflow/api/v1/endpoints/reassignment.py
"""Task reassignment endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Query, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.api.v1.dependencies import get_workflow_engine, get_actor_id, resolve_actor
from matterflow.api.v1.schemas.reassignment import (
    ReassignTaskRequest, BulkReassignRequest, ReassignFromUserRequest, BulkReassignResponse,
    ReassignmentRecordResponse, ReassignmentRuleCreate, ReassignmentRuleResponse
)
from matterflow.api.v1.schemas.tasks import TaskResponse
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.post("/task", response_model=TaskResponse)
async def reassign_task(
    request_data: ReassignTaskRequest,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Move one open task to a new assignee"""
    try:
        task = await engine.reassignment.reassign_task(
            db,
            request_data.task_id,
            request_data.new_assignee_id,
            request_data.reassigned_by,
            reason=request_data.reason,
            expected_version=request_data.expected_version
        )
        return TaskResponse.from_model(task)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to reassign task {request_data.task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reassign task"
        )


@router.post("/bulk", response_model=BulkReassignResponse)
async def bulk_reassign_tasks(
    request_data: BulkReassignRequest,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Reassign several tasks; each succeeds or fails on its own"""
    try:
        result = await engine.reassignment.bulk_reassign_tasks(
            db,
            request_data.task_ids,
            request_data.new_assignee_id,
            request_data.reassigned_by,
            reason=request_data.reason
        )
        return BulkReassignResponse.from_result(result)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to bulk reassign tasks: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to bulk reassign tasks"
        )


@router.post("/from-user", response_model=BulkReassignResponse)
async def reassign_all_from_user(
    request_data: ReassignFromUserRequest,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Hand every open task of one user to another"""
    try:
        result = await engine.reassignment.reassign_all_from_user(
            db,
            request_data.from_user_id,
            request_data.to_user_id,
            request_data.reassigned_by,
            case_id=request_data.case_id,
            reason=request_data.reason
        )
        return BulkReassignResponse.from_result(result)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to reassign tasks from {request_data.from_user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reassign tasks"
        )


@router.get("/history/task/{task_id}", response_model=List[ReassignmentRecordResponse])
async def get_task_history(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Assignee changes of one task, oldest first"""
    try:
        history = await engine.reassignment.get_task_history(db, task_id)
        return [ReassignmentRecordResponse.from_model(record) for record in history]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to read reassignment history for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read reassignment history"
        )


@router.get("/history/user/{user_id}", response_model=List[ReassignmentRecordResponse])
async def get_user_history(
    user_id: str = Path(..., max_length=64, description="External user id"),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Tasks moved to or away from a user, newest first"""
    try:
        history = await engine.reassignment.get_user_history(db, user_id, limit=limit)
        return [ReassignmentRecordResponse.from_model(record) for record in history]

    except Exception as e:
        logger.error(f"Failed to read reassignment history for user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read reassignment history"
        )


@router.post("/rules", response_model=ReassignmentRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_reassignment_rule(
    rule_data: ReassignmentRuleCreate,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Add a constraint checked before tasks change hands"""
    try:
        rule = await engine.reassignment.create_rule(
            db,
            rule_data.name,
            case_id=rule_data.case_id,
            allowed_assignees=rule_data.allowed_assignees,
            blocked_assignees=rule_data.blocked_assignees,
            max_reassignments=rule_data.max_reassignments,
            actor_id=resolve_actor(rule_data.actor_id, actor_id)
        )
        return ReassignmentRuleResponse.from_model(rule)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to create reassignment rule: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create reassignment rule"
        )


@router.get("/rules", response_model=List[ReassignmentRuleResponse])
async def list_reassignment_rules(
    case_id: Optional[str] = Query(None, max_length=64, description="Global rules plus this case's rules"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    try:
        rules = await engine.reassignment.list_rules(db, case_id=case_id)
        return [ReassignmentRuleResponse.from_model(rule) for rule in rules]

    except Exception as e:
        logger.error(f"Failed to list reassignment rules: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list reassignment rules"
        )


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reassignment_rule(
    rule_id: UUID = Path(..., description="Reassignment rule UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Remove a constraint"""
    try:
        await engine.reassignment.delete_rule(db, rule_id, actor_id=actor_id)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete reassignment rule {rule_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete reassignment rule"
        )
