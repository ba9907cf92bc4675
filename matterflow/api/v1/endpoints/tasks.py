# matterflow/api/v1/endpoints/tasks.py
"""Task lifecycle and dependency endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Query, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from loguru import logger

from matterflow.db.database import get_db
from matterflow.db.models import TaskStatus
from matterflow.api.v1.dependencies import get_workflow_engine, get_actor_id, resolve_actor
from matterflow.api.v1.schemas.tasks import (
    TaskCreate, TaskResponse, TaskTransition, TaskTransitionResponse,
    DependencySet, DependencyResponse, CanStartResponse
)
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Create a pending task in a stage"""
    try:
        task = await engine.lifecycle.create_task(
            db,
            stage_id=task_data.stage_id,
            title=task_data.title,
            priority=task_data.priority,
            actor_id=resolve_actor(task_data.actor_id, actor_id),
            assignee_id=task_data.assignee_id,
            due_date=task_data.due_date,
            description=task_data.description
        )
        return TaskResponse.from_model(task)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to create task: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create task"
        )


@router.get("/stage/{stage_id}", response_model=List[TaskResponse])
async def list_stage_tasks(
    stage_id: UUID = Path(..., description="Stage UUID"),
    status_filter: Optional[TaskStatus] = Query(None, description="Filter by task status"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """List tasks of a stage"""
    try:
        tasks = await engine.lifecycle.list_stage_tasks(db, stage_id, status_filter)
        return [TaskResponse.from_model(task) for task in tasks]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to list tasks for stage {stage_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list tasks"
        )


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Get a specific task"""
    try:
        task = await engine.lifecycle.get_task(db, task_id)
        return TaskResponse.from_model(task)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to get task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get task"
        )


@router.post("/{task_id}/start", response_model=TaskResponse)
async def start_task(
    task_id: UUID = Path(..., description="Task UUID"),
    body: Optional[TaskTransition] = None,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Start a pending task whose blocking dependencies are complete"""
    try:
        task = await engine.lifecycle.start_task(
            db, task_id, actor_id=resolve_actor(body.actor_id if body else None, actor_id)
        )
        return TaskResponse.from_model(task)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to start task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start task"
        )


@router.post("/{task_id}/complete", response_model=TaskTransitionResponse)
async def complete_task(
    task_id: UUID = Path(..., description="Task UUID"),
    body: Optional[TaskTransition] = None,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Complete a task and advance its stage when the stage is satisfied"""
    try:
        result = await engine.lifecycle.complete_task(
            db,
            task_id,
            actor_id=resolve_actor(body.actor_id if body else None, actor_id),
            context=body.context if body else None
        )
        return TaskTransitionResponse.from_result(result)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to complete task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete task"
        )


@router.post("/{task_id}/cancel", response_model=TaskTransitionResponse)
async def cancel_task(
    task_id: UUID = Path(..., description="Task UUID"),
    body: Optional[TaskTransition] = None,
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Cancel an open task"""
    try:
        result = await engine.lifecycle.cancel_task(
            db,
            task_id,
            actor_id=resolve_actor(body.actor_id if body else None, actor_id),
            reason=body.reason if body else None
        )
        return TaskTransitionResponse.from_result(result)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to cancel task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel task"
        )


@router.put("/{task_id}/dependencies", response_model=List[DependencyResponse])
async def set_task_dependencies(
    dependency_data: DependencySet,
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """Replace the task's dependency set; rejected if it would create a cycle"""
    try:
        edges = await engine.dependencies.set_task_dependencies(
            db,
            task_id,
            dependency_data.depends_on,
            dependency_type=dependency_data.dependency_type,
            actor_id=resolve_actor(dependency_data.actor_id, actor_id)
        )
        return [DependencyResponse.from_model(edge) for edge in edges]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to set dependencies for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set task dependencies"
        )


@router.get("/{task_id}/dependencies", response_model=List[DependencyResponse])
async def get_task_dependencies(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Upstream tasks with their dependency type and current status"""
    try:
        edges = await engine.dependencies.get_task_dependencies(db, task_id)
        return [DependencyResponse.from_model(edge) for edge in edges]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to get dependencies for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get task dependencies"
        )


@router.get("/{task_id}/can-start", response_model=CanStartResponse)
async def can_start_task(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Whether every blocking dependency is complete"""
    try:
        readiness = await engine.dependencies.can_start_task(db, task_id)
        return CanStartResponse.from_readiness(readiness)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to check start readiness for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check task readiness"
        )
