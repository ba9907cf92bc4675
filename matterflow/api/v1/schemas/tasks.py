# matterflow/api/v1/schemas/tasks.py
from pydantic import BaseModel, ConfigDict, Field, UUID4, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from matterflow.db.models import DependencyType, TaskPriority, TaskStatus


class TaskCreate(BaseModel):
    """Schema for creating a task"""
    stage_id: UUID4 = Field(..., description="Stage UUID")
    title: str = Field(..., min_length=1, max_length=500, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    assignee_id: Optional[str] = Field(None, max_length=64, description="User to assign")
    due_date: Optional[datetime] = Field(None, description="Due date for the task")
    actor_id: Optional[str] = Field(None, max_length=64, description="User creating the task")


class TaskTransition(BaseModel):
    """Body for start/complete/cancel"""
    actor_id: Optional[str] = Field(None, max_length=64)
    reason: Optional[str] = Field(None, description="Cancellation reason")
    context: Optional[Dict[str, Any]] = Field(
        None, description="Facts used by the stage's branching rules when the task completes the stage"
    )


class TaskResponse(BaseModel):
    """Schema for task response with UUID"""
    id: UUID4 = Field(..., description="Task UUID")
    stage_id: UUID4 = Field(..., description="Stage UUID")
    case_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    assignee_id: Optional[str] = None
    created_by: Optional[str] = None
    due_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int = Field(..., description="Optimistic concurrency version")
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, task):
        """Convert Task model to API response using UUIDs"""
        return cls(
            id=task.uuid,
            stage_id=task.stage.uuid,
            case_id=task.case_id,
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority,
            assignee_id=task.assignee_id,
            created_by=task.created_by,
            due_date=task.due_date,
            started_at=task.started_at,
            completed_at=task.completed_at,
            cancelled_at=task.cancelled_at,
            version=task.version,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskTransitionResponse(BaseModel):
    """Result of completing or cancelling a task"""
    task: TaskResponse
    stage_id: UUID4
    stage_completed: bool
    stage_progress: float
    next_stage_id: Optional[UUID4] = None
    matched_rule_id: Optional[UUID4] = None
    satisfied_group_ids: List[UUID4] = []
    closed_time_entries: int = 0

    @classmethod
    def from_result(cls, result):
        return cls(
            task=TaskResponse.from_model(result.task),
            stage_id=result.stage.uuid,
            stage_completed=result.stage_completed,
            stage_progress=result.progress,
            next_stage_id=result.next_stage_id,
            matched_rule_id=result.matched_rule_id,
            satisfied_group_ids=result.satisfied_group_ids,
            closed_time_entries=result.closed_time_entries,
        )


class DependencySet(BaseModel):
    """Replace a task's dependency set"""
    depends_on: List[UUID4] = Field(..., description="Upstream task UUIDs; empty clears the set")
    dependency_type: DependencyType = Field(DependencyType.BLOCKING)
    actor_id: Optional[str] = Field(None, max_length=64)

    @field_validator('depends_on')
    @classmethod
    def validate_depends_on(cls, v):
        """Reject repeated ids"""
        if len(set(v)) != len(v):
            raise ValueError("Dependency ids must be unique")
        return v


class DependencyResponse(BaseModel):
    task_id: UUID4 = Field(..., description="Upstream task UUID")
    title: str
    dependency_type: DependencyType
    status: TaskStatus

    @classmethod
    def from_model(cls, edge):
        return cls(
            task_id=edge.depends_on.uuid,
            title=edge.depends_on.title,
            dependency_type=edge.dependency_type,
            status=edge.depends_on.status,
        )


class CanStartResponse(BaseModel):
    task_id: UUID4
    can_start: bool
    unstartable: bool = False
    reason: Optional[str] = None
    waiting_on: List[UUID4] = []
    cancelled_upstream: List[UUID4] = []

    @classmethod
    def from_readiness(cls, readiness):
        return cls(
            task_id=readiness.task_id,
            can_start=readiness.can_start,
            unstartable=readiness.unstartable,
            reason=readiness.reason,
            waiting_on=readiness.waiting_on,
            cancelled_upstream=readiness.cancelled_upstream,
        )
