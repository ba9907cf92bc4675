# matterflow/api/v1/schemas/parallel_groups.py
from pydantic import BaseModel, Field, UUID4
from typing import Optional, List
from datetime import datetime

from matterflow.db.models import CompletionRule, ParallelGroupStatus


class ParallelGroupCreate(BaseModel):
    """Schema for grouping tasks of one stage"""
    stage_id: UUID4
    task_ids: List[UUID4] = Field(..., description="At least two distinct task UUIDs of the stage")
    completion_rule: CompletionRule
    threshold: Optional[float] = Field(None, description="Percent in (0, 100], percentage rule only")
    name: Optional[str] = Field(None, max_length=255)
    actor_id: Optional[str] = Field(None, max_length=64)


class ParallelGroupResponse(BaseModel):
    id: UUID4
    stage_id: UUID4
    name: Optional[str] = None
    completion_rule: CompletionRule
    threshold: Optional[float] = None
    status: ParallelGroupStatus
    task_ids: List[UUID4]
    created_by: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, group):
        return cls(
            id=group.uuid,
            stage_id=group.stage.uuid,
            name=group.name,
            completion_rule=group.completion_rule,
            threshold=group.threshold,
            status=group.status,
            task_ids=[task.uuid for task in group.tasks],
            created_by=group.created_by,
            created_at=group.created_at,
            completed_at=group.completed_at,
        )


class GroupCompletionResponse(BaseModel):
    group_id: UUID4
    completed: bool
    percent: float
    completed_count: int
    total_count: int
    completion_rule: CompletionRule
    threshold: Optional[float] = None

    @classmethod
    def from_completion(cls, completion):
        return cls(
            group_id=completion.group_id,
            completed=completion.completed,
            percent=completion.percent,
            completed_count=completion.completed_count,
            total_count=completion.total_count,
            completion_rule=completion.completion_rule,
            threshold=completion.threshold,
        )
