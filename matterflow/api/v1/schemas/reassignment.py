# matterflow/api/v1/schemas/reassignment.py
from pydantic import BaseModel, ConfigDict, Field, UUID4, field_validator
from typing import Optional, List
from datetime import datetime


class ReassignTaskRequest(BaseModel):
    task_id: UUID4
    new_assignee_id: str = Field(..., min_length=1, max_length=64)
    reassigned_by: str = Field(..., min_length=1, max_length=64)
    reason: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=1, description="Reject with 409 if the task moved on")


class BulkReassignRequest(BaseModel):
    task_ids: List[UUID4] = Field(..., description="Task UUIDs to reassign")
    new_assignee_id: str = Field(..., min_length=1, max_length=64)
    reassigned_by: str = Field(..., min_length=1, max_length=64)
    reason: Optional[str] = None

    @field_validator('task_ids')
    @classmethod
    def validate_task_ids(cls, v):
        """Ensure at least one task ID"""
        if not v:
            raise ValueError("At least one task ID is required")
        return v


class ReassignFromUserRequest(BaseModel):
    from_user_id: str = Field(..., min_length=1, max_length=64)
    to_user_id: str = Field(..., min_length=1, max_length=64)
    reassigned_by: str = Field(..., min_length=1, max_length=64)
    case_id: Optional[str] = Field(None, max_length=64, description="Limit to one case")
    reason: Optional[str] = None


class ReassignmentItemResponse(BaseModel):
    task_id: UUID4
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


class BulkReassignResponse(BaseModel):
    succeeded: int
    failed: int
    results: List[ReassignmentItemResponse]

    @classmethod
    def from_result(cls, result):
        return cls(
            succeeded=result.succeeded,
            failed=result.failed,
            results=[
                ReassignmentItemResponse(
                    task_id=item.task_id,
                    success=item.success,
                    error=item.error,
                    error_type=item.error_type,
                )
                for item in result.results
            ],
        )


class ReassignmentRecordResponse(BaseModel):
    id: UUID4
    task_id: UUID4
    from_user_id: Optional[str] = None
    to_user_id: str
    reassigned_by: str
    reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, record):
        return cls(
            id=record.uuid,
            task_id=record.task.uuid,
            from_user_id=record.from_user_id,
            to_user_id=record.to_user_id,
            reassigned_by=record.reassigned_by,
            reason=record.reason,
            created_at=record.created_at,
        )


class ReassignmentRuleCreate(BaseModel):
    """At least one of the three constraints must be given"""
    name: str = Field(..., min_length=1, max_length=255)
    case_id: Optional[str] = Field(None, max_length=64, description="Limit the rule to one case")
    allowed_assignees: Optional[List[str]] = Field(None, description="Only these users may receive tasks")
    blocked_assignees: Optional[List[str]] = Field(None, description="These users may never receive tasks")
    max_reassignments: Optional[int] = Field(None, ge=0, description="Moves allowed per task")
    actor_id: Optional[str] = Field(None, max_length=64)


class ReassignmentRuleResponse(BaseModel):
    id: UUID4
    name: str
    case_id: Optional[str] = None
    allowed_assignees: Optional[List[str]] = None
    blocked_assignees: Optional[List[str]] = None
    max_reassignments: Optional[int] = None
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, rule):
        return cls(
            id=rule.uuid,
            name=rule.name,
            case_id=rule.case_id,
            allowed_assignees=rule.allowed_assignees,
            blocked_assignees=rule.blocked_assignees,
            max_reassignments=rule.max_reassignments,
            created_by=rule.created_by,
            created_at=rule.created_at,
        )
