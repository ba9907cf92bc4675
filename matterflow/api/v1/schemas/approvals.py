# matterflow/api/v1/schemas/approvals.py
from pydantic import BaseModel, Field, UUID4
from typing import Optional, List
from datetime import datetime

from matterflow.db.models import ApprovalAction, ApprovalDecision, ApprovalOutcome


class ApprovalChainCreate(BaseModel):
    """Schema for requesting approval of a task"""
    task_id: UUID4 = Field(..., description="Task UUID")
    approver_ids: List[str] = Field(..., min_length=1, description="Approvers in the order they decide")
    actor_id: Optional[str] = Field(None, max_length=64)


class ApprovalDecisionRequest(BaseModel):
    approver_id: str = Field(..., min_length=1, max_length=64)
    action: ApprovalAction
    comments: Optional[str] = None


class ApprovalStepResponse(BaseModel):
    position: int
    approver_id: str
    decision: ApprovalDecision
    decided_at: Optional[datetime] = None
    comments: Optional[str] = None


class ApprovalChainResponse(BaseModel):
    id: UUID4
    task_id: UUID4
    case_id: str
    outcome: ApprovalOutcome
    current_index: int
    current_approver: Optional[str] = None
    steps: List[ApprovalStepResponse]
    created_by: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, chain):
        current = chain.current_step
        return cls(
            id=chain.uuid,
            task_id=chain.task.uuid,
            case_id=chain.case_id,
            outcome=chain.outcome,
            current_index=chain.current_index,
            current_approver=current.approver_id if current else None,
            steps=[
                ApprovalStepResponse(
                    position=step.position,
                    approver_id=step.approver_id,
                    decision=step.decision,
                    decided_at=step.decided_at,
                    comments=step.comments,
                )
                for step in chain.steps
            ],
            created_by=chain.created_by,
            created_at=chain.created_at,
            completed_at=chain.completed_at,
        )
