# matterflow/api/v1/schemas/conditions.py
from pydantic import BaseModel, Field, UUID4
from typing import Optional, Dict, Any
from datetime import datetime


class ConditionalRuleCreate(BaseModel):
    """Branch from stage_id to target_stage_id when expression holds"""
    stage_id: UUID4
    target_stage_id: UUID4
    expression: str = Field(..., min_length=1, max_length=4096,
                            description="e.g. client.type == 'corporate' AND amount > 10000")
    priority: int = Field(100, ge=0, description="Lower numbers are evaluated first")
    description: Optional[str] = None
    actor_id: Optional[str] = Field(None, max_length=64)


class ConditionalRuleResponse(BaseModel):
    id: UUID4
    stage_id: UUID4
    target_stage_id: UUID4
    expression: str
    priority: int
    description: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, rule):
        return cls(
            id=rule.uuid,
            stage_id=rule.stage.uuid,
            target_stage_id=rule.target_stage.uuid,
            expression=rule.expression,
            priority=rule.priority,
            description=rule.description,
            created_by=rule.created_by,
            created_at=rule.created_at,
        )


class ConditionEvaluationRequest(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict, description="Facts the expressions read")


class BranchDecisionResponse(BaseModel):
    matched: bool
    rule_id: Optional[UUID4] = None
    target_stage_id: Optional[UUID4] = None

    @classmethod
    def from_decision(cls, decision):
        return cls(matched=decision.matched, rule_id=decision.rule_id, target_stage_id=decision.target_stage_id)
