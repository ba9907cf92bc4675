# matterflow/api/v1/schemas/sla.py
from pydantic import BaseModel, ConfigDict, Field, UUID4
from typing import Optional, List
from datetime import datetime

from matterflow.db.models import SLAScope


class SLARuleSet(BaseModel):
    """Create or replace the rule for (scope, target_key)"""
    scope: SLAScope = Field(..., description="task, stage, priority or default")
    target_key: Optional[str] = Field(None, max_length=64, description="Task UUID, stage UUID or priority value")
    allowed_hours: float = Field(..., gt=0, description="Hours allowed from clock start")
    warning_hours: Optional[float] = Field(None, ge=0, description="Warn when this many hours remain")
    escalation_target: Optional[str] = Field(None, max_length=64, description="User notified on breach")
    name: Optional[str] = Field(None, max_length=255)
    auto_notify: bool = Field(True, description="Send warning and breach notifications")
    max_escalation_level: int = Field(1, ge=1, description="Escalations per breach, one level at a time")
    escalation_interval_hours: Optional[float] = Field(
        None, gt=0, description="Overdue hours between levels; allowed_hours when unset"
    )
    auto_reassign: bool = Field(False, description="Hand the task to the escalation target")
    notify_assignee: bool = Field(False, description="Also tell the assignee about each escalation")
    actor_id: Optional[str] = Field(None, max_length=64)


class SLARuleResponse(BaseModel):
    id: UUID4
    name: str
    scope: SLAScope
    target_key: str
    allowed_hours: float
    warning_hours: Optional[float] = None
    escalation_target: Optional[str] = None
    auto_notify: bool
    max_escalation_level: int
    escalation_interval_hours: Optional[float] = None
    auto_reassign: bool
    notify_assignee: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, rule):
        return cls(
            id=rule.uuid,
            name=rule.name,
            scope=rule.scope,
            target_key=rule.target_key,
            allowed_hours=rule.allowed_hours,
            warning_hours=rule.warning_hours,
            escalation_target=rule.escalation_target,
            auto_notify=rule.auto_notify,
            max_escalation_level=rule.max_escalation_level,
            escalation_interval_hours=rule.escalation_interval_hours,
            auto_reassign=rule.auto_reassign,
            notify_assignee=rule.notify_assignee,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


class SLAStatusResponse(BaseModel):
    task_id: UUID4
    case_id: str
    title: str
    priority: str
    assignee_id: Optional[str] = None
    status: str = Field(..., description="ok, warning, breached or no_rule")
    rule_id: Optional[UUID4] = None
    rule_name: Optional[str] = None
    allowed_hours: Optional[float] = None
    elapsed_hours: float
    remaining_hours: Optional[float] = None
    overdue_hours: float = 0.0
    breached: bool
    warning: bool
    clock_started_at: datetime

    @classmethod
    def from_status(cls, item):
        return cls(
            task_id=item.task_id,
            case_id=item.case_id,
            title=item.title,
            priority=item.priority,
            assignee_id=item.assignee_id,
            status=item.status,
            rule_id=item.rule.uuid if item.rule else None,
            rule_name=item.rule.name if item.rule else None,
            allowed_hours=item.allowed_hours,
            elapsed_hours=item.elapsed_hours,
            remaining_hours=item.remaining_hours,
            overdue_hours=round(item.overdue_hours, 4),
            breached=item.breached,
            warning=item.warning,
            clock_started_at=item.clock_started_at,
        )


class SLABreachReportResponse(BaseModel):
    breaches: List[SLAStatusResponse]
    warnings: List[SLAStatusResponse]
    checked: int
    generated_at: datetime

    @classmethod
    def from_report(cls, report):
        return cls(
            breaches=[SLAStatusResponse.from_status(s) for s in report.breaches],
            warnings=[SLAStatusResponse.from_status(s) for s in report.warnings],
            checked=report.checked,
            generated_at=report.generated_at,
        )


class SLAEscalationResponse(BaseModel):
    id: UUID4
    level: int
    escalated_to: str
    overdue_hours: float
    reassigned: bool
    escalated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, escalation):
        return cls(
            id=escalation.uuid,
            level=escalation.level,
            escalated_to=escalation.escalated_to,
            overdue_hours=escalation.overdue_hours,
            reassigned=escalation.reassigned,
            escalated_at=escalation.escalated_at,
        )
