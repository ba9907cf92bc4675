# matterflow/db/models/sla_rule.py
"""SLA rule and escalation models"""
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, Enum, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin
from matterflow.db.models.enums import SLAScope

DEFAULT_TARGET_KEY = "*"


class SLARule(Base, UUIDMixin, TimestampMixin):
    """Allowed duration keyed by task, stage, priority or the global default.

    ``target_key`` holds the task/stage UUID, the priority value, or ``*`` for
    the default rule. ``warning_hours`` is measured as hours remaining.
    A breach escalates up to ``max_escalation_level`` times, one level per
    ``escalation_interval_hours`` overdue (``allowed_hours`` when unset).
    """
    __tablename__ = "sla_rules"

    name = Column(String(255), nullable=False)
    scope = Column(Enum(SLAScope), nullable=False)
    target_key = Column(String(64), nullable=False, default=DEFAULT_TARGET_KEY)
    allowed_hours = Column(Float, nullable=False)
    warning_hours = Column(Float, nullable=True)
    escalation_target = Column(String(64), nullable=True)
    auto_notify = Column(Boolean, nullable=False, default=True)
    max_escalation_level = Column(Integer, nullable=False, default=1)
    escalation_interval_hours = Column(Float, nullable=True)
    auto_reassign = Column(Boolean, nullable=False, default=False)
    notify_assignee = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint('scope', 'target_key', name='uq_sla_rule_key'),
    )

    def __repr__(self):
        return f"<SLARule {self.scope}:{self.target_key} {self.allowed_hours}h>"


class SLAEscalation(Base, UUIDMixin):
    """One escalation level reached by a breached task"""
    __tablename__ = "sla_escalations"

    level = Column(Integer, nullable=False)
    escalated_to = Column(String(64), nullable=False)
    overdue_hours = Column(Float, nullable=False)
    reassigned = Column(Boolean, nullable=False, default=False)
    escalated_at = Column(DateTime(timezone=True), nullable=False)

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    task = relationship("Task", lazy="joined")
    rule_id = Column(Integer, ForeignKey("sla_rules.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        # Two sweeps racing on one task cannot both record the same level
        UniqueConstraint('task_id', 'level', name='uq_sla_escalation_level'),
    )

    def __repr__(self):
        return f"<SLAEscalation task={self.task_id} level={self.level} to={self.escalated_to}>"
