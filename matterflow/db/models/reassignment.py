# matterflow/db/models/reassignment.py
"""Reassignment history and constraint rule models"""
from sqlalchemy import Column, Integer, String, Text, JSON, ForeignKey, Index, DateTime
from sqlalchemy.orm import relationship

from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin


class Reassignment(Base, UUIDMixin):
    """One change of assignee; ``from_user_id`` is NULL for a first assignment"""
    __tablename__ = "reassignments"

    from_user_id = Column(String(64), nullable=True, index=True)
    to_user_id = Column(String(64), nullable=False, index=True)
    reassigned_by = Column(String(64), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    task = relationship("Task", lazy="joined")

    __table_args__ = (
        Index('idx_reassignment_task', 'task_id', 'created_at'),
    )


class ReassignmentRule(Base, UUIDMixin, TimestampMixin):
    """Constraints checked before a task changes hands.

    Applies to the tasks of ``case_id``, or to every task when it is NULL.
    Each constraint is optional but a rule carries at least one.
    """
    __tablename__ = "reassignment_rules"

    name = Column(String(255), nullable=False)
    case_id = Column(String(64), nullable=True, index=True)
    allowed_assignees = Column(JSON, nullable=True)
    blocked_assignees = Column(JSON, nullable=True)
    max_reassignments = Column(Integer, nullable=True)
    created_by = Column(String(64), nullable=True)

    def __repr__(self):
        return f"<ReassignmentRule {self.name} case={self.case_id}>"
