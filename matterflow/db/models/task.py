# matterflow/db/models/task.py
"""Task and task dependency models"""
from sqlalchemy import (
    Column, Integer, String, Text, ForeignKey, Index, Enum, DateTime, UniqueConstraint
)
from sqlalchemy.orm import relationship

from matterflow.core.timeutils import utc_now
from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin
from matterflow.db.models.enums import TaskStatus, TaskPriority, DependencyType


class Task(Base, UUIDMixin, TimestampMixin):
    """Unit of work inside a stage.

    ``version`` is maintained by SQLAlchemy on every UPDATE; a flush against a
    row changed by someone else raises StaleDataError.
    """
    __tablename__ = "tasks"

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(TaskStatus), nullable=False, default=TaskStatus.PENDING, index=True)
    priority = Column(Enum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    # External identifiers
    case_id = Column(String(64), nullable=False, index=True)
    assignee_id = Column(String(64), nullable=True)
    created_by = Column(String(64), nullable=True)

    stage_id = Column(Integer, ForeignKey("stages.id", ondelete="CASCADE"), nullable=False)
    stage = relationship("Stage", lazy="joined")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('idx_task_stage_status', 'stage_id', 'status'),
        Index('idx_task_assignee_status', 'assignee_id', 'status'),
        Index('idx_task_case_status', 'case_id', 'status'),
    )

    @property
    def owner_id(self):
        return self.assignee_id or self.created_by

    def __repr__(self):
        return f"<Task title={self.title} status={self.status}>"


class TaskDependency(Base):
    """Edge: ``task`` depends on ``depends_on``"""
    __tablename__ = "task_dependencies"

    id = Column(Integer, primary_key=True)
    case_id = Column(String(64), nullable=False, index=True)
    dependency_type = Column(Enum(DependencyType), nullable=False, default=DependencyType.BLOCKING)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    depends_on_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)

    task = relationship("Task", foreign_keys=[task_id], lazy="joined")
    depends_on = relationship("Task", foreign_keys=[depends_on_id], lazy="joined")

    __table_args__ = (
        UniqueConstraint('task_id', 'depends_on_id', name='uq_task_dependency_edge'),
    )

    def __repr__(self):
        return f"<TaskDependency {self.task_id} -> {self.depends_on_id} ({self.dependency_type})>"
