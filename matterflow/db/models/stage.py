# matterflow/db/models/stage.py
"""Workflow stage model"""
from sqlalchemy import Column, Integer, String, Text, Float, Index, Enum, DateTime

from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin
from matterflow.db.models.enums import StageStatus


class Stage(Base, UUIDMixin, TimestampMixin):
    """An ordered phase of a case; owns tasks, parallel groups and branching rules.

    Progress and status are rewritten whenever one of its tasks settles; the
    version column turns a write based on a stale read into a conflict.
    """
    __tablename__ = "stages"

    case_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    status = Column(Enum(StageStatus), nullable=False, default=StageStatus.PENDING, index=True)
    progress = Column(Float, nullable=False, default=0.0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(64), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('idx_stage_case_order', 'case_id', 'order_index'),
    )

    def __repr__(self):
        return f"<Stage name={self.name} case={self.case_id} status={self.status}>"
