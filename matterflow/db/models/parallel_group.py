# matterflow/db/models/parallel_group.py
"""Parallel task group models"""
from sqlalchemy import Column, Integer, String, Float, ForeignKey, Enum, DateTime
from sqlalchemy.orm import relationship

from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin
from matterflow.db.models.enums import CompletionRule, ParallelGroupStatus


class ParallelGroup(Base, UUIDMixin, TimestampMixin):
    """Tasks of one stage judged together by an all/any/percentage rule"""
    __tablename__ = "parallel_groups"

    name = Column(String(255), nullable=True)
    completion_rule = Column(Enum(CompletionRule), nullable=False)
    threshold = Column(Float, nullable=True)
    status = Column(Enum(ParallelGroupStatus), nullable=False, default=ParallelGroupStatus.PENDING)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(64), nullable=True)
    version = Column(Integer, nullable=False)

    stage_id = Column(Integer, ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True)
    stage = relationship("Stage", lazy="joined")
    members = relationship("ParallelGroupMember", lazy="selectin", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    @property
    def tasks(self):
        return [member.task for member in self.members]


class ParallelGroupMember(Base):
    __tablename__ = "parallel_group_members"

    group_id = Column(Integer, ForeignKey("parallel_groups.id", ondelete="CASCADE"), primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)

    task = relationship("Task", lazy="joined")
