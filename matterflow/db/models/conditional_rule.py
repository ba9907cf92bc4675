# matterflow/db/models/conditional_rule.py
"""Stage branching rule model"""
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin


class ConditionalRule(Base, UUIDMixin, TimestampMixin):
    """When ``expression`` holds for the completion context of ``stage``, move to ``target_stage``"""
    __tablename__ = "conditional_rules"

    expression = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, default=100)
    description = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)

    stage_id = Column(Integer, ForeignKey("stages.id", ondelete="CASCADE"), nullable=False)
    target_stage_id = Column(Integer, ForeignKey("stages.id", ondelete="CASCADE"), nullable=False)

    stage = relationship("Stage", foreign_keys=[stage_id], lazy="joined")
    target_stage = relationship("Stage", foreign_keys=[target_stage_id], lazy="joined")

    __table_args__ = (
        Index('idx_conditional_rule_stage_priority', 'stage_id', 'priority'),
    )
