# matterflow/db/models/approval.py
"""Sequential approval chain models"""
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, Enum, DateTime, UniqueConstraint, text
from sqlalchemy.orm import relationship

from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin
from matterflow.db.models.enums import ApprovalOutcome, ApprovalDecision


class ApprovalChain(Base, UUIDMixin, TimestampMixin):
    """Ordered approvers for one task; ``current_index`` points at the approver whose turn it is"""
    __tablename__ = "approval_chains"

    case_id = Column(String(64), nullable=False, index=True)
    current_index = Column(Integer, nullable=False, default=0)
    outcome = Column(Enum(ApprovalOutcome), nullable=False, default=ApprovalOutcome.PENDING)
    created_by = Column(String(64), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    task = relationship("Task", lazy="joined")
    steps = relationship(
        "ApprovalStep",
        lazy="selectin",
        order_by="ApprovalStep.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # One pending chain per task
        Index(
            'uq_approval_chain_pending', 'task_id',
            unique=True,
            sqlite_where=text("outcome = 'PENDING'"),
            postgresql_where=text("outcome = 'PENDING'"),
        ),
    )

    @property
    def current_step(self):
        if self.outcome != ApprovalOutcome.PENDING or self.current_index >= len(self.steps):
            return None
        return self.steps[self.current_index]

    def __repr__(self):
        return f"<ApprovalChain task={self.task_id} outcome={self.outcome} at={self.current_index}>"


class ApprovalStep(Base):
    __tablename__ = "approval_steps"

    id = Column(Integer, primary_key=True)
    position = Column(Integer, nullable=False)
    approver_id = Column(String(64), nullable=False)
    decision = Column(Enum(ApprovalDecision), nullable=False, default=ApprovalDecision.PENDING)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    comments = Column(Text, nullable=True)

    chain_id = Column(Integer, ForeignKey("approval_chains.id", ondelete="CASCADE"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint('chain_id', 'position', name='uq_approval_step_position'),
    )
