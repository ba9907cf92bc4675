# matterflow/db/models/audit.py
"""Append-only audit trail model"""
from sqlalchemy import Column, String, JSON, Enum, DateTime, Index

from matterflow.core.timeutils import utc_now
from matterflow.db.models.base import Base, UUIDMixin
from matterflow.db.models.enums import AuditEntityType


class AuditEntry(Base, UUIDMixin):
    """One state-changing operation; rows are inserted, never updated"""
    __tablename__ = "audit_entries"

    entity_type = Column(Enum(AuditEntityType), nullable=False)
    entity_id = Column(String(64), nullable=False)
    case_id = Column(String(64), nullable=True, index=True)
    action = Column(String(64), nullable=False)
    actor_id = Column(String(64), nullable=False)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    def __repr__(self):
        return f"<AuditEntry {self.entity_type}:{self.entity_id} {self.action} by {self.actor_id}>"
