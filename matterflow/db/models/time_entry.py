# matterflow/db/models/time_entry.py
"""Time tracking model"""
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, Index, DateTime, text
from sqlalchemy.orm import relationship

from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin


class TimeEntry(Base, UUIDMixin, TimestampMixin):
    """A timer for one (task, user) pair; open while ``stopped_at`` is NULL"""
    __tablename__ = "time_entries"

    user_id = Column(String(64), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    stopped_at = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    billable = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    task = relationship("Task", lazy="joined")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # At most one open timer per (task, user)
        Index(
            'uq_time_entry_open', 'task_id', 'user_id',
            unique=True,
            sqlite_where=text("stopped_at IS NULL"),
            postgresql_where=text("stopped_at IS NULL"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.stopped_at is None
