# matterflow/api/v1/schemas/time_tracking.py
from pydantic import BaseModel, Field, UUID4
from typing import Optional, List
from datetime import datetime


class TimerStart(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    billable: bool = True


class TimerStop(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None


class TimeEntryResponse(BaseModel):
    id: UUID4
    task_id: UUID4
    user_id: str
    started_at: datetime
    stopped_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    description: Optional[str] = None
    billable: bool

    @classmethod
    def from_model(cls, entry):
        return cls(
            id=entry.uuid,
            task_id=entry.task.uuid,
            user_id=entry.user_id,
            started_at=entry.started_at,
            stopped_at=entry.stopped_at,
            duration_minutes=entry.duration_minutes,
            description=entry.description,
            billable=entry.billable,
        )


class TimeSummaryResponse(BaseModel):
    task_id: UUID4
    entry_count: int
    open_entries: int
    total_minutes: int
    billable_minutes: int


class TaskTimeResponse(BaseModel):
    entries: List[TimeEntryResponse]
    summary: TimeSummaryResponse
