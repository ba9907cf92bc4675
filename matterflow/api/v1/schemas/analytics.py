# matterflow/api/v1/schemas/analytics.py
"""Analytics responses; built straight from the aggregator's dataclasses"""
from pydantic import BaseModel, ConfigDict, UUID4
from typing import Optional, List, Dict
from datetime import date, datetime


class AnalyticsModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class StageProgressResponse(AnalyticsModel):
    stage_id: UUID4
    name: str
    status: str
    order_index: int
    progress: float
    task_count: int


class DailyCountResponse(AnalyticsModel):
    day: date
    completed: int
    created: int = 0


class WorkflowMetricsResponse(AnalyticsModel):
    case_id: Optional[str] = None
    total_tasks: int
    completed_tasks: int
    cancelled_tasks: int
    open_tasks: int
    overdue_tasks: int
    completion_rate: float
    average_cycle_hours: float
    sla_compliance: float
    sla_breaches: int
    tasks_by_status: Dict[str, int]
    tasks_by_priority: Dict[str, int]
    tasks_by_assignee: Dict[str, int]
    stage_progress: List[StageProgressResponse]
    timeline: List[DailyCountResponse]
    generated_at: datetime


class VelocityResponse(AnalyticsModel):
    case_id: Optional[str] = None
    days: int
    completed: int
    per_day: float
    daily: List[DailyCountResponse]


class StageBottleneckResponse(AnalyticsModel):
    stage_id: UUID4
    name: str
    average_dwell_hours: float
    breach_rate: float
    completed_tasks: int
    open_tasks: int


class BlockedTaskResponse(AnalyticsModel):
    task_id: UUID4
    title: str
    blocked_by: List[UUID4]
    unstartable: bool = False


class AssigneeLoadResponse(AnalyticsModel):
    assignee_id: str
    open_tasks: int


class SlowTaskResponse(AnalyticsModel):
    task_id: UUID4
    title: str
    assignee_id: Optional[str] = None
    age_hours: float


class BottlenecksResponse(AnalyticsModel):
    case_id: Optional[str] = None
    slowest_stages: List[StageBottleneckResponse]
    blocked_tasks: List[BlockedTaskResponse]
    overloaded_assignees: List[AssigneeLoadResponse]
    slowest_open_tasks: List[SlowTaskResponse]
