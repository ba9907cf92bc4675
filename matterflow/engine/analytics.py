# matterflow/engine/analytics.py
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core.timeutils import Clock, ensure_utc, hours_between, utc_now
from matterflow.db import crud
from matterflow.db.models import DependencyType, TaskStatus

DEFAULT_VELOCITY_DAYS = 7
TIMELINE_DAYS = 30
SLOWEST_LIMIT = 5


@dataclass
class StageProgress:
    stage_id: UUID
    name: str
    status: str
    order_index: int
    progress: float
    task_count: int


@dataclass
class DailyCount:
    day: date
    completed: int
    created: int = 0


@dataclass
class WorkflowMetrics:
    case_id: Optional[str]
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
    stage_progress: List[StageProgress]
    timeline: List[DailyCount]
    generated_at: datetime


@dataclass
class Velocity:
    case_id: Optional[str]
    days: int
    completed: int
    per_day: float
    daily: List[DailyCount]


@dataclass
class StageBottleneck:
    stage_id: UUID
    name: str
    average_dwell_hours: float
    breach_rate: float
    completed_tasks: int
    open_tasks: int


@dataclass
class BlockedTask:
    task_id: UUID
    title: str
    blocked_by: List[UUID]
    unstartable: bool = False


@dataclass
class AssigneeLoad:
    assignee_id: str
    open_tasks: int


@dataclass
class SlowTask:
    task_id: UUID
    title: str
    assignee_id: Optional[str]
    age_hours: float


@dataclass
class Bottlenecks:
    case_id: Optional[str]
    slowest_stages: List[StageBottleneck] = field(default_factory=list)
    blocked_tasks: List[BlockedTask] = field(default_factory=list)
    overloaded_assignees: List[AssigneeLoad] = field(default_factory=list)
    slowest_open_tasks: List[SlowTask] = field(default_factory=list)


class AnalyticsAggregator:
    """Read-only rollups over tasks, stages, dependencies and SLA status"""

    def __init__(self, sla, clock: Clock = utc_now, velocity_days: int = DEFAULT_VELOCITY_DAYS,
                 overload_threshold: int = 5):
        self.sla = sla
        self.clock = clock
        self.velocity_days = velocity_days
        self.overload_threshold = overload_threshold

    def _daily(self, tasks, days: int, now: datetime) -> List[DailyCount]:
        today = now.date()
        window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
        completed = Counter(ensure_utc(t.completed_at).date() for t in tasks
                            if t.status == TaskStatus.COMPLETED and t.completed_at)
        created = Counter(ensure_utc(t.created_at).date() for t in tasks if t.created_at)
        return [DailyCount(day=day, completed=completed.get(day, 0), created=created.get(day, 0)) for day in window]

    async def get_workflow_metrics(self, db: AsyncSession, case_id: Optional[str] = None) -> WorkflowMetrics:
        now = self.clock()
        tasks = await crud.task.list_tasks(db, case_id=case_id)
        stages = await crud.stage.list_stages(db, case_id=case_id)

        total = len(tasks)
        completed = [t for t in tasks if t.status == TaskStatus.COMPLETED]
        cancelled = sum(1 for t in tasks if t.status == TaskStatus.CANCELLED)
        open_tasks = [t for t in tasks if not t.status.is_terminal]
        overdue = sum(1 for t in open_tasks if t.due_date and ensure_utc(t.due_date) < now)

        cycle_hours = [hours_between(t.created_at, t.completed_at) for t in completed if t.completed_at]
        average_cycle = round(sum(cycle_hours) / len(cycle_hours), 2) if cycle_hours else 0.0

        statuses = [s for s in await self.sla.statuses(db, tasks) if s.rule is not None]
        breaches = sum(1 for s in statuses if s.breached)
        compliance = round((len(statuses) - breaches) * 100.0 / len(statuses), 2) if statuses else 100.0

        per_stage = Counter(t.stage_id for t in tasks)
        return WorkflowMetrics(
            case_id=case_id,
            total_tasks=total,
            completed_tasks=len(completed),
            cancelled_tasks=cancelled,
            open_tasks=len(open_tasks),
            overdue_tasks=overdue,
            completion_rate=round(len(completed) * 100.0 / total, 2) if total else 0.0,
            average_cycle_hours=average_cycle,
            sla_compliance=compliance,
            sla_breaches=breaches,
            tasks_by_status=dict(Counter(t.status.value for t in tasks)),
            tasks_by_priority=dict(Counter(t.priority.value for t in tasks)),
            tasks_by_assignee=dict(Counter(t.assignee_id or "unassigned" for t in tasks)),
            stage_progress=[
                StageProgress(
                    stage_id=s.uuid,
                    name=s.name,
                    status=s.status.value,
                    order_index=s.order_index,
                    progress=s.progress,
                    task_count=per_stage.get(s.id, 0),
                )
                for s in stages
            ],
            timeline=self._daily(tasks, TIMELINE_DAYS, now),
            generated_at=now,
        )

    async def get_task_velocity(self, db: AsyncSession, case_id: Optional[str] = None,
                                days: Optional[int] = None) -> Velocity:
        """Completions per day over the trailing window, today included"""
        days = days or self.velocity_days
        now = self.clock()
        tasks = await crud.task.list_tasks(db, case_id=case_id, statuses=[TaskStatus.COMPLETED])
        daily = self._daily(tasks, days, now)
        completed = sum(day.completed for day in daily)
        return Velocity(
            case_id=case_id,
            days=days,
            completed=completed,
            per_day=round(completed / days, 2),
            daily=daily,
        )

    async def get_bottlenecks(self, db: AsyncSession, case_id: Optional[str] = None) -> Bottlenecks:
        now = self.clock()
        tasks = await crud.task.list_tasks(db, case_id=case_id)
        stages = await crud.stage.list_stages(db, case_id=case_id)
        statuses = {s.task_id: s for s in await self.sla.statuses(db, tasks)}
        result = Bottlenecks(case_id=case_id)

        by_stage = defaultdict(list)
        for task in tasks:
            by_stage[task.stage_id].append(task)

        for stage in stages:
            members = by_stage.get(stage.id, [])
            done = [t for t in members if t.status == TaskStatus.COMPLETED and t.completed_at]
            waiting = [t for t in members if not t.status.is_terminal]
            # open tasks count with their age so far, so a stuck stage still ranks
            dwell = [hours_between(t.created_at, t.completed_at) for t in done]
            dwell += [hours_between(t.created_at, now) for t in waiting]
            ruled = [statuses[t.uuid] for t in members if statuses[t.uuid].rule is not None]
            breach_rate = (sum(1 for s in ruled if s.breached) * 100.0 / len(ruled)) if ruled else 0.0
            result.slowest_stages.append(StageBottleneck(
                stage_id=stage.uuid,
                name=stage.name,
                average_dwell_hours=round(sum(dwell) / len(dwell), 2) if dwell else 0.0,
                breach_rate=round(breach_rate, 2),
                completed_tasks=len(done),
                open_tasks=len(waiting),
            ))
        result.slowest_stages.sort(key=lambda s: (s.average_dwell_hours, s.breach_rate), reverse=True)
        result.slowest_stages = result.slowest_stages[:SLOWEST_LIMIT]

        blockers = defaultdict(list)
        for edge in await crud.dependency.list_edges(db, case_id=case_id):
            if edge.dependency_type == DependencyType.BLOCKING:
                blockers[edge.task_id].append(edge.depends_on)

        open_tasks = [t for t in tasks if not t.status.is_terminal]
        for task in open_tasks:
            pending = [dep for dep in blockers.get(task.id, []) if dep.status != TaskStatus.COMPLETED]
            if pending:
                result.blocked_tasks.append(BlockedTask(
                    task_id=task.uuid,
                    title=task.title,
                    blocked_by=[dep.uuid for dep in pending],
                    unstartable=any(dep.status == TaskStatus.CANCELLED for dep in pending),
                ))

        load = Counter(t.assignee_id for t in open_tasks if t.assignee_id)
        result.overloaded_assignees = sorted(
            (AssigneeLoad(assignee_id=user, open_tasks=count)
             for user, count in load.items() if count > self.overload_threshold),
            key=lambda a: a.open_tasks,
            reverse=True,
        )

        ages = sorted(open_tasks, key=lambda t: ensure_utc(t.created_at))[:SLOWEST_LIMIT]
        result.slowest_open_tasks = [
            SlowTask(task_id=t.uuid, title=t.title, assignee_id=t.assignee_id,
                     age_hours=round(hours_between(t.created_at, now), 2))
            for t in ages
        ]
        return result
