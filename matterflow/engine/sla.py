# matterflow/engine/sla.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.metrics import SLA_BREACHES
from matterflow.core.timeutils import Clock, ensure_utc, hours_between, utc_now
from matterflow.db import crud
from matterflow.db.crud.task import OPEN_STATUSES
from matterflow.db.models import (
    AuditEntityType, DEFAULT_TARGET_KEY, NotificationEvent, SLAEscalation, SLARule, SLAScope, Task, TaskPriority
)
from matterflow.engine.audit import SYSTEM_ACTOR
from matterflow.engine.base import EngineComponent, snapshot, transaction
from matterflow.exceptions import NotFoundError, WorkflowValidationError

# Per-priority defaults; warning_hours counts hours remaining before the deadline
DEFAULT_SLA_RULES = [
    {"name": "Urgent Priority", "scope": SLAScope.PRIORITY, "target_key": "urgent",
     "allowed_hours": 8, "warning_hours": 4, "auto_notify": True},
    {"name": "High Priority", "scope": SLAScope.PRIORITY, "target_key": "high",
     "allowed_hours": 48, "warning_hours": 24, "auto_notify": True},
    {"name": "Medium Priority", "scope": SLAScope.PRIORITY, "target_key": "medium",
     "allowed_hours": 120, "warning_hours": 72, "auto_notify": True},
    {"name": "Low Priority", "scope": SLAScope.PRIORITY, "target_key": "low",
     "allowed_hours": 336, "warning_hours": 168, "auto_notify": False},
]

RULE_FIELDS = (
    "name", "scope", "target_key", "allowed_hours", "warning_hours", "escalation_target", "auto_notify",
    "max_escalation_level", "escalation_interval_hours", "auto_reassign", "notify_assignee",
)

RuleIndex = Dict[Tuple[SLAScope, str], SLARule]


@dataclass
class SLAStatus:
    task_id: UUID
    case_id: str
    title: str
    priority: str
    assignee_id: Optional[str]
    status: str
    elapsed_hours: float
    clock_started_at: datetime
    allowed_hours: Optional[float] = None
    remaining_hours: Optional[float] = None
    breached: bool = False
    warning: bool = False
    rule: Optional[SLARule] = field(default=None, repr=False)
    task: Optional[Task] = field(default=None, repr=False)

    @property
    def overdue_hours(self) -> float:
        if self.allowed_hours is None:
            return 0.0
        return max(0.0, self.elapsed_hours - self.allowed_hours)


@dataclass
class SLABreachReport:
    breaches: List[SLAStatus]
    warnings: List[SLAStatus]
    checked: int
    generated_at: datetime


def resolve_rule(task: Task, index: RuleIndex) -> Optional[SLARule]:
    """Most specific rule wins: task, then stage, then priority, then default"""
    for key in (
        (SLAScope.TASK, str(task.uuid)),
        (SLAScope.STAGE, str(task.stage.uuid)),
        (SLAScope.PRIORITY, task.priority.value),
        (SLAScope.DEFAULT, DEFAULT_TARGET_KEY),
    ):
        rule = index.get(key)
        if rule is not None:
            return rule
    return None


class SLAMonitor(EngineComponent):
    """Deadline rules and breach computation.

    Status and breach queries are pure reads over current state and the
    injected clock. ``escalate_breaches`` is the background sweep that turns
    breaches into escalation levels and notifications, each level once.
    """

    def __init__(self, audit, notifier, reassignment=None, clock: Clock = utc_now):
        super().__init__(audit, clock)
        self.notifier = notifier
        self.reassignment = reassignment

    async def _validate_target(self, db: AsyncSession, scope: SLAScope, target_key: Optional[str]) -> str:
        if scope == SLAScope.DEFAULT:
            return DEFAULT_TARGET_KEY
        if not target_key:
            raise WorkflowValidationError(f"SLA rule with scope {scope.value} requires a target key")
        if scope == SLAScope.PRIORITY:
            try:
                return TaskPriority(target_key.lower()).value
            except ValueError:
                raise WorkflowValidationError(f"Unknown priority {target_key!r}")

        try:
            target_uuid = UUID(str(target_key))
        except ValueError:
            raise WorkflowValidationError(f"SLA rule target {target_key!r} is not a valid id")
        if scope == SLAScope.TASK:
            if await crud.task.get_task_by_uuid(db, target_uuid) is None:
                raise NotFoundError("Task", target_uuid)
        elif await crud.stage.get_stage_by_uuid(db, target_uuid) is None:
            raise NotFoundError("Stage", target_uuid)
        return str(target_uuid)

    async def set_sla_rule(
            self,
            db: AsyncSession,
            scope: SLAScope,
            allowed_hours: float,
            target_key: Optional[str] = None,
            warning_hours: Optional[float] = None,
            escalation_target: Optional[str] = None,
            name: Optional[str] = None,
            auto_notify: bool = True,
            max_escalation_level: int = 1,
            escalation_interval_hours: Optional[float] = None,
            auto_reassign: bool = False,
            notify_assignee: bool = False,
            actor_id: Optional[str] = None
    ) -> SLARule:
        """Create or replace the rule for (scope, target key)"""
        if allowed_hours <= 0:
            raise WorkflowValidationError("allowed_hours must be positive")
        if warning_hours is not None and not (0 <= warning_hours < allowed_hours):
            raise WorkflowValidationError("warning_hours must be between 0 and allowed_hours")
        if max_escalation_level < 1:
            raise WorkflowValidationError("max_escalation_level must be at least 1")
        if escalation_interval_hours is not None and escalation_interval_hours <= 0:
            raise WorkflowValidationError("escalation_interval_hours must be positive")
        if auto_reassign and not escalation_target:
            raise WorkflowValidationError("auto_reassign needs an escalation target to reassign to")

        async with transaction(db, integrity_message="SLA rule for this key already exists"):
            key = await self._validate_target(db, scope, target_key)
            rule = await crud.sla_rule.get_rule_by_key(db, scope, key)
            before = snapshot(rule, RULE_FIELDS) if rule else None
            action = "updated" if rule else "created"

            if rule is None:
                rule = SLARule(scope=scope, target_key=key)
                db.add(rule)

            rule.name = name or rule.name or f"{scope.value}:{key}"
            rule.allowed_hours = allowed_hours
            rule.warning_hours = warning_hours
            rule.escalation_target = escalation_target
            rule.auto_notify = auto_notify
            rule.max_escalation_level = max_escalation_level
            rule.escalation_interval_hours = escalation_interval_hours
            rule.auto_reassign = auto_reassign
            rule.notify_assignee = notify_assignee
            await db.flush()

            self.audit.record(
                db, AuditEntityType.SLA_RULE, rule.uuid, action,
                actor_id=actor_id,
                before=before,
                after=snapshot(rule, RULE_FIELDS),
            )

        logger.info("SLA rule saved", scope=scope.value, target_key=key, allowed_hours=allowed_hours)
        return rule

    async def seed_default_rules(self, db: AsyncSession) -> int:
        """Create any missing per-priority default rules"""
        created = 0
        async with transaction(db):
            for defaults in DEFAULT_SLA_RULES:
                if await crud.sla_rule.get_rule_by_key(db, defaults["scope"], defaults["target_key"]):
                    continue
                rule = SLARule(**defaults)
                db.add(rule)
                await db.flush()
                self.audit.record(
                    db, AuditEntityType.SLA_RULE, rule.uuid, "seeded",
                    actor_id=SYSTEM_ACTOR,
                    after=snapshot(rule, RULE_FIELDS),
                )
                created += 1
        if created:
            logger.info("Default SLA rules seeded", count=created)
        return created

    async def list_sla_rules(self, db: AsyncSession) -> List[SLARule]:
        return await crud.sla_rule.list_rules(db)

    def compute_status(self, task: Task, rule: Optional[SLARule], now: datetime) -> SLAStatus:
        """The clock starts at task creation; a timer can only open on an existing task"""
        clock_start = task.created_at
        if task.status.is_terminal:
            end = task.completed_at or task.cancelled_at or now
        else:
            end = now
        elapsed = max(0.0, hours_between(clock_start, end))

        status = SLAStatus(
            task_id=task.uuid,
            case_id=task.case_id,
            title=task.title,
            priority=task.priority.value,
            assignee_id=task.assignee_id,
            status="no_rule",
            elapsed_hours=round(elapsed, 4),
            clock_started_at=ensure_utc(clock_start),
            rule=rule,
            task=task,
        )
        if rule is None:
            return status

        remaining = rule.allowed_hours - elapsed
        status.allowed_hours = rule.allowed_hours
        status.remaining_hours = round(remaining, 4)
        status.breached = elapsed > rule.allowed_hours
        status.warning = (
            not status.breached
            and rule.warning_hours is not None
            and remaining <= rule.warning_hours
        )
        status.status = "breached" if status.breached else ("warning" if status.warning else "ok")
        return status

    async def get_task_sla_status(self, db: AsyncSession, task_id: UUID) -> SLAStatus:
        task = await crud.task.get_task_by_uuid(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        index = await crud.sla_rule.load_rule_index(db)
        return self.compute_status(task, resolve_rule(task, index), self.clock())

    async def statuses(self, db: AsyncSession, tasks: List[Task]) -> List[SLAStatus]:
        """SLA status for many tasks with one rule query"""
        index = await crud.sla_rule.load_rule_index(db)
        now = self.clock()
        return [
            self.compute_status(task, resolve_rule(task, index), now)
            for task in tasks
        ]

    async def check_sla_breaches(self, db: AsyncSession, case_id: Optional[str] = None) -> SLABreachReport:
        """Breaches of open tasks, most overdue first; never mutates state"""
        tasks = await crud.task.list_tasks(db, case_id=case_id, statuses=OPEN_STATUSES)
        statuses = await self.statuses(db, tasks)

        breaches = sorted((s for s in statuses if s.breached), key=lambda s: s.overdue_hours, reverse=True)
        warnings = sorted((s for s in statuses if s.warning), key=lambda s: s.remaining_hours)
        return SLABreachReport(breaches=breaches, warnings=warnings, checked=len(statuses), generated_at=self.clock())

    def due_level(self, rule: SLARule, overdue_hours: float) -> int:
        """Level a breach has earned: one at breach, one more per interval overdue"""
        interval = rule.escalation_interval_hours or rule.allowed_hours
        return min(rule.max_escalation_level, 1 + int(overdue_hours // interval))

    async def get_task_escalations(self, db: AsyncSession, task_id: UUID) -> List[SLAEscalation]:
        task = await crud.task.get_task_by_uuid(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return await crud.escalation.list_task_escalations(db, task)

    async def escalate_breaches(self, db: AsyncSession) -> Dict[str, int]:
        """Sweep: escalate breaches one level at a time and warn assignees of new warnings.

        A breached task is escalated again each time it earns a higher level,
        up to the rule's ``max_escalation_level``; a task never skips a level.
        """
        report = await self.check_sla_breaches(db)
        SLA_BREACHES.set(len(report.breaches))
        sent = {"breach_notifications": 0, "warning_notifications": 0, "reassignments": 0}

        async with transaction(db, integrity_message="Escalation level already recorded by another sweep"):
            breaches = [item for item in report.breaches if item.rule.auto_notify]
            levels = await crud.escalation.current_levels(db, [item.task.id for item in breaches])
            for item in breaches:
                level = levels.get(item.task.id, 0) + 1
                if level > self.due_level(item.rule, item.overdue_hours):
                    continue
                target = item.rule.escalation_target or item.assignee_id
                if not target:
                    continue
                reassigned = await self._escalate(db, item, level, target)
                sent["breach_notifications"] += 1
                sent["reassignments"] += int(reassigned)

            for item in report.warnings:
                if not item.rule.auto_notify or not item.assignee_id:
                    continue
                if await crud.notification.exists_for_entity(
                        db, NotificationEvent.SLA_WARNING, str(item.task_id), item.assignee_id):
                    continue
                self.notifier.notify(
                    db, item.assignee_id, NotificationEvent.SLA_WARNING,
                    {"task_id": item.task_id, "title": item.title, "remaining_hours": round(item.remaining_hours, 2)},
                    case_id=item.case_id, entity_id=item.task_id,
                )
                self.audit.record(
                    db, AuditEntityType.TASK, item.task_id, "sla_warning_sent",
                    actor_id=SYSTEM_ACTOR,
                    case_id=item.case_id,
                    after={"notified": item.assignee_id, "remaining_hours": round(item.remaining_hours, 2)},
                )
                sent["warning_notifications"] += 1

        if any(sent.values()):
            logger.info("SLA sweep escalated", breaches=len(report.breaches), **sent)
        return sent

    async def _escalate(self, db: AsyncSession, item: SLAStatus, level: int, target: str) -> bool:
        rule, task = item.rule, item.task
        overdue = round(item.overdue_hours, 2)
        original_assignee = task.assignee_id
        payload = {"task_id": item.task_id, "title": item.title, "level": level, "overdue_hours": overdue,
                   "allowed_hours": item.allowed_hours}

        self.notifier.notify(db, target, NotificationEvent.SLA_BREACH, payload,
                             case_id=item.case_id, entity_id=item.task_id)
        if rule.notify_assignee and original_assignee and original_assignee != target:
            self.notifier.notify(db, original_assignee, NotificationEvent.SLA_BREACH,
                                 {**payload, "escalated_to": target},
                                 case_id=item.case_id, entity_id=item.task_id)

        reassigned = bool(
            rule.auto_reassign and self.reassignment is not None
            and rule.escalation_target and original_assignee != rule.escalation_target
        )
        if reassigned:
            self.reassignment.hand_over(db, task, rule.escalation_target, SYSTEM_ACTOR,
                                        reason=f"SLA escalation level {level}")

        db.add(SLAEscalation(
            task=task,
            rule_id=rule.id,
            level=level,
            escalated_to=target,
            overdue_hours=overdue,
            reassigned=reassigned,
            escalated_at=self.clock(),
        ))
        self.audit.record(
            db, AuditEntityType.TASK, item.task_id, "sla_escalated",
            actor_id=SYSTEM_ACTOR,
            case_id=item.case_id,
            after={"level": level, "escalated_to": target, "overdue_hours": overdue, "reassigned": reassigned},
        )
        return reassigned
