# matterflow/engine/__init__.py
from typing import Optional

from matterflow.core import tracing as logger
from matterflow.core.locks import KeyedLock
from matterflow.core.timeutils import Clock, utc_now
from matterflow.engine.analytics import AnalyticsAggregator
from matterflow.engine.approvals import ApprovalChainEngine
from matterflow.engine.audit import AuditTrailRecorder
from matterflow.engine.conditions import ConditionalBranchEvaluator
from matterflow.engine.dependencies import TaskGraphManager
from matterflow.engine.lifecycle import TaskLifecycle
from matterflow.engine.notifications import NotificationDispatcher
from matterflow.engine.parallel import ParallelGroupCoordinator
from matterflow.engine.reassignment import ReassignmentService
from matterflow.engine.sla import SLAMonitor
from matterflow.engine.time_tracking import TimeTrackingRecorder
from matterflow.integrations.notification_relay import NotificationRelay


class WorkflowEngine:
    """All workflow components wired to one clock, audit trail and notifier.

    Components take the database session per call; the engine itself holds
    no session and can be shared across requests.
    """

    def __init__(
            self,
            clock: Clock = utc_now,
            relay: Optional[NotificationRelay] = None,
            locks: Optional[KeyedLock] = None,
            velocity_days: int = 7,
            overload_threshold: int = 5
    ):
        self.clock = clock
        self.relay = relay

        self.audit = AuditTrailRecorder(clock)
        self.notifications = NotificationDispatcher(self.audit, relay, clock)
        self.dependencies = TaskGraphManager(self.audit, locks, clock)
        self.reassignment = ReassignmentService(self.audit, self.notifications, clock)
        self.sla = SLAMonitor(self.audit, self.notifications, self.reassignment, clock)
        self.time_tracking = TimeTrackingRecorder(self.audit, clock)
        self.approvals = ApprovalChainEngine(self.audit, self.notifications, clock)
        self.parallel = ParallelGroupCoordinator(self.audit, clock)
        self.conditions = ConditionalBranchEvaluator(self.audit, clock)
        self.lifecycle = TaskLifecycle(
            self.audit,
            self.notifications,
            self.dependencies,
            self.time_tracking,
            self.parallel,
            self.conditions,
            clock,
        )
        self.analytics = AnalyticsAggregator(
            self.sla,
            clock,
            velocity_days=velocity_days,
            overload_threshold=overload_threshold,
        )

    @classmethod
    def from_settings(cls, settings, clock: Clock = utc_now) -> "WorkflowEngine":
        secret = settings.NOTIFICATION_WEBHOOK_SECRET
        relay = NotificationRelay(
            webhook_url=settings.NOTIFICATION_WEBHOOK_URL,
            secret=secret.get_secret_value() if secret else None,
            num_workers=settings.NOTIFICATION_RELAY_WORKERS,
            max_tries=settings.NOTIFICATION_RELAY_MAX_TRIES,
            queue_size=settings.NOTIFICATION_RELAY_QUEUE_SIZE,
        )
        return cls(
            clock=clock,
            relay=relay,
            velocity_days=settings.VELOCITY_WINDOW_DAYS,
            overload_threshold=settings.OVERLOADED_ASSIGNEE_THRESHOLD,
        )

    async def start(self):
        if self.relay is not None:
            await self.relay.start()
        logger.info("Workflow engine started", relay=self.relay is not None)

    async def stop(self):
        if self.relay is not None:
            await self.relay.stop()
        logger.info("Workflow engine stopped")


__all__ = [
    "WorkflowEngine",
    "AnalyticsAggregator",
    "ApprovalChainEngine",
    "AuditTrailRecorder",
    "ConditionalBranchEvaluator",
    "NotificationDispatcher",
    "ParallelGroupCoordinator",
    "ReassignmentService",
    "SLAMonitor",
    "TaskGraphManager",
    "TaskLifecycle",
    "TimeTrackingRecorder",
]
