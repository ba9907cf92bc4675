# matterflow/db/models/enums.py
import enum


class StageStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DependencyType(str, enum.Enum):
    """Blocking edges gate the start of a task, informational ones never do"""
    BLOCKING = "blocking"
    INFORMATIONAL = "informational"


class SLAScope(str, enum.Enum):
    """SLA rule key kinds, most specific first"""
    TASK = "task"
    STAGE = "stage"
    PRIORITY = "priority"
    DEFAULT = "default"


class ApprovalOutcome(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class CompletionRule(str, enum.Enum):
    ALL = "all"
    ANY = "any"
    PERCENTAGE = "percentage"


class ParallelGroupStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class AuditEntityType(str, enum.Enum):
    TASK = "task"
    STAGE = "stage"
    SLA_RULE = "sla_rule"
    APPROVAL_CHAIN = "approval_chain"
    CONDITIONAL_RULE = "conditional_rule"
    PARALLEL_GROUP = "parallel_group"
    TIME_ENTRY = "time_entry"
    NOTIFICATION = "notification"
    REASSIGNMENT_RULE = "reassignment_rule"


class NotificationEvent(str, enum.Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_UNASSIGNED = "task_unassigned"
    APPROVAL_REQUIRED = "approval_required"
    APPROVAL_COMPLETED = "approval_completed"
    APPROVAL_REJECTED = "approval_rejected"
    SLA_WARNING = "sla_warning"
    SLA_BREACH = "sla_breach"
    STAGE_COMPLETED = "stage_completed"
