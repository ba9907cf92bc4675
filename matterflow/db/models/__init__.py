# matterflow/db/models/__init__.py
"""
Database models package
Imports all models for easy access
"""

# Import base classes and mixins
from matterflow.db.models.base import Base, TimestampMixin, UUIDMixin

# Import all enums
from matterflow.db.models.enums import (
    StageStatus, TaskStatus, TaskPriority, DependencyType, SLAScope,
    ApprovalOutcome, ApprovalDecision, ApprovalAction, CompletionRule,
    ParallelGroupStatus, AuditEntityType, NotificationEvent
)

# Workflow structure
from matterflow.db.models.stage import Stage
from matterflow.db.models.task import Task, TaskDependency

# Orchestration primitives
from matterflow.db.models.sla_rule import SLARule, SLAEscalation, DEFAULT_TARGET_KEY
from matterflow.db.models.approval import ApprovalChain, ApprovalStep
from matterflow.db.models.conditional_rule import ConditionalRule
from matterflow.db.models.parallel_group import ParallelGroup, ParallelGroupMember
from matterflow.db.models.time_entry import TimeEntry
from matterflow.db.models.reassignment import Reassignment, ReassignmentRule

# Trail and inbox
from matterflow.db.models.audit import AuditEntry
from matterflow.db.models.notification import Notification

__all__ = [
    # Base classes
    'Base', 'TimestampMixin', 'UUIDMixin',

    # Enums
    'StageStatus', 'TaskStatus', 'TaskPriority', 'DependencyType', 'SLAScope',
    'ApprovalOutcome', 'ApprovalDecision', 'ApprovalAction', 'CompletionRule',
    'ParallelGroupStatus', 'AuditEntityType', 'NotificationEvent',

    # Models
    'Stage', 'Task', 'TaskDependency', 'SLARule', 'SLAEscalation', 'DEFAULT_TARGET_KEY',
    'ApprovalChain', 'ApprovalStep', 'ConditionalRule',
    'ParallelGroup', 'ParallelGroupMember', 'TimeEntry', 'Reassignment', 'ReassignmentRule',
    'AuditEntry', 'Notification',
]
