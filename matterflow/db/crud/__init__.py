"""Repository functions per entity; callers own the transaction"""
from . import stage
from . import task
from . import dependency
from . import sla_rule
from . import approval
from . import conditional_rule
from . import parallel_group
from . import time_entry
from . import audit
from . import notification
from . import escalation
from . import reassignment

__all__ = [
    "stage",
    "task",
    "dependency",
    "sla_rule",
    "approval",
    "conditional_rule",
    "parallel_group",
    "time_entry",
    "audit",
    "notification",
    "escalation",
    "reassignment",
]
