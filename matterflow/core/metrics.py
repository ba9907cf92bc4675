# matterflow/core/metrics.py
"""Prometheus metrics for workflow activity"""
from prometheus_client import Counter, Gauge

AUDIT_ENTRIES = Counter(
    'matterflow_audit_entries_total',
    'Audit entries committed',
    ['entity_type', 'action']
)

TASK_TRANSITIONS = Counter(
    'matterflow_task_transitions_total',
    'Task status transitions',
    ['status']
)

NOTIFICATIONS_CREATED = Counter(
    'matterflow_notifications_total',
    'Notifications written to user inboxes',
    ['event_type']
)

NOTIFICATIONS_RELAYED = Counter(
    'matterflow_notifications_relayed_total',
    'Notification events handed to the delivery service',
    ['outcome']
)

NOTIFICATIONS_DROPPED = Counter(
    'matterflow_notifications_dropped_total',
    'Notification events dropped because the relay queue was full'
)

SLA_BREACHES = Gauge(
    'matterflow_sla_breaches',
    'Open tasks past their SLA at the last sweep'
)

TRANSACTION_ROLLBACKS = Counter(
    'matterflow_transaction_rollbacks_total',
    'Engine transactions rolled back',
    ['error_type']
)
