"""API v1 endpoints"""
from fastapi import APIRouter
from .endpoints import (
    stages, tasks, sla, approvals, conditions, time_tracking, notifications, audit,
    parallel_groups, reassignment, analytics
)

api_router = APIRouter()
api_router.include_router(stages.router, prefix="/stages", tags=["stages"])
api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
api_router.include_router(sla.router, prefix="/sla", tags=["sla"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
api_router.include_router(conditions.router, prefix="/conditions", tags=["conditions"])
api_router.include_router(time_tracking.router, prefix="/time-tracking", tags=["time-tracking"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
api_router.include_router(parallel_groups.router, prefix="/parallel-groups", tags=["parallel-groups"])
api_router.include_router(reassignment.router, prefix="/reassignment", tags=["reassignment"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
