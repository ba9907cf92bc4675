# matterflow/engine/time_tracking.py
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.timeutils import hours_between
from matterflow.db import crud
from matterflow.db.models import AuditEntityType, Task, TimeEntry
from matterflow.engine.base import EngineComponent, transaction
from matterflow.exceptions import NotFoundError, WorkflowValidationError


@dataclass
class TimeSummary:
    task_id: UUID
    entry_count: int
    open_entries: int
    total_minutes: int
    billable_minutes: int


def duration_minutes(started_at: datetime, stopped_at: datetime) -> int:
    """Whole minutes, rounded"""
    return max(0, round(hours_between(started_at, stopped_at) * 60))


class TimeTrackingRecorder(EngineComponent):
    """Per (task, user) timers.

    The open-entry pre-check gives a readable error; the partial unique index
    on open entries is what actually stops two concurrent starts.
    """

    async def _get_task(self, db: AsyncSession, task_id: UUID) -> Task:
        task = await crud.task.get_task_by_uuid(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def start_time_tracking(
            self,
            db: AsyncSession,
            task_id: UUID,
            user_id: str,
            description: Optional[str] = None,
            billable: bool = True
    ) -> TimeEntry:
        async with transaction(db, integrity_message="Time tracking already running for this task and user"):
            task = await self._get_task(db, task_id)
            if task.status.is_terminal:
                raise WorkflowValidationError(f"Cannot track time on a {task.status.value} task")
            if await crud.time_entry.get_open_entry(db, task, user_id) is not None:
                raise WorkflowValidationError("Time tracking already running for this task and user")

            entry = TimeEntry(
                task=task,
                user_id=user_id,
                started_at=self.clock(),
                description=description,
                billable=billable,
            )
            db.add(entry)
            await db.flush()

            self.audit.record(
                db, AuditEntityType.TIME_ENTRY, entry.uuid, "started",
                actor_id=user_id,
                case_id=task.case_id,
                after={"task_id": task.uuid, "started_at": entry.started_at, "billable": billable},
            )

        logger.info("Time tracking started", task_id=str(task_id), user_id=user_id)
        return entry

    async def stop_time_tracking(
            self,
            db: AsyncSession,
            task_id: UUID,
            user_id: str,
            description: Optional[str] = None
    ) -> TimeEntry:
        async with transaction(db):
            task = await self._get_task(db, task_id)
            entry = await crud.time_entry.get_open_entry(db, task, user_id)
            if entry is None:
                raise WorkflowValidationError("No running time entry for this task and user")

            self._close(entry, self.clock(), description)
            self.audit.record(
                db, AuditEntityType.TIME_ENTRY, entry.uuid, "stopped",
                actor_id=user_id,
                case_id=task.case_id,
                before={"stopped_at": None},
                after={"stopped_at": entry.stopped_at, "duration_minutes": entry.duration_minutes},
            )

        logger.info("Time tracking stopped", task_id=str(task_id), user_id=user_id,
                    minutes=entry.duration_minutes)
        return entry

    def _close(self, entry: TimeEntry, now: datetime, description: Optional[str] = None) -> None:
        entry.stopped_at = now
        entry.duration_minutes = duration_minutes(entry.started_at, now)
        if description:
            entry.description = description

    async def close_open_entries(self, db: AsyncSession, task: Task, now: datetime) -> List[TimeEntry]:
        """Stop every running timer of a task that is leaving the open states.

        Joins the caller's transaction; the caller's audit entry covers it.
        """
        entries = await crud.time_entry.list_open_entries(db, task)
        for entry in entries:
            self._close(entry, now)
        if entries:
            logger.debug("Closed running timers", task_id=str(task.uuid), count=len(entries))
        return entries

    async def get_time_entries(self, db: AsyncSession, task_id: UUID) -> List[TimeEntry]:
        task = await self._get_task(db, task_id)
        return await crud.time_entry.list_task_entries(db, task)

    async def get_task_time_summary(self, db: AsyncSession, task_id: UUID) -> TimeSummary:
        entries = await self.get_time_entries(db, task_id)
        closed = [e for e in entries if not e.is_open]
        return TimeSummary(
            task_id=task_id,
            entry_count=len(entries),
            open_entries=len(entries) - len(closed),
            total_minutes=sum(e.duration_minutes or 0 for e in closed),
            billable_minutes=sum(e.duration_minutes or 0 for e in closed if e.billable),
        )
