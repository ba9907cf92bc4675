# matterflow/engine/audit.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core.metrics import AUDIT_ENTRIES
from matterflow.core.timeutils import Clock, ensure_utc, utc_now
from matterflow.db import crud
from matterflow.db.models import AuditEntry, AuditEntityType
from matterflow.engine.base import after_commit, json_value
from matterflow.exceptions import WorkflowValidationError

SYSTEM_ACTOR = "system"


class AuditTrailRecorder:
    """Append-only record of every engine mutation.

    ``record`` only adds the entry to the caller's session: it is flushed and
    committed with the state change it describes, and disappears with it on
    rollback.
    """

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    def record(
            self,
            db: AsyncSession,
            entity_type: AuditEntityType,
            entity_id: Any,
            action: str,
            actor_id: Optional[str],
            case_id: Optional[str] = None,
            before: Optional[Dict[str, Any]] = None,
            after: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        entry = AuditEntry(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_id=actor_id or SYSTEM_ACTOR,
            case_id=case_id,
            before=json_value(before) if before is not None else None,
            after=json_value(after) if after is not None else None,
            created_at=self.clock(),
        )
        db.add(entry)
        after_commit(db, lambda: AUDIT_ENTRIES.labels(entity_type=entity_type.value, action=action).inc())
        return entry

    async def get_audit_log(
            self,
            db: AsyncSession,
            entity_type: Optional[AuditEntityType] = None,
            entity_id: Optional[str] = None,
            actor_id: Optional[str] = None,
            action: Optional[str] = None,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None,
            limit: int = 100,
            offset: int = 0
    ) -> List[AuditEntry]:
        """Search the trail by entity, actor, action substring and an inclusive time range"""
        start, end = ensure_utc(start), ensure_utc(end)
        if start and end and start > end:
            raise WorkflowValidationError("Audit search start must not be after its end")
        return await crud.audit.list_entries(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            action=action,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )

    async def get_case_audit_log(self, db: AsyncSession, case_id: str, limit: Optional[int] = None) -> List[AuditEntry]:
        return await crud.audit.list_entries(db, case_id=case_id, limit=limit)
