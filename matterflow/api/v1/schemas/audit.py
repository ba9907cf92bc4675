# matterflow/api/v1/schemas/audit.py
from pydantic import BaseModel, UUID4
from typing import Optional, Dict, Any
from datetime import datetime

from matterflow.db.models import AuditEntityType


class AuditEntryResponse(BaseModel):
    id: UUID4
    sequence: int
    entity_type: AuditEntityType
    entity_id: str
    case_id: Optional[str] = None
    action: str
    actor_id: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    created_at: datetime

    @classmethod
    def from_model(cls, entry):
        return cls(
            id=entry.uuid,
            sequence=entry.id,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            case_id=entry.case_id,
            action=entry.action,
            actor_id=entry.actor_id,
            before=entry.before,
            after=entry.after,
            created_at=entry.created_at,
        )
