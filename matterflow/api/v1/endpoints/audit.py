# matterflow/api/v1/endpoints/audit.py
"""Audit trail read endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Query, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import List, Optional
from loguru import logger

from matterflow.db.database import get_db
from matterflow.db.models import AuditEntityType
from matterflow.api.v1.dependencies import get_workflow_engine
from matterflow.api.v1.schemas.audit import AuditEntryResponse
from matterflow.engine import WorkflowEngine
from matterflow.exceptions import WorkflowError

router = APIRouter()


@router.get("", response_model=List[AuditEntryResponse])
async def get_audit_log(
    entity_type: Optional[AuditEntityType] = Query(None, description="Filter by entity type"),
    entity_id: Optional[str] = Query(None, max_length=64, description="Filter by entity id"),
    actor_id: Optional[str] = Query(None, max_length=64, description="Filter by acting user"),
    action: Optional[str] = Query(None, max_length=64, description="Match actions containing this text"),
    start: Optional[datetime] = Query(None, description="Entries at or after this time"),
    end: Optional[datetime] = Query(None, description="Entries at or before this time"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Search audit entries, newest first"""
    try:
        entries = await engine.audit.get_audit_log(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            action=action,
            start=start,
            end=end,
            limit=limit,
            offset=offset
        )
        return [AuditEntryResponse.from_model(entry) for entry in entries]

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to read audit log: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read audit log"
        )


@router.get("/case/{case_id}", response_model=List[AuditEntryResponse])
async def get_case_audit_log(
    case_id: str = Path(..., max_length=64, description="External case id"),
    limit: Optional[int] = Query(None, ge=1, le=10000),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Audit entries of one case, newest first"""
    try:
        entries = await engine.audit.get_case_audit_log(db, case_id, limit=limit)
        return [AuditEntryResponse.from_model(entry) for entry in entries]

    except Exception as e:
        logger.error(f"Failed to read audit log for case {case_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read case audit log"
        )
