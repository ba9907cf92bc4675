# matterflow/api/v1/schemas/stages.py
from pydantic import BaseModel, ConfigDict, Field, UUID4
from typing import Optional
from datetime import datetime

from matterflow.db.models import StageStatus


class StageCreate(BaseModel):
    """Schema for creating a stage"""
    case_id: str = Field(..., min_length=1, max_length=64, description="External case id")
    name: str = Field(..., min_length=1, max_length=255, description="Stage name")
    order_index: int = Field(0, ge=0, description="Position of the stage within the case")
    description: Optional[str] = Field(None, description="Stage description")
    actor_id: Optional[str] = Field(None, max_length=64, description="User creating the stage")


class StageActivate(BaseModel):
    actor_id: Optional[str] = Field(None, max_length=64)


class StageResponse(BaseModel):
    """Stage with its computed progress"""
    id: UUID4 = Field(..., description="Stage UUID")
    case_id: str
    name: str
    description: Optional[str] = None
    order_index: int
    status: StageStatus
    progress: float = Field(..., description="Completed over non-cancelled tasks, percent")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, stage):
        return cls(
            id=stage.uuid,
            case_id=stage.case_id,
            name=stage.name,
            description=stage.description,
            order_index=stage.order_index,
            status=stage.status,
            progress=stage.progress,
            started_at=stage.started_at,
            completed_at=stage.completed_at,
            created_by=stage.created_by,
            created_at=stage.created_at,
            updated_at=stage.updated_at,
        )
