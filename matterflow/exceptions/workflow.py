# matterflow/exceptions/workflow.py
from fastapi import status
from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base error raised by the workflow engine"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type = "workflow_error"

    def __init__(self, detail: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.context = context or {}


class NotFoundError(WorkflowError):
    """Unknown task, stage, chain, group, rule or notification id"""
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": str(entity_id)})


class WorkflowValidationError(WorkflowError):
    """Operation rejected by a workflow rule; state is unchanged"""
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "validation_error"


class ConflictError(WorkflowError):
    """Stale version on a concurrent update"""
    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"
