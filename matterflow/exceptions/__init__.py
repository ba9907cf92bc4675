from matterflow.exceptions.workflow import (
    WorkflowError,
    NotFoundError,
    WorkflowValidationError,
    ConflictError,
)

__all__ = ["WorkflowError", "NotFoundError", "WorkflowValidationError", "ConflictError"]
