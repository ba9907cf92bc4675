# matterflow/engine/base.py
"""Transaction boundary and snapshot helpers shared by the engine components"""
import enum
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from matterflow.core import tracing as logger
from matterflow.core.metrics import TRANSACTION_ROLLBACKS
from matterflow.core.timeutils import Clock, utc_now
from matterflow.exceptions import ConflictError, WorkflowError, WorkflowValidationError

AFTER_COMMIT_KEY = "matterflow.after_commit"


def after_commit(db: AsyncSession, callback: Callable[[], None]) -> None:
    """Run ``callback`` once the current transaction commits; dropped on rollback"""
    db.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)


def _drain_callbacks(db: AsyncSession) -> List[Callable[[], None]]:
    return db.info.pop(AFTER_COMMIT_KEY, [])


async def _rollback(db: AsyncSession, error_type: str) -> None:
    _drain_callbacks(db)
    await db.rollback()
    TRANSACTION_ROLLBACKS.labels(error_type=error_type).inc()


@asynccontextmanager
async def transaction(db: AsyncSession, integrity_message: str = "Operation conflicts with existing state"):
    """Commit the block's changes together with their audit entry, or none of them.

    StaleDataError (optimistic version check) becomes ConflictError and
    IntegrityError (unique slot already taken) becomes a validation error.
    """
    try:
        yield
        await db.commit()
    except WorkflowError as e:
        await _rollback(db, e.error_type)
        raise
    except StaleDataError as e:
        await _rollback(db, "conflict")
        logger.warning("Stale write rejected", error=str(e))
        raise ConflictError("Entity was modified concurrently; reload and retry") from e
    except IntegrityError as e:
        await _rollback(db, "integrity")
        logger.warning("Integrity violation", error=str(e.orig))
        raise WorkflowValidationError(integrity_message) from e
    except Exception as e:
        await _rollback(db, type(e).__name__)
        raise

    for callback in _drain_callbacks(db):
        callback()


def json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [json_value(item) for item in value]
    if isinstance(value, dict):
        return {key: json_value(item) for key, item in value.items()}
    return value


def snapshot(obj: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """JSON-safe copy of the named attributes, for audit before/after"""
    return {field: json_value(getattr(obj, field)) for field in fields}


class EngineComponent:
    """Common constructor for components that write through the audit trail"""

    def __init__(self, audit, clock: Clock = utc_now):
        self.audit = audit
        self.clock = clock
