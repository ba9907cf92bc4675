# matterflow/middleware/audit_middleware.py
"""
Access log for API calls.

This is the request-level trail (who called what, how long it took). The
business audit trail of workflow changes is written by the engine itself.
"""
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

from matterflow.core import tracing


@dataclass
class AccessLog:
    timestamp: str
    method: str
    path: str
    actor_id: Optional[str]
    ip: str
    status: int
    duration_ms: float
    trace_id: str
    user_agent: Optional[str] = None
    error: Optional[str] = None


class AuditTrailMiddleware(BaseHTTPMiddleware):
    """Logs metadata of every API call; request bodies are never read"""

    EXCLUDE_PATHS = {
        "/health", "/metrics",
        "/docs", "/redoc", "/openapi.json",
        "/favicon.ico"
    }

    def __init__(self, app, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or request.url.path in self.EXCLUDE_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        start_time = time.time()
        error_message = None
        response_status = 500

        try:
            response = await call_next(request)
            response_status = response.status_code
            return response
        except Exception as e:
            error_message = str(e)
            raise
        finally:
            user_agent = request.headers.get("user-agent")
            self._log(AccessLog(
                timestamp=datetime.now(timezone.utc).isoformat(),
                method=request.method,
                path=request.url.path,
                actor_id=request.headers.get("x-actor-id"),
                ip=request.client.host if request.client else "unknown",
                status=response_status,
                duration_ms=round((time.time() - start_time) * 1000, 2),
                trace_id=tracing.get_current_trace_id(),
                user_agent=user_agent[:200] if user_agent else None,
                error=error_message
            ))

    @staticmethod
    def _log(entry: AccessLog):
        log_data = {key: value for key, value in asdict(entry).items() if value is not None}

        if entry.status >= 500:
            logger.error(f"API_ACCESS: {log_data}")
        elif entry.status >= 400:
            logger.warning(f"API_ACCESS: {log_data}")
        else:
            logger.info(f"API_ACCESS: {log_data}")
