# matterflow/exceptions/handlers.py
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi.util import get_remote_address
from matterflow.core import tracing
from matterflow.exceptions.workflow import WorkflowError
import time


def get_safe_headers(request: Request) -> dict:
    """Request headers worth logging"""
    headers = request.headers
    return {
        "user_agent": headers.get("user-agent", "unknown"),
        "actor": headers.get("x-actor-id", "none"),
        "referer": headers.get("referer", "none")
    }


async def workflow_exception_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    """Render engine errors (not found, validation, conflict) with their status code"""
    log = tracing.warning if exc.status_code < 500 else tracing.error
    log(
        f"Workflow {exc.error_type}: {exc.detail}",
        url=str(request.url),
        ip=get_remote_address(request),
        status_code=exc.status_code,
        **get_safe_headers(request)
    )

    content = {
        "detail": exc.detail,
        "error_type": exc.error_type,
        "status_code": exc.status_code,
        "trace_id": tracing.get_current_trace_id(),
        "timestamp": time.time(),
        "path": request.url.path
    }
    if exc.context:
        content["context"] = exc.context

    return JSONResponse(status_code=exc.status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    tracing.error(
        f"HTTP {exc.status_code}: {exc.detail}",
        url=str(request.url),
        ip=get_remote_address(request),
        **get_safe_headers(request)
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "status_code": exc.status_code,
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time(),
            "path": request.url.path
        },
        headers=getattr(exc, 'headers', None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]

    tracing.warning(
        f"Validation error: {len(errors)} errors",
        url=str(request.url),
        ip=get_remote_address(request),
        **get_safe_headers(request)
    )

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "errors": errors,
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time()
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    tracing.log_error_with_context(
        f"UNHANDLED EXCEPTION: {str(exc)}",
        exception=exc,
        url=str(request.url),
        ip=get_remote_address(request)
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time(),
            "error_type": type(exc).__name__
        }
    )


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    tracing.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        url=str(request.url),
        ip=get_remote_address(request),
        **get_safe_headers(request)
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "status_code": exc.status_code,
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time()
        }
    )
