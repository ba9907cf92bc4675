# matterflow/core/tracing.py - Trace-aware structured logging with OpenTelemetry

import os
import socket
import traceback
import sys
import json
import random
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextvars import ContextVar

from loguru import logger
from opentelemetry import trace
from opentelemetry import context as otel_context
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

from matterflow.core.config import settings

SERVICE = "matterflow-api"
SERVICE_VERSION = "1.0.0"

# Context variables for manual trace propagation
_trace_id_context: ContextVar[str] = ContextVar('trace_id', default='no-trace')
_span_id_context: ContextVar[str] = ContextVar('span_id', default='no-span')

# Global tracer - initialized once by setup_tracing
_tracer = None
_tracer_provider = None


def generate_trace_id() -> str:
    """Generate a 128-bit trace ID as 32-character hex string"""
    return f"{random.getrandbits(128):032x}"


def generate_span_id() -> str:
    """Generate a 64-bit span ID as 16-character hex string"""
    return f"{random.getrandbits(64):016x}"


class TracingMiddleware:
    """ASGI middleware that guarantees a trace context for every HTTP request.

    Uses the OpenTelemetry span opened by the FastAPI instrumentation when there
    is one, otherwise opens its own span, and falls back to locally generated ids
    when OpenTelemetry is disabled.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if settings.ENABLE_OTEL_EXPORTER:
            current_span = trace.get_current_span()
            span_context = current_span.get_span_context()

            if span_context.trace_id != 0:
                set_trace_context(f"{span_context.trace_id:032x}", f"{span_context.span_id:016x}")
                token = otel_context.attach(trace.set_span_in_context(current_span))
                try:
                    await self.app(scope, receive, send)
                finally:
                    otel_context.detach(token)
                return

            if _tracer:
                method = scope.get("method", "GET")
                path = scope.get("path", "unknown")
                with _tracer.start_as_current_span(f"{method} {path}") as span:
                    span_context = span.get_span_context()
                    if span_context.trace_id != 0:
                        set_trace_context(f"{span_context.trace_id:032x}", f"{span_context.span_id:016x}")
                        span.set_attribute("http.method", method)
                        span.set_attribute("http.url", path)
                        span.set_attribute("http.scheme", scope.get("scheme", "http"))
                    await self.app(scope, receive, send)
                return

        set_trace_context(generate_trace_id(), generate_span_id())
        await self.app(scope, receive, send)


def setup_tracing(app, db_engine=None) -> bool:
    """Install trace propagation, structured logging and (optionally) OpenTelemetry"""
    global _tracer, _tracer_provider

    app.add_middleware(TracingMiddleware)
    setup_structured_logging(enable_json=settings.should_use_json_logging)

    setup_logger = logger.bind(trace_id=generate_trace_id(), span_id=generate_span_id())

    if not settings.ENABLE_OTEL_EXPORTER:
        setup_logger.info("OpenTelemetry disabled in config - using local trace IDs only")
        return True

    try:
        resource = Resource.create({
            SERVICE_NAME: SERVICE,
            "service.version": SERVICE_VERSION,
            "service.environment": settings.ENVIRONMENT,
            "service.instance.id": f"{SERVICE}-{settings.ENVIRONMENT}"
        })
        _tracer_provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
        trace.set_tracer_provider(_tracer_provider)
        _tracer = trace.get_tracer(__name__)

        if settings.ENABLE_OTEL_CONSOLE_EXPORT:
            _tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
            setup_logger.info("Console span exporter enabled")

        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=_tracer_provider,
            excluded_urls="/health,/metrics,/docs,/redoc,/openapi.json"
        )
        setup_logger.info("FastAPI instrumented")

        if db_engine is not None:
            instrument_database(db_engine)

        setup_logger.info("OpenTelemetry tracing setup complete")
    except Exception as e:
        setup_logger.opt(exception=e).error(f"OpenTelemetry setup failed, falling back to local trace IDs: {e}")

    return True


def format_stack_trace(exception_info) -> Optional[str]:
    """Format a loguru exception record for the JSON sink"""
    if not exception_info:
        return None

    if getattr(exception_info, "traceback", None):
        return ''.join(traceback.format_exception(
            exception_info.type,
            exception_info.value,
            exception_info.traceback
        ))
    return str(exception_info.value)


def _json_sink_factory():
    hostname = socket.gethostname()
    pid = os.getpid()
    container_id = os.environ.get('HOSTNAME', hostname)[:12]
    environment = settings.ENVIRONMENT

    def json_sink(message):
        record = message.record
        extra = record["extra"]

        trace_id = extra.get("trace_id") or _trace_id_context.get()
        span_id = extra.get("span_id") or _span_id_context.get()

        log_entry: Dict[str, Any] = {
            "@timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record["level"].name,
            "message": record["message"],
            "service": {
                "name": SERVICE,
                "version": SERVICE_VERSION,
                "environment": environment,
                "type": "api"
            },
            "host": {"hostname": hostname, "name": hostname},
            "process": {"pid": pid, "name": "uvicorn"},
            "container": {"id": container_id, "name": SERVICE},
            "log": {
                "origin": {
                    "file": {
                        "name": record["file"].name,
                        "line": record["line"],
                        "path": str(record["file"].path)
                    },
                    "function": record["function"]
                },
                "logger": record["name"]
            },
            "trace": {"id": trace_id, "span_id": span_id},
            "labels": {
                "service": SERVICE,
                "environment": environment,
                "level": record["level"].name.lower(),
                "module": record["module"],
                "has_trace": "true" if trace_id != "no-trace" else "false"
            }
        }

        custom = {k: v for k, v in extra.items() if k not in ("trace_id", "span_id") and not k.startswith("_")}
        if custom:
            log_entry["custom"] = custom

        if record["exception"]:
            exc = record["exception"]
            error_type = exc.type.__name__ if exc.type else "UnknownError"
            log_entry["error"] = {
                "type": error_type,
                "message": str(exc.value) if exc.value else "Unknown error",
                "stack_trace": format_stack_trace(exc),
                "fingerprint": f"{record['file'].name}:{record['function']}:{record['line']}",
            }
            log_entry["labels"]["error_type"] = error_type
            log_entry["labels"]["has_error"] = "true"

        sys.stderr.write(json.dumps(log_entry, ensure_ascii=False, default=str) + "\n")
        sys.stderr.flush()

    return json_sink


def setup_structured_logging(enable_json: Optional[bool] = None):
    """Replace loguru's default handler with a JSON or human-readable sink"""
    if enable_json is None:
        enable_json = settings.should_use_json_logging

    logger.remove()

    if enable_json:
        logger.add(_json_sink_factory(), level=settings.LOG_LEVEL, enqueue=True, catch=True)
        return

    def format_with_trace(record):
        trace_id = record["extra"].get("trace_id", "no-trace")
        trace_info = f" [trace:{trace_id[:8]}]" if trace_id != "no-trace" else ""
        return (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}:{function}:{line}</cyan>" + trace_info + " - <level>{message}</level>\n{exception}"
        )

    logger.add(
        sys.stderr,
        format=format_with_trace,
        level=settings.LOG_LEVEL,
        colorize=True,
        enqueue=True,
        catch=True
    )


def instrument_database(db_engine) -> bool:
    """Add SQLAlchemy instrumentation to the async engine's sync core"""
    if not _tracer_provider:
        return False

    try:
        SQLAlchemyInstrumentor().instrument(
            engine=getattr(db_engine, 'sync_engine', db_engine),
            tracer_provider=_tracer_provider,
            enable_commenter=True
        )
        info("SQLAlchemy instrumented")
        return True
    except Exception as e:
        warning(f"SQLAlchemy instrumentation failed: {e}")
        return False


def get_current_trace_span_ids() -> tuple[str, str]:
    """Get current trace_id and span_id - always returns usable ids"""
    trace_id = _trace_id_context.get()
    span_id = _span_id_context.get()
    if trace_id != "no-trace" and span_id != "no-span":
        return trace_id, span_id

    if settings.ENABLE_OTEL_EXPORTER:
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            trace_id = f"{span_context.trace_id:032x}"
            span_id = f"{span_context.span_id:016x}"
            set_trace_context(trace_id, span_id)
            return trace_id, span_id

    trace_id, span_id = generate_trace_id(), generate_span_id()
    set_trace_context(trace_id, span_id)
    return trace_id, span_id


def set_trace_context(trace_id: str, span_id: str):
    """Manually set trace context - used by background workers"""
    _trace_id_context.set(trace_id)
    _span_id_context.set(span_id)


def get_current_trace_id() -> str:
    trace_id, _ = get_current_trace_span_ids()
    return trace_id


def get_current_span_id() -> str:
    _, span_id = get_current_trace_span_ids()
    return span_id


def get_trace_context() -> Dict[str, str]:
    trace_id, span_id = get_current_trace_span_ids()
    return {"trace_id": trace_id, "span_id": span_id}


def log_with_trace(level: str, message: str, **kwargs):
    """Log through loguru with the current trace context bound"""
    trace_id, span_id = get_current_trace_span_ids()
    bound = logger.bind(trace_id=trace_id, span_id=span_id, **kwargs)
    log_func = getattr(bound, level.lower(), None)
    if log_func is None:
        logger.error(f"Invalid log level: {level}")
        return
    log_func(message)


def log_error_with_context(message: str, exception: Optional[Exception] = None, **kwargs):
    """Log an error with its stack trace when an exception is supplied"""
    if exception is not None:
        trace_id, span_id = get_current_trace_span_ids()
        logger.bind(trace_id=trace_id, span_id=span_id, event_type="error", **kwargs).opt(
            exception=exception
        ).error(message)
    else:
        log_with_trace("error", message, event_type="error", **kwargs)


# Convenience functions
def info(message: str, **kwargs):
    log_with_trace("info", message, **kwargs)


def debug(message: str, **kwargs):
    log_with_trace("debug", message, **kwargs)


def warning(message: str, **kwargs):
    log_with_trace("warning", message, **kwargs)


def error(message: str, **kwargs):
    log_with_trace("error", message, **kwargs)


__all__ = [
    'setup_tracing', 'setup_structured_logging', 'get_current_trace_span_ids', 'get_current_trace_id',
    'get_current_span_id', 'get_trace_context', 'set_trace_context', 'log_with_trace',
    'log_error_with_context', 'info', 'debug', 'warning', 'error'
]
