# matterflow/main.py - Application assembly: tracing, middleware, routes, background sweep
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from contextlib import asynccontextmanager
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from slowapi.middleware import SlowAPIMiddleware
import time
import asyncio

# Core imports
from matterflow.core.config import settings
from matterflow.db.database import get_db, init_db, engine, AsyncSessionLocal

# Import tracing
from matterflow.core import tracing

# Import API routes
from matterflow.api.v1 import api_router

# Workflow engine
from matterflow.engine import WorkflowEngine

# Import middleware
from matterflow.middleware.security import SecurityHeadersMiddleware
from matterflow.middleware.cors import setup_cors_middleware
from matterflow.middleware.monitoring import MonitoringMiddleware
from matterflow.middleware.audit_middleware import AuditTrailMiddleware

# Import exception handlers
from matterflow.exceptions import WorkflowError
from matterflow.exceptions.handlers import (
    workflow_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    global_exception_handler,
    starlette_http_exception_handler
)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.DEFAULT_RATE_LIMIT],
    enabled=settings.RATE_LIMIT_ENABLED
)

# Global variable to track tracing status
tracing_enabled = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: schema, default SLA rules, notification relay and SLA sweep
    """
    tracing.info("MatterFlow API startup initiated")

    try:
        await init_db()
        tracing.info("Database initialized successfully")
    except Exception as e:
        tracing.error(f"Database initialization failed: {e}")
        raise

    workflow_engine: WorkflowEngine = app.state.workflow_engine

    if settings.SEED_DEFAULT_SLA_RULES:
        async with AsyncSessionLocal() as db:
            created = await workflow_engine.sla.seed_default_rules(db)
            tracing.info("Default SLA rules checked", created=created)

    await workflow_engine.start()

    sweep_task = None
    if settings.SLA_SWEEP_ENABLED:
        sweep_task = asyncio.create_task(periodic_sla_sweep(workflow_engine))

    tracing.info(f"Environment: {settings.ENVIRONMENT}")
    tracing.info(f"Log Level: {settings.LOG_LEVEL}")
    tracing.info(f"Tracing: {'Enabled' if tracing_enabled else 'Disabled'}")
    tracing.info(f"Rate Limiting: {'Enabled' if settings.RATE_LIMIT_ENABLED else 'Disabled'}")
    tracing.info(f"SLA Sweep: {'Every ' + str(settings.SLA_SWEEP_INTERVAL_SECONDS) + 's' if sweep_task else 'Disabled'}")

    tracing.info("MatterFlow API v1.0.0 startup complete")

    yield

    tracing.info("MatterFlow API shutdown initiated")
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    await workflow_engine.stop()
    tracing.info("MatterFlow API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="MatterFlow API",
    description="Workflow orchestration for legal matters",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT == "development" else None
)

app.state.workflow_engine = WorkflowEngine.from_settings(settings)

# =============================================================================
# TRACING SETUP
# =============================================================================

# Always setup tracing - uses OpenTelemetry when enabled, local IDs as fallback
try:
    tracing_enabled = tracing.setup_tracing(app, engine)
except Exception as e:
    tracing.error(f"Failed to initialize tracing: {e}")
    tracing_enabled = False

# =============================================================================
# MIDDLEWARE SETUP (last added runs first)
# =============================================================================

app.add_middleware(MonitoringMiddleware)
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.ENVIRONMENT == "production")
setup_cors_middleware(app)
app.add_middleware(AuditTrailMiddleware, enabled=True)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

tracing.info("Middleware pipeline configured")

# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

app.add_exception_handler(WorkflowError, workflow_exception_handler)
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_group_untemplated=False,
    should_instrument_requests_inprogress=True,
    inprogress_labels=True
)
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

# =============================================================================
# API ROUTES
# =============================================================================

app.include_router(api_router, prefix="/api/v1")

tracing.info("API routes configured")


# =============================================================================
# SYSTEM ENDPOINTS
# =============================================================================

@app.get("/health", tags=["System"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check with database connectivity test
    """
    try:
        await db.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "service": "MatterFlow API",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
            "timestamp": time.time(),
            "trace_id": tracing.get_current_trace_id(),
            "checks": {
                "database": "connected",
                "tracing": "enabled" if tracing_enabled else "disabled",
                "rate_limiting": "enabled" if settings.RATE_LIMIT_ENABLED else "disabled",
                "sla_sweep": "enabled" if settings.SLA_SWEEP_ENABLED else "disabled"
            }
        }

    except Exception as e:
        tracing.error(f"Health check failed: {e}",
                      endpoint="/health",
                      status="failed",
                      error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy - database connection failed"
        )


@app.get("/", tags=["System"])
async def api_information():
    """API information endpoint"""
    return {
        "message": "MatterFlow API - workflow orchestration for legal matters",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "status": "operational",
        "trace_id": tracing.get_current_trace_id(),
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "stages": "/api/v1/stages",
            "tasks": "/api/v1/tasks",
            "sla": "/api/v1/sla",
            "approvals": "/api/v1/approvals",
            "analytics": "/api/v1/analytics",
            "documentation": "/docs" if settings.ENVIRONMENT == "development" else "Contact administrator"
        },
        "timestamp": time.time()
    }


# =============================================================================
# BACKGROUND TASKS
# =============================================================================

async def periodic_sla_sweep(workflow_engine: WorkflowEngine):
    """Escalate SLA breaches on a fixed interval"""
    while True:
        try:
            async with AsyncSessionLocal() as db:
                stats = await workflow_engine.sla.escalate_breaches(db)
                tracing.info("SLA sweep completed",
                             sweep_stats=stats,
                             task="periodic_sla_sweep")
        except Exception as e:
            tracing.error(f"SLA sweep failed: {e}",
                          task="periodic_sla_sweep",
                          error_type=type(e).__name__)

        await asyncio.sleep(settings.SLA_SWEEP_INTERVAL_SECONDS)
