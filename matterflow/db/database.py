import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from fastapi import HTTPException
from matterflow.core import tracing as logger
from matterflow.core.config import settings
from matterflow.exceptions.workflow import WorkflowError

# Configure logging for SQLAlchemy (ORM logs only)
logging.basicConfig()
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def engine_options(database_url: str) -> dict:
    """Pool and driver options; asyncpg gets a sized pool, SQLite keeps the defaults"""
    if database_url.startswith("sqlite"):
        return {"echo": False}
    return {
        "echo": False,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": {
            "server_settings": {
                "application_name": "matterflow_api"
            },
            "command_timeout": 5,
        },
    }


# SQLAlchemy Engine
engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False
)

# Declarative base class
Base = declarative_base()


async def init_db():
    """Create any missing tables"""
    # Registers every model on Base.metadata
    from matterflow.db import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error("Database initialization failed", error=str(e), type=type(e).__name__)
        raise


async def get_db():
    """Async session dependency with trace-aware error logging."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            if isinstance(e, WorkflowError):
                # Already rolled back and rendered by its handler
                pass
            elif isinstance(e, HTTPException):
                logger.error(
                    "Database session error",
                    error=e.detail or str(e),
                    type=type(e).__name__,
                    status_code=e.status_code
                )
            else:
                logger.error(
                    "Database session error",
                    error=str(e),
                    type=type(e).__name__
                )
            await session.rollback()
            raise
