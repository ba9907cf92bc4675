"""
Database connectivity and workflow table check
"""
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from matterflow.db.database import AsyncSessionLocal
from sqlalchemy import text
from loguru import logger

TABLES = [
    "stages",
    "tasks",
    "task_dependencies",
    "sla_rules",
    "approval_chains",
    "conditional_rules",
    "parallel_groups",
    "time_entries",
    "notifications",
    "audit_entries",
]


async def check_database():
    """Check database connectivity and row counts of the workflow tables"""
    logger.info("Checking database connectivity...")

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
            logger.info("Database connection successful")

            logger.info("Database statistics:")
            for table in TABLES:
                count = await db.execute(text(f"SELECT COUNT(*) FROM {table}"))
                logger.info(f"   {table}: {count.scalar()}")

    except Exception as e:
        logger.error(f"Database check failed: {e}")
        raise

if __name__ == "__main__":
    asyncio.run(check_database())
