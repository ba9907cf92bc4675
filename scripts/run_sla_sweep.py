"""
One-off SLA breach sweep
Run from cron when the in-process sweep is disabled (SLA_SWEEP_ENABLED=false)
"""
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from matterflow.core.config import settings
from matterflow.db.database import AsyncSessionLocal
from matterflow.engine import WorkflowEngine
from loguru import logger


async def run_sweep():
    """Escalate breaches once, delivering notifications before exiting"""
    workflow_engine = WorkflowEngine.from_settings(settings)
    await workflow_engine.start()

    try:
        async with AsyncSessionLocal() as db:
            stats = await workflow_engine.sla.escalate_breaches(db)
            logger.info(f"SLA sweep completed: {stats}")
            return stats
    except Exception as e:
        logger.error(f"SLA sweep failed: {e}")
        raise
    finally:
        await workflow_engine.stop()

if __name__ == "__main__":
    asyncio.run(run_sweep())
