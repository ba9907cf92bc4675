# matterflow/db/crud/conditional_rule.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from matterflow.db.models import ConditionalRule, Stage


async def list_stage_rules(db: AsyncSession, stage: Stage) -> List[ConditionalRule]:
    """Rules in evaluation order: ascending priority, then creation order"""
    result = await db.execute(
        select(ConditionalRule)
        .filter(ConditionalRule.stage_id == stage.id)
        .order_by(ConditionalRule.priority.asc(), ConditionalRule.id.asc())
    )
    return list(result.scalars().all())
