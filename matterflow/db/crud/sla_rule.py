# matterflow/db/crud/sla_rule.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, List, Dict, Tuple

from matterflow.db.models import SLARule, SLAScope


async def get_rule_by_key(db: AsyncSession, scope: SLAScope, target_key: str) -> Optional[SLARule]:
    result = await db.execute(
        select(SLARule).filter(SLARule.scope == scope, SLARule.target_key == target_key)
    )
    return result.scalars().first()


async def list_rules(db: AsyncSession) -> List[SLARule]:
    result = await db.execute(select(SLARule).order_by(SLARule.scope, SLARule.target_key))
    return list(result.scalars().all())


async def load_rule_index(db: AsyncSession) -> Dict[Tuple[SLAScope, str], SLARule]:
    """All rules keyed by (scope, target key) for sweep-style resolution"""
    return {(rule.scope, rule.target_key): rule for rule in await list_rules(db)}
