# matterflow/engine/conditions.py
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from matterflow.core import tracing as logger
from matterflow.core.expressions import ExpressionError, evaluate, parse_expression
from matterflow.db import crud
from matterflow.db.models import AuditEntityType, ConditionalRule, Stage
from matterflow.engine.base import EngineComponent, transaction
from matterflow.exceptions import NotFoundError, WorkflowValidationError


@dataclass
class BranchDecision:
    matched: bool
    rule_id: Optional[UUID] = None
    target_stage_id: Optional[UUID] = None
    target_stage: Optional[Stage] = None


class ConditionalBranchEvaluator(EngineComponent):
    """Rules that pick the next stage from the completion context of a stage"""

    async def _get_stage(self, db: AsyncSession, stage_id: UUID) -> Stage:
        stage = await crud.stage.get_stage_by_uuid(db, stage_id)
        if stage is None:
            raise NotFoundError("Stage", stage_id)
        return stage

    async def add_conditional_rule(
            self,
            db: AsyncSession,
            stage_id: UUID,
            expression: str,
            target_stage_id: UUID,
            priority: int = 100,
            actor_id: Optional[str] = None,
            description: Optional[str] = None
    ) -> ConditionalRule:
        try:
            parse_expression(expression)
        except ExpressionError as e:
            raise WorkflowValidationError(f"Invalid condition expression: {e}", {"expression": expression})

        async with transaction(db):
            stage = await self._get_stage(db, stage_id)
            target = await self._get_stage(db, target_stage_id)
            if target.id == stage.id:
                raise WorkflowValidationError("A stage cannot branch to itself")
            if target.case_id != stage.case_id:
                raise WorkflowValidationError(
                    "Target stage belongs to a different case",
                    {"case_id": stage.case_id, "target_case_id": target.case_id},
                )

            rule = ConditionalRule(
                stage=stage,
                target_stage=target,
                expression=expression.strip(),
                priority=priority,
                description=description,
                created_by=actor_id,
            )
            db.add(rule)
            await db.flush()

            self.audit.record(
                db, AuditEntityType.CONDITIONAL_RULE, rule.uuid, "created",
                actor_id=actor_id,
                case_id=stage.case_id,
                after={
                    "stage_id": stage.uuid,
                    "target_stage_id": target.uuid,
                    "expression": rule.expression,
                    "priority": priority,
                },
            )

        logger.info("Conditional rule added", stage_id=str(stage.uuid), target_stage_id=str(target.uuid),
                    priority=priority)
        return rule

    async def list_conditional_rules(self, db: AsyncSession, stage_id: UUID) -> List[ConditionalRule]:
        stage = await self._get_stage(db, stage_id)
        return await crud.conditional_rule.list_stage_rules(db, stage)

    async def evaluate_conditions(self, db: AsyncSession, stage_id: UUID, context: Mapping[str, Any]) -> BranchDecision:
        stage = await self._get_stage(db, stage_id)
        return await self.decide(db, stage, context)

    async def decide(self, db: AsyncSession, stage: Stage, context: Optional[Mapping[str, Any]]) -> BranchDecision:
        """First matching rule by ascending priority, ties in creation order"""
        context = context or {}
        for rule in await crud.conditional_rule.list_stage_rules(db, stage):
            try:
                matched = evaluate(parse_expression(rule.expression), context)
            except ExpressionError as e:
                logger.warning("Skipping unparseable conditional rule", rule_id=str(rule.uuid), error=str(e))
                continue
            if matched:
                logger.debug("Conditional rule matched", rule_id=str(rule.uuid), stage_id=str(stage.uuid))
                return BranchDecision(
                    matched=True,
                    rule_id=rule.uuid,
                    target_stage_id=rule.target_stage.uuid,
                    target_stage=rule.target_stage,
                )
        return BranchDecision(matched=False)
