"""Rule set management and active rule resolution."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConfigurationError, NotFoundError, ValidationError
from app.models.rule_set import RuleSet
from app.schemas.rule_set import CommissionRules, RuleSetCreate


logger = logging.getLogger(__name__)

DEFAULT_RULE_SET_NAME = "Default Commission Rules"


class RuleSetService:
    """Service for versioned commission rule sets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: RuleSetCreate) -> RuleSet:
        rule_set = RuleSet(
            id=uuid.uuid4(),
            name=data.name,
            description=data.description,
            json_rules=data.rules.to_json(),
            active_from=data.active_from or datetime.now(timezone.utc),
            is_active=data.is_active,
        )
        self.db.add(rule_set)
        await self.db.commit()
        await self.db.refresh(rule_set)

        logger.info(f"Rule set '{rule_set.name}' created, active from {rule_set.active_from.isoformat()}")
        return rule_set

    async def list(self, include_inactive: bool = True) -> Sequence[RuleSet]:
        query = select(RuleSet).order_by(RuleSet.active_from.desc(), RuleSet.created_at.desc())
        if not include_inactive:
            query = query.where(RuleSet.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalars().all()

    async def get(self, rule_set_id: uuid.UUID) -> RuleSet:
        rule_set = await self.db.get(RuleSet, rule_set_id)
        if not rule_set:
            raise NotFoundError("Rule set not found", {"rule_set_id": str(rule_set_id)})
        return rule_set

    async def get_active(self, at: Optional[datetime] = None) -> Optional[RuleSet]:
        """Most recent is_active rule set whose active_from has been reached."""
        at = at or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(RuleSet)
            .where(RuleSet.is_active.is_(True), RuleSet.active_from <= at)
            .order_by(RuleSet.active_from.desc(), RuleSet.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_active_rules(self, at: Optional[datetime] = None) -> CommissionRules:
        """
        Resolve the active rule set into typed rules.

        Raises:
            ConfigurationError: no active rule set, or its JSON is malformed
        """
        rule_set = await self.get_active(at)
        if rule_set is None:
            raise ConfigurationError("No active rule set found. Create or activate a rule set first")

        try:
            return CommissionRules.model_validate(rule_set.json_rules)
        except ValueError as e:
            raise ConfigurationError(
                f"Active rule set '{rule_set.name}' is malformed",
                {"rule_set_id": str(rule_set.id), "errors": str(e)},
            )

    async def deactivate(self, rule_set_id: uuid.UUID) -> RuleSet:
        rule_set = await self.get(rule_set_id)
        if not rule_set.is_active:
            raise ValidationError("Rule set is already inactive", {"rule_set_id": str(rule_set_id)})

        rule_set.is_active = False
        await self.db.commit()
        await self.db.refresh(rule_set)

        logger.info(f"Rule set '{rule_set.name}' deactivated")
        return rule_set

    async def ensure_default(self) -> RuleSet:
        """Create the default rule set when no rule set exists at all."""
        existing = await self.list()
        if existing:
            return existing[0]
        return await self.create(RuleSetCreate(
            name=DEFAULT_RULE_SET_NAME,
            description="Standard rates for Team Leaders and Sales Reps",
            rules=CommissionRules(),
        ))
