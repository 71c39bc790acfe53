"""Typed commission rule configuration.

The stored JSON keeps the camelCase shape used by existing rule blobs
(salesRep.baseCommission, teamLeader.downlineRates.levelA, ...);
Python code works with the snake_case attributes.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema


class _RulesModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class FixedBonuses(_RulesModel):
    """Fixed EUR amount paid per creator reaching each milestone."""
    m0_5: Decimal = Field(..., ge=0)
    m1: Decimal = Field(..., ge=0)
    m1_retention: Decimal = Field(..., ge=0)
    m2: Decimal = Field(..., ge=0)


class RoleRates(_RulesModel):
    base_commission: Decimal = Field(..., ge=0, le=1, alias="baseCommission")
    activity_commission: Decimal = Field(..., ge=0, le=1, alias="activityCommission")
    fixed_bonuses: FixedBonuses = Field(..., alias="fixedBonuses")


class DownlineRates(_RulesModel):
    level_a: Decimal = Field(Decimal("0.10"), ge=0, le=1, alias="levelA")
    level_b: Decimal = Field(Decimal("0.075"), ge=0, le=1, alias="levelB")
    level_c: Decimal = Field(Decimal("0.05"), ge=0, le=1, alias="levelC")

    def rate_for_depth(self, depth: int) -> Optional[Decimal]:
        return {1: self.level_a, 2: self.level_b, 3: self.level_c}.get(depth)


class TeamBonusRules(_RulesModel):
    rate: Decimal = Field(Decimal("0.10"), ge=0, le=1)
    recruitment: Decimal = Field(Decimal("50"), ge=0)
    graduation: Decimal = Field(Decimal("50"), ge=0)


class TeamLeaderRates(RoleRates):
    downline_rates: DownlineRates = Field(default_factory=DownlineRates, alias="downlineRates")
    team_bonus: TeamBonusRules = Field(default_factory=TeamBonusRules, alias="teamBonus")


class TeamTargets(_RulesModel):
    min_team_revenue: Decimal = Field(Decimal("10000"), ge=0, alias="minTeamRevenue")


def _default_sales_rep() -> RoleRates:
    return RoleRates(
        base_commission=Decimal("0.30"),
        activity_commission=Decimal("0.30"),
        fixed_bonuses=FixedBonuses(
            m0_5=Decimal("75"), m1=Decimal("150"), m1_retention=Decimal("100"), m2=Decimal("400")
        ),
    )


def _default_team_leader() -> TeamLeaderRates:
    return TeamLeaderRates(
        base_commission=Decimal("0.35"),
        activity_commission=Decimal("0.35"),
        fixed_bonuses=FixedBonuses(
            m0_5=Decimal("80"), m1=Decimal("165"), m1_retention=Decimal("120"), m2=Decimal("450")
        ),
    )


class CommissionRules(_RulesModel):
    """Complete rule configuration. Defaults are the shipped default rule set."""
    sales_rep: RoleRates = Field(default_factory=_default_sales_rep, alias="salesRep")
    team_leader: TeamLeaderRates = Field(default_factory=_default_team_leader, alias="teamLeader")
    team_targets: TeamTargets = Field(default_factory=TeamTargets, alias="teamTargets")

    def for_role(self, role: str) -> RoleRates:
        return self.team_leader if role == "TEAM_LEADER" else self.sales_rep

    def to_json(self) -> dict:
        """Serialize to the stored camelCase JSON shape."""
        return self.model_dump(by_alias=True, mode="json")


# ==================== RuleSet Schemas ====================

class RuleSetCreate(BaseCreateSchema):
    name: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = None
    rules: CommissionRules = Field(default_factory=CommissionRules)
    active_from: Optional[datetime] = None
    is_active: bool = True


class RuleSetResponse(BaseResponseSchema):
    id: UUID
    name: str
    description: Optional[str] = None
    json_rules: dict
    active_from: datetime
    is_active: bool
    created_at: datetime


class RuleSetListResponse(BaseModel):
    items: List[RuleSetResponse]
    total: int
