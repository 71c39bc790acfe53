"""
Commission Engine

Computes the complete commission ledger of a period.

Passes, per eligible manager (active TL/SR with revenue in the period):
1. Personal: base and activity commission (USD -> EUR), fixed milestone
   bonuses (already EUR)
2. Downline (Team Leaders): A/B/C percentages of each descendant's
   personal revenue, by depth in the closure table
3. Team bonus (Team Leaders): when own + all descendants' revenue reaches
   the team threshold, a percentage bonus plus two flat monthly bonuses

Rounding: USD amounts are rounded to cents right after the rate
multiplication; EUR = round2(rounded USD x period rate). Every component
stores the inputs needed to recompute it in `calc`.

CommissionEngine is pure; CommissionService loads inputs, replaces the
period's ledger under the period lock and reads statements back.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConfigurationError, NotFoundError, PeriodLockedError
from app.core.locks import exclusive_lock, period_lock_key
from app.core.money import round2, convert_usd_to_eur, to_decimal, validate_period_id
from app.models.commission import CommissionLedger, ComponentType, Payout
from app.models.genealogy import OrgRelation
from app.models.period import Period
from app.models.user import User, UserRole, MANAGER_ROLES
from app.schemas.commission import (
    CalculationSummary,
    ComponentBreakdown,
    LedgerEntryResponse,
    ManagerCalculationResponse,
    ManagerStatement,
    PayoutResponse,
    StatementKpis,
)
from app.schemas.revenue import PersonalRevenueResponse
from app.schemas.rule_set import CommissionRules
from app.schemas.user import UserBrief
from app.services.revenue_service import (
    PersonalRevenue,
    RevenueService,
    aggregate_personal_revenue,
)
from app.services.rule_set_service import RuleSetService


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

MILESTONE_COMPONENTS = (
    ("m0_5", ComponentType.M0_5_BONUS),
    ("m1", ComponentType.M1_BONUS),
    ("m1_retention", ComponentType.M1_RETENTION_BONUS),
    ("m2", ComponentType.M2_BONUS),
)

DOWNLINE_COMPONENTS = {
    1: ComponentType.DOWNLINE_A,
    2: ComponentType.DOWNLINE_B,
    3: ComponentType.DOWNLINE_C,
}

# Dashboard KPI groups
KPI_GROUPS = {
    "base": (ComponentType.BASE_COMMISSION,),
    "activity": (ComponentType.ACTIVITY_COMMISSION,),
    "bonus": tuple(component for _, component in MILESTONE_COMPONENTS),
    "downline": tuple(DOWNLINE_COMPONENTS.values()),
    "team": (
        ComponentType.TEAM_BONUS,
        ComponentType.TEAM_RECRUITMENT,
        ComponentType.TEAM_GRADUATION,
    ),
}


@dataclass
class LedgerComponent:
    """One computed commission component, before persistence."""
    user_id: uuid.UUID
    component: ComponentType
    amount_eur: Decimal
    amount_usd: Optional[Decimal] = None
    calc: dict = field(default_factory=dict)


@dataclass
class ManagerCommission:
    manager_id: uuid.UUID
    role: str
    components: List[LedgerComponent] = field(default_factory=list)
    total_eur: Decimal = ZERO

    def add(self, component: LedgerComponent) -> None:
        self.components.append(component)
        self.total_eur = round2(self.total_eur + component.amount_eur)


class CommissionEngine:
    """
    Pure commission calculation for one period.

    Args:
        rules: resolved active rule set
        usd_eur_rate: the period's fixed rate
        period_id: YYYYMM, recorded in calc metadata
    """

    def __init__(self, rules: CommissionRules, usd_eur_rate, period_id: str):
        self.rules = rules
        self.usd_eur_rate = to_decimal(usd_eur_rate)
        self.period_id = period_id

    def calculate(
        self,
        managers: Sequence[Tuple[uuid.UUID, str]],
        revenue: Dict[uuid.UUID, PersonalRevenue],
        descendants: Dict[uuid.UUID, List[Tuple[uuid.UUID, int]]],
    ) -> List[ManagerCommission]:
        """
        Compute every component for the given managers.

        managers: (manager_id, role) of eligible managers
        revenue: personal revenue per manager id (missing = none)
        descendants: closure rows (descendant_id, depth) per ancestor id
        """
        results = []
        for manager_id, role in sorted(managers, key=lambda m: str(m[0])):
            result = ManagerCommission(manager_id=manager_id, role=role)
            personal = revenue.get(manager_id) or PersonalRevenue()

            for component in self.personal_components(manager_id, role, personal):
                result.add(component)

            if role == UserRole.TEAM_LEADER.value:
                team = sorted(descendants.get(manager_id, []), key=lambda d: (d[1], str(d[0])))
                for component in self.downline_components(manager_id, team, revenue):
                    result.add(component)
                for component in self.team_components(manager_id, personal, team, revenue):
                    result.add(component)

            results.append(result)
        return results

    # ==================== Passes ====================

    def personal_components(
        self,
        manager_id: uuid.UUID,
        role: str,
        personal: PersonalRevenue,
    ) -> List[LedgerComponent]:
        rates = self.rules.for_role(role)
        components = []

        for revenue_usd, rate, component, basis in (
            (personal.base_usd, rates.base_commission, ComponentType.BASE_COMMISSION, "PERSONAL_BASE"),
            (personal.activity_usd, rates.activity_commission,
             ComponentType.ACTIVITY_COMMISSION, "PERSONAL_ACTIVITY"),
        ):
            if revenue_usd > 0:
                components.append(self._converted(
                    manager_id, component, revenue_usd, rate,
                    {"basis": basis, "creator_count": personal.creator_count},
                ))

        for milestone, component in MILESTONE_COMPONENTS:
            count = personal.milestones.get(milestone, 0)
            if count > 0:
                per_creator = getattr(rates.fixed_bonuses, milestone)
                components.append(LedgerComponent(
                    user_id=manager_id,
                    component=component,
                    amount_eur=round2(per_creator * count),
                    calc={
                        "basis": "MILESTONE",
                        "period_id": self.period_id,
                        "milestone": milestone,
                        "count": count,
                        "amount_per_creator_eur": per_creator,
                    },
                ))

        return components

    def downline_components(
        self,
        manager_id: uuid.UUID,
        team: List[Tuple[uuid.UUID, int]],
        revenue: Dict[uuid.UUID, PersonalRevenue],
    ) -> List[LedgerComponent]:
        downline_rates = self.rules.team_leader.downline_rates
        components = []

        for descendant_id, depth in team:
            rate = downline_rates.rate_for_depth(depth)
            descendant_revenue = revenue.get(descendant_id)
            if rate is None or descendant_revenue is None or descendant_revenue.total_usd <= 0:
                continue
            component = DOWNLINE_COMPONENTS[depth]
            components.append(self._converted(
                manager_id, component, descendant_revenue.total_usd, rate,
                {
                    "basis": "DOWNLINE",
                    "descendant_id": str(descendant_id),
                    "depth": depth,
                    "level": component.value[-1],
                },
            ))

        return components

    def team_components(
        self,
        manager_id: uuid.UUID,
        personal: PersonalRevenue,
        team: List[Tuple[uuid.UUID, int]],
        revenue: Dict[uuid.UUID, PersonalRevenue],
    ) -> List[LedgerComponent]:
        members_usd = sum(
            (revenue[d].total_usd for d, _ in team if d in revenue),
            ZERO,
        )
        team_revenue = personal.total_usd + members_usd
        threshold = self.rules.team_targets.min_team_revenue

        if team_revenue < threshold:
            return []

        bonus = self.rules.team_leader.team_bonus
        context = {
            "team_revenue_usd": team_revenue,
            "personal_revenue_usd": personal.total_usd,
            "member_count": len(team),
            "min_team_revenue": threshold,
        }

        components = [
            self._converted(
                manager_id, ComponentType.TEAM_BONUS, team_revenue, bonus.rate,
                {"basis": "TEAM_REVENUE", **context},
            ),
        ]
        # Flat monthly amounts, not tied to recruitment/graduation events
        for component, amount in (
            (ComponentType.TEAM_RECRUITMENT, bonus.recruitment),
            (ComponentType.TEAM_GRADUATION, bonus.graduation),
        ):
            components.append(LedgerComponent(
                user_id=manager_id,
                component=component,
                amount_eur=round2(amount),
                calc={"basis": "MONTHLY_FLAT", "period_id": self.period_id,
                      "amount_eur": amount, **context},
            ))

        return components

    def _converted(
        self,
        manager_id: uuid.UUID,
        component: ComponentType,
        revenue_usd: Decimal,
        rate: Decimal,
        calc: dict,
    ) -> LedgerComponent:
        amount_usd = round2(revenue_usd * rate)
        amount_eur = convert_usd_to_eur(amount_usd, self.usd_eur_rate)
        return LedgerComponent(
            user_id=manager_id,
            component=component,
            amount_usd=amount_usd,
            amount_eur=amount_eur,
            calc={
                **calc,
                "period_id": self.period_id,
                "revenue_usd": revenue_usd,
                "rate": rate,
                "usd_eur_rate": self.usd_eur_rate,
            },
        )


def summarize(period_id: str, results: List[ManagerCommission], revenue_item_count: int) -> CalculationSummary:
    breakdown: Dict[str, ComponentBreakdown] = {}
    total = ZERO
    for result in results:
        total = round2(total + result.total_eur)
        for component in result.components:
            entry = breakdown.setdefault(
                component.component.value, ComponentBreakdown(count=0, total_eur=ZERO)
            )
            entry.count += 1
            entry.total_eur = round2(entry.total_eur + component.amount_eur)

    return CalculationSummary(
        period_id=period_id,
        total_managers=len(results),
        total_commission_eur=total,
        total_revenue_items=revenue_item_count,
        component_breakdown=breakdown,
        calculations=[
            ManagerCalculationResponse(
                manager_id=r.manager_id,
                role=r.role,
                total_eur=r.total_eur,
                component_count=len(r.components),
            )
            for r in results
        ],
    )


class CommissionService:
    """Runs the engine against the database and reads the ledger back."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def calculate_all_commissions(self, period_id: str) -> CalculationSummary:
        """
        Replace the ledger of a period with a fresh, complete calculation.

        Raises:
            ValidationError: malformed period id
            ConfigurationError: no active rule set, rate not set, no revenue
            NotFoundError: period does not exist
            PeriodLockedError: period is LOCKED
        """
        validate_period_id(period_id)
        rules = await RuleSetService(self.db).get_active_rules()

        async with exclusive_lock(self.db, period_lock_key(period_id)):
            period = await self._get_period_for_update(period_id)
            if period.is_locked:
                raise PeriodLockedError(period_id, "recalculated")
            if period.usd_eur_rate is None:
                raise ConfigurationError(
                    "Exchange rate not set for this period", {"period_id": period_id}
                )

            revenue_service = RevenueService(self.db)
            revenue_item_count = await revenue_service.count_items(period_id)
            if revenue_item_count == 0:
                raise ConfigurationError(
                    "No revenue data found for this period. Import revenue first",
                    {"period_id": period_id},
                )

            await self.db.execute(
                delete(CommissionLedger).where(CommissionLedger.period_id == period_id)
            )

            grouped = await revenue_service.items_by_manager(period_id)
            revenue = {
                manager_id: aggregate_personal_revenue(items)
                for manager_id, items in grouped.items()
            }

            manager_result = await self.db.execute(
                select(User.id, User.role).where(
                    User.id.in_(list(grouped.keys())),
                    User.role.in_(MANAGER_ROLES),
                    User.is_active.is_(True),
                )
            )
            managers = [(row.id, row.role) for row in manager_result.all()]
            descendants = await self._load_descendants(
                [m_id for m_id, role in managers if role == UserRole.TEAM_LEADER.value]
            )

            engine = CommissionEngine(rules, period.usd_eur_rate, period_id)
            results = engine.calculate(managers, revenue, descendants)

            self.db.add_all([
                CommissionLedger(
                    id=uuid.uuid4(),
                    period_id=period_id,
                    user_id=component.user_id,
                    component=component.component.value,
                    amount_usd=component.amount_usd,
                    amount_eur=component.amount_eur,
                    calc=component.calc,
                )
                for result in results
                for component in result.components
            ])
            await self.db.commit()

        summary = summarize(period_id, results, revenue_item_count)
        logger.info(f"Commissions recalculated for {period_id}: {summary.total_managers} managers, "
                    f"{sum(len(r.components) for r in results)} components, "
                    f"EUR {summary.total_commission_eur}")
        return summary

    async def _get_period_for_update(self, period_id: str) -> Period:
        result = await self.db.execute(
            select(Period).where(Period.id == period_id).with_for_update()
        )
        period = result.scalar_one_or_none()
        if not period:
            raise NotFoundError("Period not found", {"period_id": period_id})
        return period

    async def _load_descendants(
        self, ancestor_ids: List[uuid.UUID]
    ) -> Dict[uuid.UUID, List[Tuple[uuid.UUID, int]]]:
        if not ancestor_ids:
            return {}
        result = await self.db.execute(
            select(OrgRelation.ancestor_id, OrgRelation.descendant_id, OrgRelation.depth)
            .where(
                OrgRelation.ancestor_id.in_(ancestor_ids),
                OrgRelation.depth.in_(list(DOWNLINE_COMPONENTS.keys())),
            )
        )
        descendants: Dict[uuid.UUID, List[Tuple[uuid.UUID, int]]] = {}
        for ancestor_id, descendant_id, depth in result.all():
            descendants.setdefault(ancestor_id, []).append((descendant_id, depth))
        return descendants

    # ==================== Ledger Reads ====================

    async def get_ledger(self, period_id: str, manager_id: Optional[uuid.UUID] = None) -> List[CommissionLedger]:
        validate_period_id(period_id)
        query = select(CommissionLedger).where(CommissionLedger.period_id == period_id)
        if manager_id:
            query = query.where(CommissionLedger.user_id == manager_id)
        result = await self.db.execute(
            query.order_by(CommissionLedger.user_id, CommissionLedger.component, CommissionLedger.created_at)
        )
        return list(result.scalars().all())

    async def get_manager_statement(self, period_id: str, manager_id: uuid.UUID) -> ManagerStatement:
        """Ledger, totals, KPIs, personal revenue and payout of one manager in one period."""
        validate_period_id(period_id)
        period = await self.db.get(Period, period_id)
        if not period:
            raise NotFoundError("Period not found", {"period_id": period_id})
        manager = await self.db.get(User, manager_id)
        if not manager:
            raise NotFoundError("Manager not found", {"manager_id": str(manager_id)})

        entries = await self.get_ledger(period_id, manager_id)

        component_totals: Dict[str, Decimal] = {}
        for entry in entries:
            component_totals[entry.component] = round2(
                component_totals.get(entry.component, ZERO) + to_decimal(entry.amount_eur)
            )

        kpis = {
            name: round2(sum(
                (component_totals.get(c.value, ZERO) for c in components), ZERO
            ))
            for name, components in KPI_GROUPS.items()
        }
        kpis["total"] = round2(sum(component_totals.values(), ZERO))

        personal = await RevenueService(self.db).get_personal_revenue(period_id, manager_id)

        payout_result = await self.db.execute(
            select(Payout)
            .options(selectinload(Payout.lines))
            .where(Payout.period_id == period_id, Payout.manager_id == manager_id)
        )
        payout = payout_result.scalar_one_or_none()

        return ManagerStatement(
            period_id=period_id,
            manager=UserBrief.model_validate(manager),
            entries=[LedgerEntryResponse.model_validate(e) for e in entries],
            component_totals=component_totals,
            kpis=StatementKpis(**kpis),
            personal_revenue=PersonalRevenueResponse(manager_id=manager_id, **personal.to_dict()),
            payout=PayoutResponse.model_validate(payout) if payout else None,
        )

    async def count_ledger_rows(self, period_id: str) -> int:
        result = await self.db.execute(
            select(func.count(CommissionLedger.id)).where(CommissionLedger.period_id == period_id)
        )
        return result.scalar() or 0
