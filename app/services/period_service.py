"""
Period Service

Billing periods (YYYYMM): creation, status changes and the fixed
USD/EUR rate of each period.

Status transitions:
    DRAFT -> ACTIVE
    ACTIVE -> LOCKED | DRAFT
    LOCKED -> ACTIVE  (unlock)

A LOCKED period is a frozen deal: no import, recalculation or rate change
until it is unlocked.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError, PeriodLockedError
from app.core.locks import exclusive_lock, period_lock_key
from app.core.money import to_decimal, parse_period_id, validate_period_id
from app.models.commission import CommissionLedger, Payout
from app.models.period import Period, PeriodStatus
from app.models.revenue import RevenueItem
from app.schemas.period import PeriodCreate, PeriodUpdate, ExchangeRateQuote
from app.services.exchange_rate_service import ExchangeRateService


logger = logging.getLogger(__name__)

RATE_PLACES = Decimal("0.000001")
MIN_MANUAL_RATE = Decimal("0.1")
MAX_MANUAL_RATE = Decimal("2.0")

PERIOD_TRANSITIONS: Dict[str, List[str]] = {
    PeriodStatus.DRAFT.value: [PeriodStatus.ACTIVE.value],
    PeriodStatus.ACTIVE.value: [PeriodStatus.LOCKED.value, PeriodStatus.DRAFT.value],
    PeriodStatus.LOCKED.value: [PeriodStatus.ACTIVE.value],
}


class PeriodService:
    """Service for billing periods."""

    def __init__(self, db: AsyncSession, rate_provider: Optional[ExchangeRateService] = None):
        self.db = db
        self.rate_provider = rate_provider or ExchangeRateService()

    # ==================== CRUD ====================

    async def create(self, data: PeriodCreate) -> Period:
        validate_period_id(data.id)

        if await self.db.get(Period, data.id):
            raise ValidationError("Period already exists", {"period_id": data.id})
        if data.status == PeriodStatus.LOCKED:
            raise ValidationError("A period cannot be created locked", {"period_id": data.id})

        period = Period(
            id=data.id,
            year=data.year,
            month=data.month,
            status=data.status.value,
        )
        if data.usd_eur_rate is not None:
            self._set_rate(period, data.usd_eur_rate, "MANUAL")

        self.db.add(period)
        await self.db.commit()
        await self.db.refresh(period)

        logger.info(f"Period {period.id} created ({period.status})")
        return period

    async def get(self, period_id: str) -> Period:
        validate_period_id(period_id)
        period = await self.db.get(Period, period_id)
        if not period:
            raise NotFoundError("Period not found", {"period_id": period_id})
        return period

    async def get_with_counts(self, period_id: str) -> Tuple[Period, Dict[str, int]]:
        period = await self.get(period_id)
        counts = {}
        for key, model in (
            ("revenue_items", RevenueItem),
            ("commissions", CommissionLedger),
            ("payouts", Payout),
        ):
            result = await self.db.execute(
                select(func.count(model.id)).where(model.period_id == period_id)
            )
            counts[key] = result.scalar() or 0
        return period, counts

    async def list(self, status: Optional[str] = None) -> Sequence[Period]:
        query = select(Period).order_by(Period.id.desc())
        if status:
            query = query.where(Period.status == status)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def update(self, period_id: str, data: PeriodUpdate) -> Period:
        """
        Change rate and/or status.

        Raises:
            ValidationError: illegal status transition or implausible rate
            PeriodLockedError: rate change on a period that stays LOCKED
        """
        async with exclusive_lock(self.db, period_lock_key(period_id)):
            period = await self.get(period_id)
            current_status = period.status
            target_status = data.status.value if data.status else current_status

            if target_status != current_status:
                self.validate_transition(current_status, target_status)

            if data.usd_eur_rate is not None:
                if target_status == PeriodStatus.LOCKED.value:
                    raise PeriodLockedError(period_id, "re-rated")
                self._set_rate(period, data.usd_eur_rate, "MANUAL")

            if target_status != current_status:
                period.status = target_status
                if target_status == PeriodStatus.LOCKED.value:
                    period.locked_at = datetime.now(timezone.utc)
                elif current_status == PeriodStatus.LOCKED.value:
                    period.locked_at = None

            await self.db.commit()
            await self.db.refresh(period)

        if target_status != current_status:
            logger.info(f"Period {period_id} status {current_status} -> {target_status}")
        return period

    @staticmethod
    def validate_transition(current_status: str, new_status: str) -> None:
        allowed = PERIOD_TRANSITIONS.get(current_status, [])
        if new_status not in allowed:
            raise ValidationError(
                f"Cannot change period from '{current_status}' to '{new_status}'. "
                f"Allowed transitions: {', '.join(allowed) or 'none'}",
                {"current_status": current_status, "requested_status": new_status},
            )

    async def ensure_unlocked(self, period_id: str, action: str = "modified") -> Period:
        period = await self.get(period_id)
        if period.is_locked:
            raise PeriodLockedError(period_id, action)
        return period

    # ==================== Exchange Rate ====================

    async def preview_rate(self, period_id: str) -> ExchangeRateQuote:
        """Look up the period's rate without storing it."""
        await self.get(period_id)
        year, month = parse_period_id(period_id)
        result = await self.rate_provider.get_monthly_rate(year, month)
        return ExchangeRateQuote(
            period_id=period_id,
            year=year,
            month=month,
            rate=result.rate,
            formatted=self.rate_provider.format_rate(result.rate),
            fixing_time=result.fixing_time,
            source=result.source,
        )

    async def fetch_period_rate(self, period_id: str) -> Period:
        """
        Fetch the period's rate and store it.

        The lookup runs before anything is written; a failed lookup leaves
        the period untouched and ExternalServiceError carries the fallback.
        """
        await self.ensure_unlocked(period_id, "re-rated")
        quote = await self.preview_rate(period_id)

        async with exclusive_lock(self.db, period_lock_key(period_id)):
            period = await self.ensure_unlocked(period_id, "re-rated")
            self._set_rate(period, quote.rate, quote.source)
            await self.db.commit()
            await self.db.refresh(period)

        logger.info(f"Period {period_id} rate set to {quote.formatted} ({quote.source})")
        return period

    async def apply_fallback_rate(self, period_id: str) -> Period:
        """Store the configured fallback rate. Only on explicit operator request."""
        fallback = self.rate_provider.get_fallback_rate()

        async with exclusive_lock(self.db, period_lock_key(period_id)):
            period = await self.ensure_unlocked(period_id, "re-rated")
            self._set_rate(period, fallback, "FALLBACK")
            await self.db.commit()
            await self.db.refresh(period)

        logger.warning(f"Period {period_id} rate set to fallback {self.rate_provider.format_rate(fallback)}")
        return period

    def _set_rate(self, period: Period, rate, source: str) -> None:
        value = to_decimal(rate)
        if source == "MANUAL" and not (MIN_MANUAL_RATE <= value <= MAX_MANUAL_RATE):
            raise ValidationError(
                "Invalid exchange rate. Must be between 0.1 and 2.0",
                {"usd_eur_rate": str(value)},
            )
        period.usd_eur_rate = value.quantize(RATE_PLACES)
        period.rate_source = source
        period.rate_fixed_at = datetime.now(timezone.utc)
