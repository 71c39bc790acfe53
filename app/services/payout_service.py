"""
Payout Service

A payout request snapshots a manager's ledger for one period into
PayoutLine rows; afterwards only status, notes and processed_at change
(see app.services.payout_state_machine).
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicatePayoutError, NotFoundError, ValidationError
from app.core.money import round2, to_decimal, validate_period_id
from app.models.commission import CommissionLedger, Payout, PayoutLine, PayoutStatus
from app.models.period import Period
from app.services.payout_state_machine import transition_payout


logger = logging.getLogger(__name__)

# Open requests first in the admin list
STATUS_ORDER = case(
    {
        PayoutStatus.SUBMITTED.value: 0,
        PayoutStatus.IN_PROGRESS.value: 1,
        PayoutStatus.APPROVED.value: 2,
        PayoutStatus.PAID.value: 3,
        PayoutStatus.REJECTED.value: 4,
    },
    value=Payout.status,
    else_=5,
)


class PayoutService:
    """Service for payout requests and their approval workflow."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def request_payout(self, period_id: str, manager_id: uuid.UUID) -> Payout:
        """
        Snapshot the manager's ledger for the period into a new payout.

        Raises:
            DuplicatePayoutError: a payout already exists for (period, manager)
            ValidationError: no commissions, or their sum is not positive
            NotFoundError: period does not exist
        """
        validate_period_id(period_id)
        if not await self.db.get(Period, period_id):
            raise NotFoundError("Period not found", {"period_id": period_id})

        if await self._find(period_id, manager_id):
            raise DuplicatePayoutError(
                "Payout request already exists for this period",
                {"period_id": period_id, "manager_id": str(manager_id)},
            )

        result = await self.db.execute(
            select(CommissionLedger)
            .where(
                CommissionLedger.period_id == period_id,
                CommissionLedger.user_id == manager_id,
            )
            .order_by(CommissionLedger.component)
        )
        entries = result.scalars().all()
        if not entries:
            raise ValidationError(
                "No commissions found for this period", {"period_id": period_id}
            )

        total = Decimal("0.00")
        for entry in entries:
            total = round2(total + to_decimal(entry.amount_eur))
        if total <= 0:
            raise ValidationError(
                "No commission amount available for payout",
                {"period_id": period_id, "amount_eur": str(total)},
            )

        payout = Payout(
            id=uuid.uuid4(),
            period_id=period_id,
            manager_id=manager_id,
            amount_eur=total,
            status=PayoutStatus.SUBMITTED.value,
            requested_at=datetime.now(timezone.utc),
            lines=[
                PayoutLine(id=uuid.uuid4(), component=entry.component, amount_eur=entry.amount_eur)
                for entry in entries
            ],
        )
        self.db.add(payout)
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent request for the same pair lost the race on the unique constraint
            await self.db.rollback()
            raise DuplicatePayoutError(
                "Payout request already exists for this period",
                {"period_id": period_id, "manager_id": str(manager_id)},
            )

        logger.info(f"Payout {payout.id} requested: manager {manager_id}, period {period_id}, EUR {total}")
        return await self.get(payout.id)

    async def update_status(
        self,
        payout_id: uuid.UUID,
        new_status: PayoutStatus,
        notes: Optional[str] = None,
        processed_by: Optional[uuid.UUID] = None,
    ) -> Payout:
        payout = await self.get(payout_id)
        previous = payout.status

        transition_payout(payout, new_status.value, user_id=processed_by, notes=notes)
        await self.db.commit()

        if previous != new_status.value:
            logger.info(f"Payout {payout_id} status {previous} -> {new_status.value}")
        return await self.get(payout_id)

    async def get(self, payout_id: uuid.UUID) -> Payout:
        result = await self.db.execute(
            select(Payout)
            .options(selectinload(Payout.lines))
            .where(Payout.id == payout_id)
            .execution_options(populate_existing=True)
        )
        payout = result.scalar_one_or_none()
        if not payout:
            raise NotFoundError("Payout not found", {"payout_id": str(payout_id)})
        return payout

    async def list(
        self,
        period_id: Optional[str] = None,
        status: Optional[str] = None,
        manager_id: Optional[uuid.UUID] = None,
    ) -> Sequence[Payout]:
        query = select(Payout).options(selectinload(Payout.lines))
        if period_id:
            validate_period_id(period_id)
            query = query.where(Payout.period_id == period_id)
        if status:
            query = query.where(Payout.status == status)
        if manager_id:
            query = query.where(Payout.manager_id == manager_id)
        result = await self.db.execute(
            query.order_by(STATUS_ORDER, Payout.requested_at.desc())
        )
        return result.scalars().all()

    async def list_for_manager(self, manager_id: uuid.UUID) -> Sequence[Payout]:
        result = await self.db.execute(
            select(Payout)
            .options(selectinload(Payout.lines))
            .where(Payout.manager_id == manager_id)
            .order_by(Payout.period_id.desc())
        )
        return result.scalars().all()

    async def _find(self, period_id: str, manager_id: uuid.UUID) -> Optional[Payout]:
        result = await self.db.execute(
            select(Payout).where(Payout.period_id == period_id, Payout.manager_id == manager_id)
        )
        return result.scalar_one_or_none()
