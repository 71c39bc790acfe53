"""
Revenue Service

- aggregate_personal_revenue: pure reduction of a manager's revenue rows
- RevenueService: reads per-manager revenue and imports validated rows
  (the spreadsheet parsing layer produces them) into a period
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, PeriodLockedError
from app.core.money import round2, to_decimal, validate_period_id
from app.models.creator import Creator
from app.models.period import Period
from app.models.revenue import RevenueItem, ImportBatch, ImportBatchStatus
from app.models.user import User, MANAGER_ROLES
from app.schemas.revenue import RevenueRowIn


logger = logging.getLogger(__name__)

MILESTONES = ("m0_5", "m1", "m1_retention", "m2")


@dataclass
class PersonalRevenue:
    """Personal revenue of one manager in one period."""
    base_usd: Decimal = Decimal("0.00")
    activity_usd: Decimal = Decimal("0.00")
    milestones: Dict[str, int] = field(default_factory=lambda: {m: 0 for m in MILESTONES})
    creator_count: int = 0

    @property
    def total_usd(self) -> Decimal:
        return self.base_usd + self.activity_usd

    def to_dict(self) -> dict:
        return {
            "base_usd": self.base_usd,
            "activity_usd": self.activity_usd,
            "total_usd": self.total_usd,
            "milestones": dict(self.milestones),
            "creator_count": self.creator_count,
        }


def aggregate_personal_revenue(items: Iterable) -> PersonalRevenue:
    """
    Sum revenue rows into a PersonalRevenue.

    Milestones are counted per creator, not flagged: three creators
    reaching M1 give m1 == 3.
    """
    summary = PersonalRevenue()
    for item in items:
        summary.base_usd += to_decimal(item.est_base_usd or 0)
        summary.activity_usd += to_decimal(item.est_activity_usd or 0)
        for milestone in MILESTONES:
            if getattr(item, milestone):
                summary.milestones[milestone] += 1
        summary.creator_count += 1

    summary.base_usd = round2(summary.base_usd)
    summary.activity_usd = round2(summary.activity_usd)
    return summary


class RevenueService:
    """Service for revenue rows of a period."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def items_by_manager(self, period_id: str) -> Dict[uuid.UUID, List[RevenueItem]]:
        """All revenue rows of a period grouped by the manager captured at import."""
        result = await self.db.execute(
            select(RevenueItem)
            .where(RevenueItem.period_id == period_id)
            .order_by(RevenueItem.manager_id, RevenueItem.handle)
        )
        grouped: Dict[uuid.UUID, List[RevenueItem]] = {}
        for item in result.scalars().all():
            grouped.setdefault(item.manager_id, []).append(item)
        return grouped

    async def get_personal_revenue(self, period_id: str, manager_id: uuid.UUID) -> PersonalRevenue:
        result = await self.db.execute(
            select(RevenueItem).where(
                RevenueItem.period_id == period_id,
                RevenueItem.manager_id == manager_id,
            )
        )
        return aggregate_personal_revenue(result.scalars().all())

    async def count_items(self, period_id: str) -> int:
        result = await self.db.execute(
            select(func.count(RevenueItem.id)).where(RevenueItem.period_id == period_id)
        )
        return result.scalar() or 0

    # ==================== Import ====================

    async def import_rows(
        self,
        period_id: str,
        rows: List[RevenueRowIn],
        file_name: Optional[str] = None,
    ) -> ImportBatch:
        """
        Upsert validated rows into a period as one import batch.

        Rows whose manager is unknown or inactive are skipped with a warning.
        A creator owned by a different manager is reassigned; the revenue row
        keeps the manager given on the row.
        """
        validate_period_id(period_id)
        period = await self.db.get(Period, period_id)
        if not period:
            raise NotFoundError("Period not found", {"period_id": period_id})
        if period.is_locked:
            raise PeriodLockedError(period_id, "imported into")

        batch = ImportBatch(
            id=uuid.uuid4(),
            period_id=period_id,
            file_name=file_name,
            status=ImportBatchStatus.PROCESSING.value,
            row_count=len(rows),
        )
        self.db.add(batch)
        await self.db.flush()

        managers = await self._load_managers({row.manager_id for row in rows})

        successful = 0
        failed = 0
        warnings: List[str] = []
        errors: List[str] = []

        for index, row in enumerate(rows, start=1):
            manager = managers.get(row.manager_id)
            if manager is None:
                failed += 1
                warnings.append(f"Row {index}: manager {row.manager_id} not found or inactive, "
                                f"creator {row.creator_handle} skipped")
                continue

            creator, warning = await self._find_or_assign_creator(row.creator_handle, manager)
            if warning:
                warnings.append(f"Row {index}: {warning}")

            await self._upsert_item(period_id, batch.id, creator, manager, row)
            successful += 1

        batch.status = (
            ImportBatchStatus.FAILED.value if rows and successful == 0
            else ImportBatchStatus.COMPLETED.value
        )
        batch.error_summary = {
            "successful_rows": successful,
            "failed_rows": failed,
            "warnings": warnings,
            "errors": errors,
        }
        await self.db.commit()
        await self.db.refresh(batch)

        logger.info(f"Import batch {batch.id} for period {period_id}: "
                    f"{successful} rows imported, {failed} skipped, {len(warnings)} warnings")
        return batch

    async def _load_managers(self, manager_ids: set) -> Dict[uuid.UUID, User]:
        if not manager_ids:
            return {}
        result = await self.db.execute(
            select(User).where(
                User.id.in_(list(manager_ids)),
                User.role.in_(MANAGER_ROLES),
                User.is_active.is_(True),
            )
        )
        return {user.id: user for user in result.scalars().all()}

    async def _find_or_assign_creator(self, handle: str, manager: User):
        result = await self.db.execute(select(Creator).where(Creator.handle == handle))
        creator = result.scalar_one_or_none()

        if creator is None:
            creator = Creator(id=uuid.uuid4(), handle=handle, manager_id=manager.id)
            self.db.add(creator)
            await self.db.flush()
            return creator, None

        if creator.manager_id != manager.id:
            previous = creator.manager_id
            creator.manager_id = manager.id
            await self.db.flush()
            logger.warning(f"Creator {handle} reassigned from manager {previous} to {manager.id}")
            return creator, f"creator {handle} reassigned to {manager.name}"

        return creator, None

    async def _upsert_item(
        self,
        period_id: str,
        batch_id: uuid.UUID,
        creator: Creator,
        manager: User,
        row: RevenueRowIn,
    ) -> RevenueItem:
        result = await self.db.execute(
            select(RevenueItem).where(
                RevenueItem.period_id == period_id,
                RevenueItem.creator_id == creator.id,
            )
        )
        item = result.scalar_one_or_none()
        if item is None:
            item = RevenueItem(id=uuid.uuid4(), period_id=period_id, creator_id=creator.id)
            self.db.add(item)

        item.manager_id = manager.id
        item.import_batch_id = batch_id
        item.handle = creator.handle
        item.diamonds = row.diamonds
        item.est_base_usd = round2(row.est_base_usd)
        item.est_activity_usd = round2(row.est_activity_usd)
        item.m0_5 = row.m0_5
        item.m1 = row.m1
        item.m1_retention = row.m1_retention
        item.m2 = row.m2
        await self.db.flush()
        return item
