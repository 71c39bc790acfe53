"""API endpoints for billing periods, exchange rates, revenue import and recalculation."""
from typing import Annotated, Optional

from fastapi import APIRouter, Path, Query, status

from app.api.deps import DB, AdminUser, RateProvider
from app.models.period import PeriodStatus
from app.schemas.commission import CalculationSummary
from app.schemas.period import (
    PeriodCreate,
    PeriodUpdate,
    PeriodResponse,
    PeriodCounts,
    PeriodDetailResponse,
    PeriodListResponse,
    ExchangeRateQuote,
)
from app.schemas.revenue import RevenueImportRequest, ImportBatchResponse
from app.services.commission_engine import CommissionService
from app.services.period_service import PeriodService
from app.services.revenue_service import RevenueService

router = APIRouter()

PeriodId = Annotated[str, Path(pattern=r"^\d{6}$", description="YYYYMM")]


# ==================== Periods ====================

@router.post("", response_model=PeriodResponse, status_code=status.HTTP_201_CREATED)
async def create_period(period_in: PeriodCreate, db: DB, admin: AdminUser):
    """Create a billing period."""
    return await PeriodService(db).create(period_in)


@router.get("", response_model=PeriodListResponse)
async def list_periods(
    db: DB,
    admin: AdminUser,
    status_filter: Optional[PeriodStatus] = Query(None, alias="status"),
):
    periods = await PeriodService(db).list(status=status_filter.value if status_filter else None)
    return PeriodListResponse(
        items=[PeriodResponse.model_validate(p) for p in periods],
        total=len(periods),
    )


@router.get("/{period_id}", response_model=PeriodDetailResponse)
async def get_period(db: DB, admin: AdminUser, period_id: PeriodId):
    """Period with counts of revenue items, ledger rows and payouts."""
    period, counts = await PeriodService(db).get_with_counts(period_id)
    return PeriodDetailResponse(
        **PeriodResponse.model_validate(period).model_dump(),
        counts=PeriodCounts(**counts),
    )


@router.patch("/{period_id}", response_model=PeriodResponse)
async def update_period(period_in: PeriodUpdate, db: DB, admin: AdminUser, period_id: PeriodId):
    """Set the rate manually and/or change status (lock, unlock)."""
    return await PeriodService(db).update(period_id, period_in)


# ==================== Exchange Rate ====================

@router.get("/{period_id}/exchange-rate", response_model=ExchangeRateQuote)
async def preview_exchange_rate(
    db: DB,
    admin: AdminUser,
    rate_provider: RateProvider,
    period_id: PeriodId,
):
    """Look up the USD/EUR rate for the 6th of the period's month at noon without storing it."""
    return await PeriodService(db, rate_provider).preview_rate(period_id)


@router.post("/{period_id}/exchange-rate", response_model=PeriodResponse)
async def fetch_exchange_rate(
    db: DB,
    admin: AdminUser,
    rate_provider: RateProvider,
    period_id: PeriodId,
):
    """
    Fetch and store the period's rate.

    When every source fails the response is a 502 carrying the fallback
    rate; it is only stored through the fallback endpoint.
    """
    return await PeriodService(db, rate_provider).fetch_period_rate(period_id)


@router.post("/{period_id}/exchange-rate/fallback", response_model=PeriodResponse)
async def apply_fallback_rate(
    db: DB,
    admin: AdminUser,
    rate_provider: RateProvider,
    period_id: PeriodId,
):
    """Explicitly accept the configured fallback rate."""
    return await PeriodService(db, rate_provider).apply_fallback_rate(period_id)


# ==================== Revenue & Recalculation ====================

@router.post(
    "/{period_id}/revenue",
    response_model=ImportBatchResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_revenue(
    import_in: RevenueImportRequest,
    db: DB,
    admin: AdminUser,
    period_id: PeriodId,
):
    """Import validated, manager-matched revenue rows into the period."""
    return await RevenueService(db).import_rows(period_id, import_in.rows, import_in.file_name)


@router.post("/{period_id}/recalculate", response_model=CalculationSummary)
async def recalculate_commissions(db: DB, admin: AdminUser, period_id: PeriodId):
    """Replace the period's commission ledger with a fresh calculation."""
    return await CommissionService(db).calculate_all_commissions(period_id)
