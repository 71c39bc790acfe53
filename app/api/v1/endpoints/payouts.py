"""API endpoints for payout requests and their approval workflow."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.api.deps import DB, AdminUser, ManagerUser
from app.models.commission import PayoutStatus
from app.schemas.commission import (
    PayoutRequestCreate,
    PayoutStatusUpdate,
    PayoutResponse,
    PayoutListResponse,
)
from app.services.payout_service import PayoutService

router = APIRouter()


@router.post("/request", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def request_payout(payout_in: PayoutRequestCreate, db: DB, current_user: ManagerUser):
    """Snapshot the caller's commissions for a period into a payout request."""
    return await PayoutService(db).request_payout(payout_in.period_id, current_user.id)


@router.get("/mine", response_model=PayoutListResponse)
async def list_my_payouts(db: DB, current_user: ManagerUser):
    payouts = await PayoutService(db).list_for_manager(current_user.id)
    return PayoutListResponse(
        items=[PayoutResponse.model_validate(p) for p in payouts],
        total=len(payouts),
    )


@router.get("", response_model=PayoutListResponse)
async def list_payouts(
    db: DB,
    admin: AdminUser,
    period_id: Optional[str] = Query(None, pattern=r"^\d{6}$"),
    status_filter: Optional[PayoutStatus] = Query(None, alias="status"),
    manager_id: Optional[UUID] = None,
):
    """All payouts, open requests first."""
    payouts = await PayoutService(db).list(
        period_id=period_id,
        status=status_filter.value if status_filter else None,
        manager_id=manager_id,
    )
    return PayoutListResponse(
        items=[PayoutResponse.model_validate(p) for p in payouts],
        total=len(payouts),
    )


@router.patch("/{payout_id}", response_model=PayoutResponse)
async def update_payout_status(
    payout_id: UUID,
    update_in: PayoutStatusUpdate,
    db: DB,
    admin: AdminUser,
):
    """Advance a payout through SUBMITTED -> IN_PROGRESS -> APPROVED -> PAID, or reject it."""
    return await PayoutService(db).update_status(
        payout_id,
        update_in.status,
        notes=update_in.notes,
        processed_by=admin.id,
    )
