"""API endpoints for commission statements."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from app.api.deps import DB, AdminUser, ManagerUser
from app.schemas.commission import ManagerStatement
from app.services.commission_engine import CommissionService

router = APIRouter()

PeriodId = Annotated[str, Path(pattern=r"^\d{6}$", description="YYYYMM")]


@router.get("/{period_id}", response_model=ManagerStatement)
async def get_my_statement(period_id: PeriodId, db: DB, current_user: ManagerUser):
    """The authenticated manager's commissions for a period."""
    return await CommissionService(db).get_manager_statement(period_id, current_user.id)


@router.get("/{period_id}/managers/{manager_id}", response_model=ManagerStatement)
async def get_manager_statement(period_id: PeriodId, manager_id: UUID, db: DB, admin: AdminUser):
    return await CommissionService(db).get_manager_statement(period_id, manager_id)
