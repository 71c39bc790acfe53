"""Pydantic schemas for the commission ledger, recalculation and payouts."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.commission import PayoutStatus
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from app.schemas.revenue import PersonalRevenueResponse
from app.schemas.user import UserBrief


# ==================== Ledger Schemas ====================

class LedgerEntryResponse(BaseResponseSchema):
    id: UUID
    period_id: str
    user_id: UUID
    component: str
    amount_usd: Optional[Decimal] = None
    amount_eur: Decimal
    calc: Optional[dict] = None
    created_at: datetime


class ComponentBreakdown(BaseModel):
    count: int
    total_eur: Decimal


class ManagerCalculationResponse(BaseModel):
    manager_id: UUID
    role: str
    total_eur: Decimal
    component_count: int


class CalculationSummary(BaseModel):
    """Returned by a recalculation run."""
    period_id: str
    total_managers: int
    total_commission_eur: Decimal
    total_revenue_items: int
    component_breakdown: Dict[str, ComponentBreakdown]
    calculations: List[ManagerCalculationResponse] = []


class StatementKpis(BaseModel):
    base: Decimal
    activity: Decimal
    bonus: Decimal
    downline: Decimal
    team: Decimal
    total: Decimal


class ManagerStatement(BaseModel):
    """Per-manager view of one period (dashboard feed)."""
    period_id: str
    manager: UserBrief
    entries: List[LedgerEntryResponse]
    component_totals: Dict[str, Decimal]
    kpis: StatementKpis
    personal_revenue: PersonalRevenueResponse
    payout: Optional["PayoutResponse"] = None


# ==================== Payout Schemas ====================

class PayoutRequestCreate(BaseCreateSchema):
    period_id: str = Field(..., pattern=r"^\d{6}$")


class PayoutStatusUpdate(BaseUpdateSchema):
    status: PayoutStatus
    notes: Optional[str] = Field(None, max_length=2000)


class PayoutLineResponse(BaseResponseSchema):
    component: str
    amount_eur: Decimal


class PayoutResponse(BaseResponseSchema):
    id: UUID
    period_id: str
    manager_id: UUID
    amount_eur: Decimal
    status: str
    notes: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    lines: List[PayoutLineResponse] = []
    allowed_transitions: List[str] = []


class PayoutListResponse(BaseModel):
    items: List[PayoutResponse]
    total: int


ManagerStatement.model_rebuild()
