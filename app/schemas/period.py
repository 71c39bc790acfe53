"""Pydantic schemas for billing periods and exchange rates."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, model_validator

from app.models.period import PeriodStatus
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class PeriodCreate(BaseCreateSchema):
    id: str = Field(..., pattern=r"^\d{6}$", description="YYYYMM")
    year: int = Field(..., ge=2020, le=2100)
    month: int = Field(..., ge=1, le=12)
    usd_eur_rate: Optional[Decimal] = Field(None, ge=Decimal("0.1"), le=Decimal("2.0"))
    status: PeriodStatus = PeriodStatus.ACTIVE

    @model_validator(mode="after")
    def check_id_matches_year_month(self):
        if self.id != f"{self.year:04d}{self.month:02d}":
            raise ValueError("id must equal YYYYMM of year and month")
        return self


class PeriodUpdate(BaseUpdateSchema):
    usd_eur_rate: Optional[Decimal] = Field(None, ge=Decimal("0.1"), le=Decimal("2.0"))
    status: Optional[PeriodStatus] = None


class PeriodResponse(BaseResponseSchema):
    id: str
    year: int
    month: int
    usd_eur_rate: Optional[Decimal] = None
    rate_source: Optional[str] = None
    rate_fixed_at: Optional[datetime] = None
    status: str
    locked_at: Optional[datetime] = None
    created_at: datetime


class PeriodCounts(BaseModel):
    revenue_items: int
    commissions: int
    payouts: int


class PeriodDetailResponse(PeriodResponse):
    counts: PeriodCounts


class PeriodListResponse(BaseModel):
    items: List[PeriodResponse]
    total: int


class ExchangeRateQuote(BaseModel):
    """Result of a successful rate lookup for a period."""
    period_id: str
    year: int
    month: int
    rate: Decimal
    formatted: str
    fixing_time: datetime
    source: str
    business_rule: str = "USD/EUR rate as of the 6th of the month at 12:00 noon"
