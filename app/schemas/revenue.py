"""Pydantic schemas for validated revenue rows and import batches."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import BaseResponseSchema, BaseCreateSchema


class RevenueRowIn(BaseCreateSchema):
    """
    One validated, manager-matched row from the spreadsheet import layer.

    Milestone columns arrive as flags or counts; anything > 0 is achieved.
    """
    creator_handle: str = Field(..., min_length=1, max_length=200)
    manager_id: UUID
    diamonds: int = Field(0, ge=0)
    est_base_usd: Decimal = Field(Decimal("0"), ge=0)
    est_activity_usd: Decimal = Field(Decimal("0"), ge=0)
    m0_5: Union[bool, int] = False
    m1: Union[bool, int] = False
    m1_retention: Union[bool, int] = False
    m2: Union[bool, int] = False

    @field_validator("m0_5", "m1", "m1_retention", "m2", mode="after")
    @classmethod
    def to_flag(cls, v):
        return bool(v) and v > 0

    @field_validator("creator_handle")
    @classmethod
    def strip_handle(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("creator_handle must not be blank")
        return v


class RevenueImportRequest(BaseCreateSchema):
    file_name: Optional[str] = None
    rows: List[RevenueRowIn]


class ImportBatchResponse(BaseResponseSchema):
    id: UUID
    period_id: str
    file_name: Optional[str] = None
    status: str
    row_count: int
    error_summary: Optional[dict] = None
    created_at: datetime


class PersonalRevenueResponse(BaseModel):
    manager_id: Optional[UUID] = None
    base_usd: Decimal
    activity_usd: Decimal
    total_usd: Decimal
    milestones: dict
    creator_count: int
