"""Pydantic schemas for managers and admins."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.user import UserRole
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class UserCreate(BaseCreateSchema):
    name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: UserRole
    is_active: bool = True


class UserUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class UserBrief(BaseResponseSchema):
    id: UUID
    name: str
    email: str
    role: str
    is_active: bool


class UserResponse(UserBrief):
    created_at: datetime
    updated_at: datetime


class UserListResponse(BaseModel):
    items: List[UserResponse]
    total: int
