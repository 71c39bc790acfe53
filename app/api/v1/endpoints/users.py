"""API endpoints for manager administration."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.api.deps import DB, AdminUser, CurrentUser
from app.models.user import UserRole
from app.schemas.user import UserCreate, UserUpdate, UserResponse, UserListResponse
from app.services.user_service import UserService

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser):
    """The authenticated user."""
    return current_user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user_in: UserCreate, db: DB, admin: AdminUser):
    """Create a manager or admin account."""
    return await UserService(db).create(user_in)


@router.get("", response_model=UserListResponse)
async def list_users(
    db: DB,
    admin: AdminUser,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = Query(None),
):
    """List users, optionally filtered by role and activity."""
    users = await UserService(db).list(role=role.value if role else None, is_active=is_active)
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in users],
        total=len(users),
    )


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(user_id: UUID, user_in: UserUpdate, db: DB, admin: AdminUser):
    """Update name, role or active flag. Users are never deleted."""
    return await UserService(db).update(user_id, user_in)
