"""Manager and admin accounts. Users are deactivated, never deleted."""

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.core.locks import exclusive_lock, HIERARCHY_LOCK_KEY
from app.models.genealogy import OrgEdge
from app.models.user import User, UserRole
from app.schemas.user import UserCreate, UserUpdate
from app.services.hierarchy_service import HierarchyService


logger = logging.getLogger(__name__)


class UserService:
    """Service for manager administration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: UserCreate) -> User:
        email = data.email.strip().lower()

        async with exclusive_lock(self.db, HIERARCHY_LOCK_KEY):
            existing = await self.db.execute(select(User.id).where(User.email == email))
            if existing.scalar_one_or_none():
                raise ValidationError("A user with this email already exists", {"email": email})

            user = User(
                id=uuid.uuid4(),
                name=data.name.strip(),
                email=email,
                role=data.role.value,
                is_active=data.is_active,
            )
            self.db.add(user)
            await self.db.flush()

            if user.is_manager and user.is_active:
                # New root in the closure
                await HierarchyService(self.db).rebuild_relations()

            await self.db.commit()

        await self.db.refresh(user)
        logger.info(f"User {user.email} created as {user.role}")
        return user

    async def get(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", {"user_id": str(user_id)})
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def list(
        self,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Sequence[User]:
        query = select(User).order_by(User.name)
        if role:
            query = query.where(User.role == role)
        if is_active is not None:
            query = query.where(User.is_active.is_(is_active))
        result = await self.db.execute(query)
        return result.scalars().all()

    async def update(self, user_id: uuid.UUID, data: UserUpdate) -> User:
        """
        Update name, role or active flag.

        A Team Leader with active reports cannot change role, since parents
        must be Team Leaders. Role or activity changes rebuild the closure
        in the same transaction, under the hierarchy lock.
        """
        update_data = data.model_dump(exclude_unset=True)

        async with exclusive_lock(self.db, HIERARCHY_LOCK_KEY):
            user = await self.get(user_id)

            new_role = update_data.get("role")
            if new_role is not None:
                new_role = UserRole(new_role).value
                if user.role == UserRole.TEAM_LEADER.value and new_role != user.role:
                    children = await self.db.execute(
                        select(OrgEdge.id).where(
                            OrgEdge.parent_id == user_id,
                            OrgEdge.valid_to.is_(None),
                        ).limit(1)
                    )
                    if children.scalar_one_or_none():
                        raise ValidationError(
                            "Team Leader still has active reports. Remove those edges first",
                            {"user_id": str(user_id)},
                        )
                update_data["role"] = new_role

            structural = (
                ("role" in update_data and update_data["role"] != user.role)
                or ("is_active" in update_data and update_data["is_active"] != user.is_active)
            )

            for field, value in update_data.items():
                if value is not None:
                    setattr(user, field, value)
            await self.db.flush()

            if structural:
                await HierarchyService(self.db).rebuild_relations()

            await self.db.commit()

        await self.db.refresh(user)
        logger.info(f"User {user.email} updated: {', '.join(update_data) or 'no changes'}")
        return user
