"""Manager / admin accounts."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.creator import Creator


class UserRole(str, Enum):
    """User role enumeration."""
    TEAM_LEADER = "TEAM_LEADER"   # Can have a downline, earns A/B/C and team bonuses
    SALES_REP = "SALES_REP"       # Personal commissions only
    ADMIN = "ADMIN"               # Back office, never paid commissions


MANAGER_ROLES = (UserRole.TEAM_LEADER.value, UserRole.SALES_REP.value)


class User(Base):
    """
    A manager (Team Leader / Sales Rep) or an administrator.

    Users are never hard-deleted: historical ledgers and payouts reference them.
    Deactivate with is_active instead.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="TEAM_LEADER, SALES_REP, ADMIN"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    creators: Mapped[List["Creator"]] = relationship(
        "Creator",
        back_populates="manager"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
