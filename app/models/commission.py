"""Commission ledger and payout models.

Supports:
- Per-period, per-manager commission components (regenerated on recalculation)
- Payout requests snapshotting the ledger
- Payout approval workflow (see app.services.payout_state_machine)
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, JSONType, MoneyType

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.period import Period


class ComponentType(str, Enum):
    """Commission component enumeration."""
    BASE_COMMISSION = "BASE_COMMISSION"           # % of personal base revenue
    ACTIVITY_COMMISSION = "ACTIVITY_COMMISSION"   # % of personal activity revenue
    M0_5_BONUS = "M0_5_BONUS"                     # Fixed EUR per half-milestone
    M1_BONUS = "M1_BONUS"
    M1_RETENTION_BONUS = "M1_RETENTION_BONUS"
    M2_BONUS = "M2_BONUS"
    DOWNLINE_A = "DOWNLINE_A"                     # % of depth-1 descendant revenue
    DOWNLINE_B = "DOWNLINE_B"                     # depth 2
    DOWNLINE_C = "DOWNLINE_C"                     # depth 3
    TEAM_BONUS = "TEAM_BONUS"                     # % of team revenue above threshold
    TEAM_RECRUITMENT = "TEAM_RECRUITMENT"         # Flat monthly EUR
    TEAM_GRADUATION = "TEAM_GRADUATION"           # Flat monthly EUR


class PayoutStatus(str, Enum):
    """Payout request status."""
    SUBMITTED = "SUBMITTED"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"


class CommissionLedger(Base):
    """
    One commission component for a manager in a period.

    A full recalculation deletes every row of the period and writes
    them again, so the ledger is always the output of one run.
    """
    __tablename__ = "commission_ledger"
    __table_args__ = (
        Index("ix_commission_ledger_period_user", "period_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    period_id: Mapped[str] = mapped_column(
        String(6),
        ForeignKey("periods.id", ondelete="RESTRICT"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    component: Mapped[str] = mapped_column(String(50), nullable=False)

    amount_usd: Mapped[Optional[Decimal]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Null for fixed EUR bonuses"
    )
    amount_eur: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    calc: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Inputs that reproduce amount_usd / amount_eur"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class Payout(Base):
    """
    Payout request for one manager and one period.

    amount_eur and the lines are a snapshot of the ledger taken at request
    time; only status, notes and processed_at change afterwards.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        UniqueConstraint("period_id", "manager_id", name="uq_payout_period_manager"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    period_id: Mapped[str] = mapped_column(
        String(6),
        ForeignKey("periods.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    manager_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    amount_eur: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=PayoutStatus.SUBMITTED.value,
        index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    manager: Mapped["User"] = relationship("User", foreign_keys=[manager_id])
    period: Mapped["Period"] = relationship("Period")
    lines: Mapped[List["PayoutLine"]] = relationship(
        "PayoutLine",
        back_populates="payout",
        cascade="all, delete-orphan",
        order_by="PayoutLine.component",
    )

    @property
    def allowed_transitions(self) -> List[str]:
        from app.services.payout_state_machine import get_allowed_transitions
        return get_allowed_transitions(self.status)


class PayoutLine(Base):
    """Snapshot of one ledger component inside a payout. Never edited."""
    __tablename__ = "payout_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    payout_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("payouts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    component: Mapped[str] = mapped_column(String(50), nullable=False)
    amount_eur: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    payout: Mapped["Payout"] = relationship("Payout", back_populates="lines")
