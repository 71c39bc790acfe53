"""Billing periods (one calendar month, YYYYMM)."""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import RateType


class PeriodStatus(str, Enum):
    """Period status."""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    LOCKED = "LOCKED"   # Frozen deal: no import, recalculation or rate change


class Period(Base):
    """
    One billing month.

    usd_eur_rate is fixed once per period (6th of the month, noon) and acts
    as the permanent cache of the exchange-rate lookup.
    """
    __tablename__ = "periods"

    id: Mapped[str] = mapped_column(
        String(6),
        primary_key=True,
        comment="YYYYMM"
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)

    usd_eur_rate: Mapped[Optional[Decimal]] = mapped_column(RateType, nullable=True)
    rate_source: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="PRIMARY, BACKUP, FALLBACK, MANUAL"
    )
    rate_fixed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=PeriodStatus.ACTIVE.value,
        index=True
    )
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_locked(self) -> bool:
        return self.status == PeriodStatus.LOCKED.value
