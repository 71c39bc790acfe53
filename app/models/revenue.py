"""Imported per-creator revenue and import batches."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, JSONType, MoneyType


class ImportBatchStatus(str, Enum):
    """Import batch status."""
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ImportBatch(Base):
    """One import run of validated revenue rows into a period."""
    __tablename__ = "import_batches"

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
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=ImportBatchStatus.PROCESSING.value
    )
    row_count: Mapped[int] = mapped_column(Integer, default=0)
    error_summary: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="successful/failed rows, warnings, errors"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class RevenueItem(Base):
    """
    One row per (period, creator).

    manager_id is denormalized at import time so later creator
    reassignment does not move historical revenue.
    """
    __tablename__ = "revenue_items"
    __table_args__ = (
        UniqueConstraint("period_id", "creator_id", name="uq_revenue_item_period_creator"),
        Index("ix_revenue_items_period_manager", "period_id", "manager_id"),
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
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creators.id", ondelete="RESTRICT"),
        nullable=False
    )
    manager_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    import_batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("import_batches.id", ondelete="SET NULL"),
        nullable=True
    )
    handle: Mapped[str] = mapped_column(String(200), nullable=False)

    diamonds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    est_base_usd: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    est_activity_usd: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Milestones achieved by this creator in the period
    m0_5: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    m1: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    m1_retention: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    m2: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
