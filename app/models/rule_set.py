"""Versioned commission rule sets."""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, JSONType


class RuleSet(Base):
    """
    Commission rates per role, downline and team-bonus configuration.

    The active rule set at calculation time is the one with the latest
    active_from among is_active rows. Rows are not edited once used;
    new rates go into a new row.
    """
    __tablename__ = "rule_sets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    json_rules: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        comment="Validated by app.schemas.rule_set.CommissionRules"
    )

    active_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
