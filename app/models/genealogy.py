"""Organisation hierarchy: direct edges and their materialized closure."""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.user import User


class OrgEdge(Base):
    """
    Direct parent -> child link between two managers.

    valid_to IS NULL means the edge is active. Edges are never deleted;
    removal sets valid_to so the history stays auditable.
    """
    __tablename__ = "org_edges"
    __table_args__ = (
        CheckConstraint("parent_id <> child_id", name="ck_org_edges_not_self"),
        Index("ix_org_edges_child_active", "child_id", "valid_to"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    parent_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    child_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    valid_to: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    parent: Mapped["User"] = relationship("User", foreign_keys=[parent_id])
    child: Mapped["User"] = relationship("User", foreign_keys=[child_id])

    @property
    def is_active(self) -> bool:
        return self.valid_to is None


class OrgRelation(Base):
    """
    Transitive closure of active edges, depth 1..3 (levels A/B/C).

    A cache: rebuilt wholesale after every structural edge change,
    never written by anything else.
    """
    __tablename__ = "org_relations"
    __table_args__ = (
        UniqueConstraint("ancestor_id", "descendant_id", name="uq_org_relation_pair"),
        Index("ix_org_relations_ancestor_depth", "ancestor_id", "depth"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ancestor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    descendant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, comment="1=A, 2=B, 3=C")

    descendant: Mapped["User"] = relationship("User", foreign_keys=[descendant_id])
