"""Register every model with Base.metadata."""
from app.models.user import User, UserRole, MANAGER_ROLES
from app.models.creator import Creator
from app.models.genealogy import OrgEdge, OrgRelation
from app.models.period import Period, PeriodStatus
from app.models.revenue import RevenueItem, ImportBatch, ImportBatchStatus
from app.models.rule_set import RuleSet
from app.models.commission import (
    CommissionLedger,
    ComponentType,
    Payout,
    PayoutLine,
    PayoutStatus,
)

__all__ = [
    "User", "UserRole", "MANAGER_ROLES",
    "Creator",
    "OrgEdge", "OrgRelation",
    "Period", "PeriodStatus",
    "RevenueItem", "ImportBatch", "ImportBatchStatus",
    "RuleSet",
    "CommissionLedger", "ComponentType",
    "Payout", "PayoutLine", "PayoutStatus",
]
