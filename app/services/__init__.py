# Services module
from app.services.user_service import UserService
from app.services.hierarchy_service import HierarchyService
from app.services.revenue_service import RevenueService
from app.services.rule_set_service import RuleSetService
from app.services.exchange_rate_service import ExchangeRateService
from app.services.period_service import PeriodService

# Commission / Payout Services
from app.services.commission_engine import CommissionEngine, CommissionService
from app.services.payout_service import PayoutService

__all__ = [
    "UserService",
    "HierarchyService",
    "RevenueService",
    "RuleSetService",
    "ExchangeRateService",
    "PeriodService",
    # Commission / Payout
    "CommissionEngine",
    "CommissionService",
    "PayoutService",
]
