from fastapi import APIRouter

from app.api.v1.endpoints import (
    users,
    genealogy,
    periods,
    rule_sets,
    commissions,
    payouts,
)


api_router = APIRouter(prefix="/api/v1")


# ==================== Managers ====================
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["Users"]
)

# ==================== Genealogy ====================
api_router.include_router(
    genealogy.router,
    prefix="/genealogy",
    tags=["Genealogy"]
)

# ==================== Periods, Rates, Import, Recalculation ====================
api_router.include_router(
    periods.router,
    prefix="/periods",
    tags=["Periods"]
)

# ==================== Rule Sets ====================
api_router.include_router(
    rule_sets.router,
    prefix="/rule-sets",
    tags=["Rule Sets"]
)

# ==================== Commissions ====================
api_router.include_router(
    commissions.router,
    prefix="/commissions",
    tags=["Commissions"]
)

# ==================== Payouts ====================
api_router.include_router(
    payouts.router,
    prefix="/payouts",
    tags=["Payouts"]
)
