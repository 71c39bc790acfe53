"""API endpoints for commission rule sets."""
from uuid import UUID

from fastapi import APIRouter, status

from app.api.deps import DB, AdminUser
from app.core.exceptions import NotFoundError
from app.schemas.rule_set import RuleSetCreate, RuleSetResponse, RuleSetListResponse
from app.services.rule_set_service import RuleSetService

router = APIRouter()


@router.post("", response_model=RuleSetResponse, status_code=status.HTTP_201_CREATED)
async def create_rule_set(rule_set_in: RuleSetCreate, db: DB, admin: AdminUser):
    """Create a new rule set version. Existing rule sets are never edited."""
    return await RuleSetService(db).create(rule_set_in)


@router.get("", response_model=RuleSetListResponse)
async def list_rule_sets(db: DB, admin: AdminUser, include_inactive: bool = True):
    rule_sets = await RuleSetService(db).list(include_inactive=include_inactive)
    return RuleSetListResponse(
        items=[RuleSetResponse.model_validate(r) for r in rule_sets],
        total=len(rule_sets),
    )


@router.get("/active", response_model=RuleSetResponse)
async def get_active_rule_set(db: DB, admin: AdminUser):
    """The rule set a recalculation would use right now."""
    rule_set = await RuleSetService(db).get_active()
    if rule_set is None:
        raise NotFoundError("No active rule set")
    return rule_set


@router.post("/{rule_set_id}/deactivate", response_model=RuleSetResponse)
async def deactivate_rule_set(rule_set_id: UUID, db: DB, admin: AdminUser):
    return await RuleSetService(db).deactivate(rule_set_id)
