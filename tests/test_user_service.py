"""Tests for manager administration."""
import asyncio
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from app.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.core.locks import exclusive_lock, HIERARCHY_LOCK_KEY
from app.main import bootstrap_admin
from app.models.genealogy import OrgEdge, OrgRelation
from app.models.user import UserRole
from app.schemas.user import UserCreate, UserUpdate
from app.services.hierarchy_service import HierarchyService
from app.services.rule_set_service import RuleSetService
from app.services.user_service import UserService


async def test_create_lowercases_email(db):
    user = await UserService(db).create(UserCreate(name="Nina", email="Nina@Example.COM", role=UserRole.SALES_REP))

    assert user.email == "nina@example.com"
    assert await UserService(db).get_by_email("NINA@example.com") is not None


async def test_email_is_unique(db, make_user):
    await make_user("Nina", UserRole.SALES_REP)

    with pytest.raises(ValidationError, match="already exists"):
        await UserService(db).create(UserCreate(name="Nina B", email="nina@example.com", role=UserRole.SALES_REP))


async def test_get_unknown_user(db):
    with pytest.raises(NotFoundError):
        await UserService(db).get(uuid.uuid4())


async def test_list_filters(db, make_user):
    await make_user("Tina")
    await make_user("Sam", UserRole.SALES_REP)
    await make_user("Gone", UserRole.SALES_REP, is_active=False)
    service = UserService(db)

    assert [u.name for u in await service.list(role=UserRole.SALES_REP.value)] == ["Gone", "Sam"]
    assert [u.name for u in await service.list(role=UserRole.SALES_REP.value, is_active=True)] == ["Sam"]


async def test_team_leader_with_reports_keeps_role(db, make_user):
    tina = await make_user("Tina")
    sam = await make_user("Sam", UserRole.SALES_REP)
    await HierarchyService(db).create_edge(tina.id, sam.id)

    with pytest.raises(ValidationError, match="active reports"):
        await UserService(db).update(tina.id, UserUpdate(role=UserRole.SALES_REP))


async def test_team_leader_without_reports_can_change_role(db, make_user):
    tina = await make_user("Tina")

    user = await UserService(db).update(tina.id, UserUpdate(role=UserRole.SALES_REP))

    assert user.role == UserRole.SALES_REP.value


async def test_deactivation_rebuilds_closure(db, make_user):
    tina = await make_user("Tina")
    sam = await make_user("Sam", UserRole.SALES_REP)
    await HierarchyService(db).create_edge(tina.id, sam.id)

    await UserService(db).update(tina.id, UserUpdate(is_active=False))

    # Inactive managers are no longer closure roots
    result = await db.execute(select(OrgRelation).where(OrgRelation.ancestor_id == tina.id))
    assert result.scalars().all() == []


async def test_name_only_update(db, make_user):
    sam = await make_user("Sam", UserRole.SALES_REP)

    user = await UserService(db).update(sam.id, UserUpdate(name="Samuel"))

    assert user.name == "Samuel"
    assert user.role == UserRole.SALES_REP.value


async def test_role_check_runs_under_hierarchy_lock(db, make_user):
    tina = await make_user("Tina")
    sam = await make_user("Sam", UserRole.SALES_REP)

    async with exclusive_lock(db, HIERARCHY_LOCK_KEY):
        demotion = asyncio.create_task(
            UserService(db).update(tina.id, UserUpdate(role=UserRole.SALES_REP))
        )
        for _ in range(3):
            await asyncio.sleep(0)
        assert not demotion.done()

        # A report attached while the demotion waits for the lock
        db.add(OrgEdge(
            id=uuid.uuid4(),
            parent_id=tina.id,
            child_id=sam.id,
            valid_from=datetime.now(timezone.utc),
        ))
        await db.commit()

    with pytest.raises(ValidationError, match="active reports"):
        await demotion
    assert tina.role == UserRole.TEAM_LEADER.value


async def test_bootstrap_creates_admin_once(session_factory, monkeypatch):
    monkeypatch.setattr(settings, "BOOTSTRAP_ADMIN_EMAIL", "Root@Example.com")

    await bootstrap_admin(session_factory)
    await bootstrap_admin(session_factory)

    async with session_factory() as session:
        admins = await UserService(session).list(role=UserRole.ADMIN.value)
        rule_sets = await RuleSetService(session).list()
    assert [a.email for a in admins] == ["root@example.com"]
    assert len(rule_sets) == 1
