import os

# Settings and the app engine are built at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base, build_engine
from app.models.period import Period, PeriodStatus
from app.models.user import User, UserRole
from app.schemas.rule_set import RuleSetCreate
from app.services.exchange_rate_service import ExchangeRateService
from app.services.rule_set_service import RuleSetService


PRIMARY_HOST = "api.exchangerate-api.com"
BACKUP_HOST = "api.fxratesapi.com"


@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make_user(name: str, role: UserRole = UserRole.TEAM_LEADER, is_active: bool = True) -> User:
        user = User(
            id=uuid.uuid4(),
            name=name,
            email=f"{name.lower().replace(' ', '.')}@example.com",
            role=role.value,
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        return user
    return _make_user


@pytest.fixture
def make_period(db):
    async def _make_period(
        period_id: str = "202506",
        rate=Decimal("0.920000"),
        status: PeriodStatus = PeriodStatus.ACTIVE,
    ) -> Period:
        period = Period(
            id=period_id,
            year=int(period_id[:4]),
            month=int(period_id[4:]),
            usd_eur_rate=rate,
            rate_source="MANUAL" if rate is not None else None,
            status=status.value,
        )
        db.add(period)
        await db.commit()
        return period
    return _make_period


@pytest.fixture
async def default_rules(db):
    return await RuleSetService(db).create(RuleSetCreate(
        name="Default Commission Rules",
        active_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
    ))


def rate_transport(primary=None, backup=None, calls=None) -> httpx.MockTransport:
    """
    Mock both rate sources.

    primary/backup: an EUR rate, an HTTP status int, an Exception to raise,
    or None for HTTP 503.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request.url.host)
        answer = primary if request.url.host == PRIMARY_HOST else backup
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return httpx.Response(503)
        if isinstance(answer, int) and not isinstance(answer, bool) and answer >= 100:
            return httpx.Response(answer)
        return httpx.Response(200, json={"base": "USD", "rates": {"EUR": answer}})

    return httpx.MockTransport(handler)


FIXED_NOW = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)


def rate_provider(primary=None, backup=None, calls=None, now=FIXED_NOW) -> ExchangeRateService:
    return ExchangeRateService(
        transport=rate_transport(primary, backup, calls),
        now=lambda: now,
    )
