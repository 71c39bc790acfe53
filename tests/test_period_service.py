"""Tests for billing periods and their fixed exchange rate."""
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError

from app.core.exceptions import (
    ExternalServiceError,
    NotFoundError,
    PeriodLockedError,
    ValidationError,
)
from app.models.period import PeriodStatus
from app.schemas.period import PeriodCreate, PeriodUpdate
from app.services.period_service import PeriodService
from tests.conftest import rate_provider


def june(**extra) -> PeriodCreate:
    return PeriodCreate(id="202506", year=2025, month=6, **extra)


# ==================== CRUD ====================

async def test_create_period(db):
    period = await PeriodService(db).create(june(usd_eur_rate=Decimal("0.92")))

    assert period.status == PeriodStatus.ACTIVE.value
    assert period.usd_eur_rate == Decimal("0.920000")
    assert period.rate_source == "MANUAL"


async def test_create_duplicate_period(db):
    service = PeriodService(db)
    await service.create(june())

    with pytest.raises(ValidationError, match="already exists"):
        await service.create(june())


async def test_period_cannot_be_created_locked(db):
    with pytest.raises(ValidationError):
        await PeriodService(db).create(june(status=PeriodStatus.LOCKED))


def test_period_id_must_match_year_and_month():
    with pytest.raises(SchemaValidationError):
        PeriodCreate(id="202507", year=2025, month=6)


async def test_get_unknown_period(db):
    with pytest.raises(NotFoundError):
        await PeriodService(db).get("209901")


async def test_get_with_malformed_id(db):
    with pytest.raises(ValidationError):
        await PeriodService(db).get("2025-06")


async def test_list_is_newest_first_and_filterable(db, make_period):
    await make_period("202505", status=PeriodStatus.LOCKED)
    await make_period("202506")
    await make_period("202507", status=PeriodStatus.DRAFT)
    service = PeriodService(db)

    assert [p.id for p in await service.list()] == ["202507", "202506", "202505"]
    assert [p.id for p in await service.list(PeriodStatus.LOCKED.value)] == ["202505"]


async def test_counts(db, make_period):
    await make_period("202506")

    period, counts = await PeriodService(db).get_with_counts("202506")

    assert period.id == "202506"
    assert counts == {"revenue_items": 0, "commissions": 0, "payouts": 0}


# ==================== Status ====================

async def test_lock_and_unlock(db, make_period):
    await make_period("202506")
    service = PeriodService(db)

    locked = await service.update("202506", PeriodUpdate(status=PeriodStatus.LOCKED))
    assert locked.status == PeriodStatus.LOCKED.value
    assert locked.locked_at is not None

    unlocked = await service.update("202506", PeriodUpdate(status=PeriodStatus.ACTIVE))
    assert unlocked.status == PeriodStatus.ACTIVE.value
    assert unlocked.locked_at is None


async def test_locked_period_cannot_go_back_to_draft(db, make_period):
    await make_period("202506", status=PeriodStatus.LOCKED)

    with pytest.raises(ValidationError, match="Cannot change period"):
        await PeriodService(db).update("202506", PeriodUpdate(status=PeriodStatus.DRAFT))


async def test_draft_cannot_be_locked_directly(db, make_period):
    await make_period("202506", status=PeriodStatus.DRAFT)

    with pytest.raises(ValidationError):
        await PeriodService(db).update("202506", PeriodUpdate(status=PeriodStatus.LOCKED))


async def test_rate_change_on_locked_period(db, make_period):
    await make_period("202506", status=PeriodStatus.LOCKED)

    with pytest.raises(PeriodLockedError):
        await PeriodService(db).update("202506", PeriodUpdate(usd_eur_rate=Decimal("0.95")))


async def test_unlock_and_rerate_together(db, make_period):
    await make_period("202506", status=PeriodStatus.LOCKED)

    period = await PeriodService(db).update(
        "202506", PeriodUpdate(status=PeriodStatus.ACTIVE, usd_eur_rate=Decimal("0.95"))
    )

    assert period.status == PeriodStatus.ACTIVE.value
    assert period.usd_eur_rate == Decimal("0.950000")


async def test_manual_rate_out_of_range(db, make_period):
    await make_period("202506")
    update = PeriodUpdate.model_construct(usd_eur_rate=Decimal("5"), status=None)

    with pytest.raises(ValidationError, match="between 0.1 and 2.0"):
        await PeriodService(db).update("202506", update)


async def test_ensure_unlocked(db, make_period):
    await make_period("202506", status=PeriodStatus.LOCKED)

    with pytest.raises(PeriodLockedError, match="imported into"):
        await PeriodService(db).ensure_unlocked("202506", "imported into")


# ==================== Exchange Rate ====================

async def test_fetch_rate_is_stored_with_source(db, make_period):
    await make_period("202506", rate=None)

    period = await PeriodService(db, rate_provider(primary=0.9134)).fetch_period_rate("202506")

    assert period.usd_eur_rate == Decimal("0.913400")
    assert period.rate_source == "PRIMARY"
    assert period.rate_fixed_at is not None


async def test_failed_fetch_leaves_period_untouched(db, make_period):
    await make_period("202506", rate=None)
    service = PeriodService(db, rate_provider(primary=None, backup=None))

    with pytest.raises(ExternalServiceError) as exc_info:
        await service.fetch_period_rate("202506")

    assert exc_info.value.details["fallback_rate"] == 0.92
    period = await service.get("202506")
    assert period.usd_eur_rate is None


async def test_fetch_rate_on_locked_period(db, make_period):
    await make_period("202506", status=PeriodStatus.LOCKED)
    calls = []

    with pytest.raises(PeriodLockedError):
        await PeriodService(db, rate_provider(primary=0.91, calls=calls)).fetch_period_rate("202506")

    assert calls == []


async def test_apply_fallback_rate(db, make_period):
    await make_period("202506", rate=None)

    period = await PeriodService(db, rate_provider()).apply_fallback_rate("202506")

    assert period.usd_eur_rate == Decimal("0.920000")
    assert period.rate_source == "FALLBACK"


async def test_preview_does_not_store(db, make_period):
    await make_period("202506", rate=None)
    service = PeriodService(db, rate_provider(backup=0.9051))

    quote = await service.preview_rate("202506")

    assert quote.source == "BACKUP"
    assert quote.formatted == "1 USD = 0.905100 EUR"
    assert (await service.get("202506")).usd_eur_rate is None


async def test_preview_of_unknown_period(db):
    calls = []

    with pytest.raises(NotFoundError):
        await PeriodService(db, rate_provider(primary=0.91, calls=calls)).preview_rate("202506")

    assert calls == []
