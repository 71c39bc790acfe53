"""Tests for payout requests and the payout state machine."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import DuplicatePayoutError, NotFoundError, ValidationError
from app.models.commission import CommissionLedger, Payout, PayoutStatus
from app.models.user import UserRole
from app.services.payout_service import PayoutService
from app.services.payout_state_machine import (
    can_transition,
    get_allowed_transitions,
    get_transition_action,
    is_terminal,
    validate_transition,
)


async def add_ledger(db, manager, *amounts, period_id="202506"):
    components = ["BASE_COMMISSION", "ACTIVITY_COMMISSION", "M1_BONUS", "DOWNLINE_A"]
    for component, amount in zip(components, amounts):
        db.add(CommissionLedger(
            id=uuid.uuid4(),
            period_id=period_id,
            user_id=manager.id,
            component=component,
            amount_eur=Decimal(amount),
        ))
    await db.commit()


@pytest.fixture
async def sam(db, make_user, make_period):
    sam = await make_user("Sam", UserRole.SALES_REP)
    await make_period("202506")
    await add_ledger(db, sam, "276.00", "138.00", "150.00")
    return sam


@pytest.fixture
async def admin(make_user):
    return await make_user("Root", UserRole.ADMIN)


async def payout_count(db):
    result = await db.execute(select(func.count(Payout.id)))
    return result.scalar()


# ==================== Requests ====================

async def test_request_snapshots_ledger(db, sam):
    payout = await PayoutService(db).request_payout("202506", sam.id)

    assert payout.status == PayoutStatus.SUBMITTED.value
    assert payout.amount_eur == Decimal("564.00")
    assert sorted((line.component, line.amount_eur) for line in payout.lines) == [
        ("ACTIVITY_COMMISSION", Decimal("138.00")),
        ("BASE_COMMISSION", Decimal("276.00")),
        ("M1_BONUS", Decimal("150.00")),
    ]
    assert payout.processed_at is None


async def test_snapshot_survives_ledger_changes(db, sam):
    service = PayoutService(db)
    payout = await service.request_payout("202506", sam.id)

    await add_ledger(db, sam, "1000.00", period_id="202506")
    reloaded = await service.get(payout.id)

    assert reloaded.amount_eur == Decimal("564.00")
    assert len(reloaded.lines) == 3


async def test_second_request_is_rejected(db, sam):
    service = PayoutService(db)
    await service.request_payout("202506", sam.id)

    with pytest.raises(DuplicatePayoutError):
        await service.request_payout("202506", sam.id)

    assert await payout_count(db) == 1


async def test_duplicate_is_a_validation_error():
    assert issubclass(DuplicatePayoutError, ValidationError)
    assert DuplicatePayoutError("dup").status_code == 400


async def test_request_without_commissions(db, make_user, make_period):
    sam = await make_user("Sam", UserRole.SALES_REP)
    await make_period("202506")

    with pytest.raises(ValidationError, match="No commissions"):
        await PayoutService(db).request_payout("202506", sam.id)


async def test_request_with_zero_total(db, make_user, make_period):
    sam = await make_user("Sam", UserRole.SALES_REP)
    await make_period("202506")
    await add_ledger(db, sam, "0.00")

    with pytest.raises(ValidationError, match="No commission amount"):
        await PayoutService(db).request_payout("202506", sam.id)
    assert await payout_count(db) == 0


async def test_request_for_unknown_period(db, sam):
    with pytest.raises(NotFoundError):
        await PayoutService(db).request_payout("209901", sam.id)


# ==================== Status ====================

async def test_full_approval_path(db, sam, admin):
    service = PayoutService(db)
    payout = await service.request_payout("202506", sam.id)

    payout = await service.update_status(payout.id, PayoutStatus.IN_PROGRESS, processed_by=admin.id)
    assert payout.processed_at is None

    payout = await service.update_status(payout.id, PayoutStatus.APPROVED, processed_by=admin.id)
    assert payout.processed_at is not None
    assert payout.processed_by == admin.id

    payout = await service.update_status(payout.id, PayoutStatus.PAID, notes="Wire sent", processed_by=admin.id)
    assert payout.status == PayoutStatus.PAID.value
    assert payout.notes == "Wire sent"


async def test_rejection_stamps_processed_at(db, sam, admin):
    service = PayoutService(db)
    payout = await service.request_payout("202506", sam.id)

    payout = await service.update_status(payout.id, PayoutStatus.REJECTED, "Missing invoice", admin.id)

    assert payout.status == PayoutStatus.REJECTED.value
    assert payout.processed_at is not None


async def test_terminal_payout_cannot_move(db, sam):
    service = PayoutService(db)
    payout = await service.request_payout("202506", sam.id)
    await service.update_status(payout.id, PayoutStatus.REJECTED)

    with pytest.raises(ValidationError, match="terminal"):
        await service.update_status(payout.id, PayoutStatus.APPROVED)


async def test_backward_transition_is_rejected(db, sam):
    service = PayoutService(db)
    payout = await service.request_payout("202506", sam.id)
    await service.update_status(payout.id, PayoutStatus.APPROVED)

    with pytest.raises(ValidationError, match="Allowed transitions: PAID"):
        await service.update_status(payout.id, PayoutStatus.SUBMITTED)


async def test_notes_only_update(db, sam):
    service = PayoutService(db)
    payout = await service.request_payout("202506", sam.id)

    payout = await service.update_status(payout.id, PayoutStatus.SUBMITTED, notes="Checked")

    assert payout.status == PayoutStatus.SUBMITTED.value
    assert payout.notes == "Checked"
    assert payout.processed_at is None


async def test_update_unknown_payout(db):
    with pytest.raises(NotFoundError):
        await PayoutService(db).update_status(uuid.uuid4(), PayoutStatus.APPROVED)


async def test_admin_list_puts_open_requests_first(db, make_user, make_period):
    await make_period("202506")
    service = PayoutService(db)
    managers = [await make_user(name, UserRole.SALES_REP) for name in ("Ann", "Ben", "Cid")]
    payouts = []
    for manager in managers:
        await add_ledger(db, manager, "100.00")
        payouts.append(await service.request_payout("202506", manager.id))

    await service.update_status(payouts[0].id, PayoutStatus.APPROVED)
    await service.update_status(payouts[0].id, PayoutStatus.PAID)
    await service.update_status(payouts[1].id, PayoutStatus.IN_PROGRESS)

    listed = await service.list(period_id="202506")
    assert [p.status for p in listed] == ["SUBMITTED", "IN_PROGRESS", "PAID"]

    mine = await service.list_for_manager(managers[1].id)
    assert [p.id for p in mine] == [payouts[1].id]

    submitted = await service.list(status="SUBMITTED")
    assert [p.manager_id for p in submitted] == [managers[2].id]


# ==================== State machine ====================

def test_allowed_transitions():
    assert get_allowed_transitions("SUBMITTED") == ["IN_PROGRESS", "APPROVED", "REJECTED"]
    assert get_allowed_transitions("APPROVED") == ["PAID"]
    assert get_allowed_transitions("PAID") == []


@pytest.mark.parametrize("current, new, allowed", [
    ("SUBMITTED", "IN_PROGRESS", True),
    ("IN_PROGRESS", "APPROVED", True),
    ("APPROVED", "PAID", True),
    ("IN_PROGRESS", "SUBMITTED", False),
    ("APPROVED", "REJECTED", False),
    ("PAID", "APPROVED", False),
])
def test_can_transition(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_terminal_states():
    assert is_terminal("PAID")
    assert is_terminal("REJECTED")
    assert not is_terminal("SUBMITTED")


def test_transition_action_labels():
    assert get_transition_action("APPROVED", "PAID") == "Mark Paid"
    assert get_transition_action("PAID", "SUBMITTED") == "PAID -> SUBMITTED"


def test_same_status_is_valid():
    validate_transition("PAID", "PAID")
