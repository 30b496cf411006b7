"""Integration tests for the bill payment state machine and reward accrual"""

import pytest
from datetime import date
from rentease_ledger.domain.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ReconciliationAnomaly,
    ValidationError,
)
from rentease_ledger.domain.models import RewardKind, Role
from rentease_ledger.infrastructure.database.models import Bill, Reward, User
from rentease_ledger.services.bills import BillService


@pytest.fixture
def water_bill(bill_service, landlord, linked_tenant):
    """$200 water bill due in five days"""
    return bill_service.create_bill(
        landlord,
        tenant_id=linked_tenant.id,
        bill_type="water",
        amount_cents=20000,
        due_date=date(2024, 3, 20),
        description="March water",
    )


def test_create_bill_for_own_tenant(water_bill, landlord, linked_tenant):
    assert water_bill.tenant_id == linked_tenant.id
    assert water_bill.landlord_id == landlord.id
    assert water_bill.is_paid is False
    assert water_bill.paid_at is None


def test_create_bill_accepts_iso_date_string(bill_service, landlord, linked_tenant):
    bill = bill_service.create_bill(landlord, linked_tenant.id, "rent", 120000, "2024-04-01")
    assert bill.due_date == date(2024, 4, 1)


def test_create_bill_rejects_bad_date(bill_service, landlord, linked_tenant):
    with pytest.raises(ValidationError, match="due date"):
        bill_service.create_bill(landlord, linked_tenant.id, "rent", 120000, "April 1st")


def test_create_bill_requires_linked_tenant(bill_service, landlord, make_user):
    """No accepted plan, no bills"""
    stranger = make_user(Role.TENANT)
    with pytest.raises(AuthorizationError, match="own tenants"):
        bill_service.create_bill(landlord, stranger.id, "water", 5000, date(2024, 3, 20))


def test_create_bill_for_another_landlords_tenant(bill_service, make_user, linked_tenant):
    other_landlord = make_user(Role.LANDLORD)
    with pytest.raises(AuthorizationError):
        bill_service.create_bill(other_landlord, linked_tenant.id, "water", 5000, date(2024, 3, 20))


def test_create_bill_requires_landlord(bill_service, linked_tenant):
    with pytest.raises(AuthorizationError, match="Only landlords"):
        bill_service.create_bill(linked_tenant, linked_tenant.id, "water", 5000, date(2024, 3, 20))


def test_create_bill_rejects_non_positive_amount(bill_service, landlord, linked_tenant):
    with pytest.raises(ValidationError, match="Invalid amount"):
        bill_service.create_bill(landlord, linked_tenant.id, "water", 0, date(2024, 3, 20))


def test_initiate_payment_keeps_bill_unpaid(bill_service, gateway, water_bill, linked_tenant, db):
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)

    assert gateway.intents[-1]["metadata"]["bill_id"] == str(water_bill.id)
    assert gateway.intents[-1]["amount_minor_units"] == 20000
    stored = db.get(Bill, water_bill.id)
    assert stored.is_paid is False
    assert stored.payment_intent_id == intent.intent_id


def test_initiate_payment_for_someone_elses_bill(bill_service, water_bill, make_user):
    with pytest.raises(NotFoundError):
        bill_service.initiate_payment(make_user(Role.TENANT), water_bill.id)


def test_on_time_payment_earns_points(bill_service, water_bill, linked_tenant, db):
    """$200 paid before the due date -> 20 points, one reward row"""
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)

    confirmation = bill_service.confirm_payment(intent.intent_id, bill_id=water_bill.id)

    assert confirmation.applied is True
    assert confirmation.is_on_time is True
    assert confirmation.points_earned == 20

    stored = db.get(Bill, water_bill.id)
    assert stored.is_paid is True
    assert stored.paid_at is not None

    rewards = db.query(Reward).filter(Reward.tenant_id == linked_tenant.id).all()
    assert len(rewards) == 1
    assert rewards[0].kind == RewardKind.BILL_PAYMENT.value
    assert rewards[0].bill_id == water_bill.id
    assert rewards[0].points_earned == 20
    assert rewards[0].amount_cents == 20000
    assert db.get(User, linked_tenant.id).points == 20


def test_payment_on_due_date_is_on_time(bill_service, water_bill, linked_tenant, clock):
    clock.now = clock.now.replace(day=20, hour=23)
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)

    confirmation = bill_service.confirm_payment(intent.intent_id, bill_id=water_bill.id)

    assert confirmation.is_on_time is True
    assert confirmation.points_earned == 20


def test_late_payment_earns_nothing(bill_service, water_bill, linked_tenant, clock, db):
    """Late: zero points, no reward row, no deduction"""
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)
    clock.advance(days=10)

    confirmation = bill_service.confirm_payment(intent.intent_id, bill_id=water_bill.id)

    assert confirmation.applied is True
    assert confirmation.is_on_time is False
    assert confirmation.points_earned == 0
    assert db.get(Bill, water_bill.id).is_paid is True
    assert db.query(Reward).count() == 0
    assert db.get(User, linked_tenant.id).points == 0


def test_duplicate_confirmation_awards_once(bill_service, water_bill, linked_tenant, db):
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)
    bill_service.confirm_payment(intent.intent_id, bill_id=water_bill.id)

    again = bill_service.confirm_payment(intent.intent_id, bill_id=water_bill.id)

    assert again.applied is False
    assert db.query(Reward).count() == 1
    assert db.get(User, linked_tenant.id).points == 20


def test_confirmation_found_by_intent_alone(bill_service, water_bill, linked_tenant, db):
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)

    confirmation = bill_service.confirm_payment(intent.intent_id)

    assert confirmation.applied is True
    assert confirmation.entity_id == str(water_bill.id)


def test_earlier_checkout_still_confirms(bill_service, water_bill, linked_tenant, db):
    """Tenant opened two checkouts and paid the first one"""
    first = bill_service.initiate_payment(linked_tenant, water_bill.id)
    bill_service.initiate_payment(linked_tenant, water_bill.id)

    confirmation = bill_service.confirm_payment(first.intent_id, bill_id=water_bill.id)

    assert confirmation.applied is True
    assert db.get(User, linked_tenant.id).points == 20


def test_paying_a_paid_bill(bill_service, water_bill, linked_tenant):
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)
    bill_service.confirm_payment(intent.intent_id, bill_id=water_bill.id)

    with pytest.raises(InvalidStateError, match="already paid"):
        bill_service.initiate_payment(linked_tenant, water_bill.id)


def test_confirm_unknown_bill(bill_service):
    with pytest.raises(ReconciliationAnomaly) as exc_info:
        bill_service.confirm_payment("cs_unknown")
    assert exc_info.value.kind == "unknown_bill"


def test_concurrent_confirmation_awards_once(bill_service, water_bill, linked_tenant, session_factory, clock, db):
    """Another worker confirms after this session loaded the unpaid bill"""
    intent = bill_service.initiate_payment(linked_tenant, water_bill.id)
    assert db.get(Bill, water_bill.id).is_paid is False

    other = session_factory()
    try:
        winner = BillService(other, clock=clock).confirm_payment(intent.intent_id, bill_id=water_bill.id)
    finally:
        other.close()

    loser = bill_service.confirm_payment(intent.intent_id, bill_id=water_bill.id)

    assert winner.applied is True
    assert loser.applied is False
    db.expire_all()
    assert db.query(Reward).count() == 1
    assert db.get(User, linked_tenant.id).points == 20
    assert db.get(Bill, water_bill.id).is_paid is True
