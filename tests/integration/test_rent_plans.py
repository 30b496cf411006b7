"""Integration tests for the rent plan state machine against the database"""

import pytest
from datetime import date
from sqlalchemy.orm import Session
from rentease_ledger.domain.exceptions import (
    AuthorizationError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from rentease_ledger.domain.models import PlanStatus, Role, SigningStatus
from rentease_ledger.infrastructure.database.models import RentPlan, User
from rentease_ledger.services.rent_plans import PlanTerms, request_signature
from rentease_ledger.services.webhooks import SigningWebhookHandler


def test_propose_creates_pending_plan(plan_service, landlord, tenant, default_terms, clock):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)

    assert plan.status == PlanStatus.PENDING.value
    assert plan.signing_status == SigningStatus.PENDING.value
    assert plan.tenant_id == tenant.id
    assert plan.landlord_id == landlord.id
    assert plan.deposit_cents == 240000
    assert plan.payment_intent_id is None


def test_propose_by_username(plan_service, landlord, tenant, default_terms):
    plan = plan_service.propose(landlord, default_terms, tenant_username="tom")
    assert plan.tenant_id == tenant.id


def test_propose_requires_landlord(plan_service, tenant, make_user, default_terms):
    other_tenant = make_user(Role.TENANT)
    with pytest.raises(AuthorizationError, match="Only landlords"):
        plan_service.propose(tenant, default_terms, tenant_id=other_tenant.id)


def test_propose_unknown_tenant(plan_service, landlord, default_terms):
    with pytest.raises(NotFoundError, match='"ghost" not found'):
        plan_service.propose(landlord, default_terms, tenant_username="ghost")


def test_propose_cannot_target_a_landlord(plan_service, landlord, make_user, default_terms):
    other_landlord = make_user(Role.LANDLORD)
    with pytest.raises(NotFoundError):
        plan_service.propose(landlord, default_terms, tenant_id=other_landlord.id)


def test_propose_rejects_non_positive_terms(plan_service, landlord, tenant):
    terms = PlanTerms(monthly_rent_cents=120000, deposit_cents=0, duration_months=12)
    with pytest.raises(ValidationError, match="positive"):
        plan_service.propose(landlord, terms, tenant_id=tenant.id)


def test_accept_opens_deposit_checkout(plan_service, gateway, landlord, tenant, default_terms, db: Session):
    """Acceptance is optimistic: accepted + linked now, completed on confirmation"""
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)

    intent = plan_service.accept(tenant, plan.id)

    assert intent.intent_id == "cs_test_1"
    assert gateway.intents[0]["amount_minor_units"] == 240000
    assert gateway.intents[0]["metadata"] == {
        "plan_id": str(plan.id),
        "tenant_id": str(tenant.id),
        "landlord_id": str(landlord.id),
    }

    stored = db.get(RentPlan, plan.id)
    assert stored.status == PlanStatus.ACCEPTED.value
    assert stored.payment_intent_id == "cs_test_1"
    assert stored.accepted_at is not None
    assert db.get(User, tenant.id).landlord_id == landlord.id


def test_accept_twice_is_rejected(plan_service, landlord, tenant, default_terms):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    plan_service.accept(tenant, plan.id)

    with pytest.raises(InvalidStateError, match="Cannot accept plan with status: accepted"):
        plan_service.accept(tenant, plan.id)


def test_accept_by_other_tenant(plan_service, landlord, tenant, make_user, default_terms):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    intruder = make_user(Role.TENANT)

    with pytest.raises(AuthorizationError, match="not for you"):
        plan_service.accept(intruder, plan.id)


def test_accept_gateway_failure_leaves_plan_pending(plan_service, gateway, landlord, tenant, default_terms, db):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    gateway.fail = True

    with pytest.raises(GatewayError):
        plan_service.accept(tenant, plan.id)

    stored = db.get(RentPlan, plan.id)
    assert stored.status == PlanStatus.PENDING.value
    assert stored.payment_intent_id is None
    assert db.get(User, tenant.id).landlord_id is None


def test_accept_losing_race_to_cancel(plan_service, gateway, session_factory, db, landlord, tenant, default_terms):
    """Landlord cancels while the tenant's checkout is being created"""
    create_intent = gateway.create_intent

    def cancel_then_create(*args, **kwargs):
        other = session_factory()
        try:
            other.query(RentPlan).update({"status": PlanStatus.CANCELLED.value})
            other.commit()
        finally:
            other.close()
        return create_intent(*args, **kwargs)

    gateway.create_intent = cancel_then_create
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)

    with pytest.raises(InvalidStateError, match="status: cancelled"):
        plan_service.accept(tenant, plan.id)

    db.expire_all()
    stored = db.get(RentPlan, plan.id)
    assert stored.status == PlanStatus.CANCELLED.value
    assert stored.payment_intent_id is None


def test_reject_pending_plan(plan_service, landlord, tenant, default_terms):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)

    rejected = plan_service.reject(tenant, plan.id)

    assert rejected.status == PlanStatus.REJECTED.value
    assert rejected.reviewed_at is not None
    with pytest.raises(InvalidStateError, match="Cannot accept plan with status: rejected"):
        plan_service.accept(tenant, plan.id)


def test_cancel_accepted_plan(plan_service, landlord, tenant, default_terms):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    plan_service.accept(tenant, plan.id)

    cancelled = plan_service.cancel(landlord, plan.id)
    assert cancelled.status == PlanStatus.CANCELLED.value


def test_cancel_by_tenant_is_forbidden(plan_service, landlord, tenant, default_terms):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    with pytest.raises(AuthorizationError):
        plan_service.cancel(tenant, plan.id)


def test_get_plan_visibility(plan_service, landlord, tenant, make_user, default_terms):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)

    assert plan_service.get_plan(tenant, plan.id).id == plan.id
    assert plan_service.get_plan(landlord, plan.id).id == plan.id
    with pytest.raises(AuthorizationError):
        plan_service.get_plan(make_user(Role.LANDLORD), plan.id)


def test_confirm_payment_completes_plan(plan_service, landlord, tenant, default_terms, db):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    intent = plan_service.accept(tenant, plan.id)

    confirmation = plan_service.confirm_payment(intent.intent_id)

    assert confirmation.applied is True
    assert confirmation.next_due_date == date(2024, 5, 1)
    stored = db.get(RentPlan, plan.id)
    assert stored.status == PlanStatus.COMPLETED.value
    assert stored.completed_at is not None
    assert stored.next_due_date == date(2024, 5, 1)


def test_confirm_payment_is_idempotent(plan_service, landlord, tenant, default_terms, db):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    intent = plan_service.accept(tenant, plan.id)
    plan_service.confirm_payment(intent.intent_id)

    again = plan_service.confirm_payment(intent.intent_id)

    assert again.applied is False
    assert db.get(RentPlan, plan.id).status == PlanStatus.COMPLETED.value


def test_confirm_without_start_date_uses_confirmation_day(plan_service, landlord, tenant):
    terms = PlanTerms(monthly_rent_cents=100000, deposit_cents=100000, duration_months=6)
    plan = plan_service.propose(landlord, terms, tenant_id=tenant.id)
    intent = plan_service.accept(tenant, plan.id)

    confirmation = plan_service.confirm_payment(intent.intent_id)

    assert confirmation.next_due_date == date(2024, 4, 15)


async def test_request_signature_attaches_submission(
    plan_service, signing_client, session_factory, landlord, tenant, default_terms, db, tmp_path
):
    document = tmp_path / "agreement.pdf"
    document.write_bytes(b"%PDF-1.4 agreement")
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)

    await request_signature(
        session_factory, signing_client, plan.id, tenant.email, tenant.name, landlord.name,
        document_path=str(document),
    )

    assert signing_client.sent[0]["email"] == "tom@example.com"
    assert signing_client.sent[0]["document_name"] == "Tenancy Agreement - Lara"
    db.expire_all()
    stored = db.get(RentPlan, plan.id)
    assert stored.signing_submission_id == "1001"
    assert stored.signing_url == "https://docuseal.com/s/slug1"
    assert stored.status == PlanStatus.PENDING.value


async def test_signing_failure_leaves_plan_untouched(
    plan_service, signing_client, session_factory, landlord, tenant, default_terms, db, tmp_path
):
    document = tmp_path / "agreement.pdf"
    document.write_bytes(b"%PDF-1.4 agreement")
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    signing_client.fail = True

    await request_signature(
        session_factory, signing_client, plan.id, tenant.email, tenant.name, landlord.name,
        document_path=str(document),
    )

    db.expire_all()
    stored = db.get(RentPlan, plan.id)
    assert stored.status == PlanStatus.PENDING.value
    assert stored.signing_status == SigningStatus.PENDING.value
    assert stored.signing_submission_id is None


async def test_missing_agreement_document_skips_signing(
    plan_service, signing_client, session_factory, landlord, tenant, default_terms, tmp_path
):
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)

    await request_signature(
        session_factory, signing_client, plan.id, tenant.email, tenant.name, landlord.name,
        document_path=str(tmp_path / "missing.pdf"),
    )

    assert signing_client.sent == []


async def test_signing_webhook_updates_only_signing_status(
    plan_service, signing_client, session_factory, landlord, tenant, default_terms, db, clock, tmp_path
):
    document = tmp_path / "agreement.pdf"
    document.write_bytes(b"%PDF")
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    await request_signature(
        session_factory, signing_client, plan.id, tenant.email, tenant.name, landlord.name,
        document_path=str(document),
    )
    db.expire_all()
    handler = SigningWebhookHandler(db, clock=clock)

    assert handler.handle({"event_type": "form.completed", "data": {"submission_id": 1001}}) == SigningStatus.SIGNED
    # Late "viewed" must not move a signed agreement backwards
    assert handler.handle({"event_type": "form.viewed", "data": {"submission_id": 1001}}) == SigningStatus.SIGNED

    stored = db.get(RentPlan, plan.id)
    assert stored.signing_status == SigningStatus.SIGNED.value
    assert stored.signed_at is not None
    assert stored.status == PlanStatus.PENDING.value


def test_signing_webhook_unknown_submission(db, clock):
    handler = SigningWebhookHandler(db, clock=clock)
    assert handler.handle({"event_type": "form.completed", "data": {"submission_id": 999}}) is None
    assert handler.handle({"event_type": "form.started", "data": {"submission_id": 999}}) is None
