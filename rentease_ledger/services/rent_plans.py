"""Rent Plan State Machine - proposal, tenant decision, deposit confirmation"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from sqlalchemy.orm import Session

from rentease_ledger.config import settings
from rentease_ledger.domain.exceptions import (
    AuthorizationError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    ReconciliationAnomaly,
    ValidationError,
)
from rentease_ledger.domain.lifecycle import can_advance_signing, next_due_date, require_transition, sources_for
from rentease_ledger.domain.models import (
    PaymentConfirmation,
    PaymentIntent,
    PlanStatus,
    Role,
    SigningStatus,
)
from rentease_ledger.infrastructure.clients.payments import PaymentGateway
from rentease_ledger.infrastructure.clients.signing import DocuSealClient
from rentease_ledger.infrastructure.database.models import RentPlan, User
from rentease_ledger.infrastructure.database.repositories import RentPlanRepository, UserRepository
from rentease_ledger.infrastructure.database.session import SessionFactory, transaction
from rentease_ledger.infrastructure.observability.logging import log_plan_transition
from rentease_ledger.infrastructure.observability.metrics import plan_transition_counter
from rentease_ledger.services.access import require_owner, require_role
from rentease_ledger.utils.date_utils import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class PlanTerms:
    monthly_rent_cents: int
    deposit_cents: int
    duration_months: int
    description: Optional[str] = None
    start_date: Optional[date] = None

    def validate(self) -> None:
        if min(self.monthly_rent_cents, self.deposit_cents, self.duration_months) <= 0:
            raise ValidationError("Invalid values: monthly rent, deposit, and duration must be positive numbers")


class RentPlanService:
    """Drives a RentPlan through pending -> accepted -> completed (or rejected / cancelled)"""

    def __init__(self, db: Session, gateway: Optional[PaymentGateway] = None, clock: Clock = utcnow):
        self.db = db
        self.gateway = gateway
        self.clock = clock
        self.plans = RentPlanRepository(db)
        self.users = UserRepository(db)

    def _get_plan(self, plan_id: uuid.UUID) -> RentPlan:
        plan = self.plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Rent plan not found")
        return plan

    def get_plan(self, user: User, plan_id: uuid.UUID) -> RentPlan:
        """Plan is visible to its tenant and its landlord only"""
        plan = self._get_plan(plan_id)
        if user.id not in (plan.tenant_id, plan.landlord_id):
            raise AuthorizationError("Unauthorized")
        return plan

    def propose(
        self,
        landlord: User,
        terms: PlanTerms,
        tenant_id: Optional[uuid.UUID] = None,
        tenant_username: Optional[str] = None,
    ) -> RentPlan:
        """
        Landlord proposes lease terms to a tenant; plan starts pending.

        The signing request is scheduled separately (see `request_signature`)
        so it can never roll back the plan.
        """
        require_role(landlord, Role.LANDLORD, "Only landlords can create rent plans")
        if tenant_id is None and not tenant_username:
            raise ValidationError("Missing required fields: tenant_id or tenant_username")
        terms.validate()

        tenant = self.users.find_tenant(tenant_id=tenant_id, username=tenant_username)
        if tenant is None:
            raise NotFoundError(
                f'Tenant with username "{tenant_username}" not found' if tenant_username else "Tenant not found"
            )

        with transaction(self.db):
            plan = self.plans.create(
                tenant_id=tenant.id,
                landlord_id=landlord.id,
                monthly_rent_cents=terms.monthly_rent_cents,
                deposit_cents=terms.deposit_cents,
                duration_months=terms.duration_months,
                description=terms.description,
                start_date=terms.start_date,
                status=PlanStatus.PENDING.value,
                signing_status=SigningStatus.PENDING.value,
                proposed_at=self.clock(),
            )

        log_plan_transition(str(plan.id), str(tenant.id), "none", PlanStatus.PENDING.value)
        return plan

    def accept(self, tenant: User, plan_id: uuid.UUID) -> PaymentIntent:
        """
        Tenant accepts: open a deposit checkout, then optimistically mark accepted.

        The tenant is linked to the landlord right away so they appear in the
        landlord's tenant list before the deposit clears.

        Raises:
            InvalidStateError: Plan not pending (including a cancel that won the race)
            GatewayError: Checkout could not be created; plan stays pending
        """
        require_role(tenant, Role.TENANT, "Only tenants can accept rent plans")
        plan = self._get_plan(plan_id)
        require_owner(plan.tenant_id, tenant, "Unauthorized: This plan is not for you")
        require_transition(plan.status, PlanStatus.ACCEPTED, "accept")

        if self.gateway is None:
            raise GatewayError("Payment gateway unavailable")

        landlord = self.users.get(plan.landlord_id)
        intent = self.gateway.create_intent(
            amount_minor_units=plan.deposit_cents,
            purpose_label=f"Rent Plan Deposit - {landlord.name}",
            description=(
                f"Deposit for {plan.duration_months} month rental plan. "
                f"Monthly rent: ${plan.monthly_rent_cents / 100:.2f}"
            ),
            metadata={
                "plan_id": str(plan.id),
                "tenant_id": str(plan.tenant_id),
                "landlord_id": str(plan.landlord_id),
            },
            success_url=f"{settings.frontend_url}/dashboard/tenant/rent-plan?success=true&planId={plan.id}",
            cancel_url=f"{settings.frontend_url}/dashboard/tenant/rent-plan?cancelled=true",
        )

        now = self.clock()
        with transaction(self.db):
            accepted = self.plans.transition(
                plan.id,
                [PlanStatus.PENDING],
                {
                    "status": PlanStatus.ACCEPTED.value,
                    "payment_intent_id": intent.intent_id,
                    "reviewed_at": now,
                    "accepted_at": now,
                },
            )
            if not accepted:
                logger.warning("Checkout %s orphaned by concurrent change to plan %s", intent.intent_id, plan_id)
                raise InvalidStateError(f"Cannot accept plan with status: {self._get_plan(plan_id).status}")
            self.users.link_landlord(plan.tenant_id, plan.landlord_id)

        plan_transition_counter.labels(status=PlanStatus.ACCEPTED.value).inc()
        log_plan_transition(
            str(plan.id), str(plan.tenant_id), PlanStatus.PENDING.value, PlanStatus.ACCEPTED.value,
            intent_id=intent.intent_id,
        )
        return intent

    def reject(self, tenant: User, plan_id: uuid.UUID) -> RentPlan:
        require_role(tenant, Role.TENANT, "Only tenants can reject rent plans")
        plan = self._get_plan(plan_id)
        require_owner(plan.tenant_id, tenant)
        return self._move(plan, PlanStatus.REJECTED, "reject", {"reviewed_at": self.clock()})

    def cancel(self, landlord: User, plan_id: uuid.UUID) -> RentPlan:
        """Landlord withdraws a plan that has not completed yet"""
        require_role(landlord, Role.LANDLORD, "Only landlords can cancel rent plans")
        plan = self._get_plan(plan_id)
        require_owner(plan.landlord_id, landlord)
        return self._move(plan, PlanStatus.CANCELLED, "cancel", {})

    def _move(self, plan: RentPlan, target: PlanStatus, action: str, values: dict) -> RentPlan:
        previous = plan.status
        require_transition(previous, target, action)
        with transaction(self.db):
            if not self.plans.transition(plan.id, sources_for(target), {"status": target.value, **values}):
                raise InvalidStateError(f"Cannot {action} plan with status: {self._get_plan(plan.id).status}")

        plan_transition_counter.labels(status=target.value).inc()
        log_plan_transition(str(plan.id), str(plan.tenant_id), previous, target.value)
        return self._get_plan(plan.id)

    def confirm_payment(self, intent_id: str) -> PaymentConfirmation:
        """
        Deposit cleared: complete the plan. Webhook path only.

        Idempotent: an already completed plan is a no-op. A plan that was
        cancelled while the payment was in flight is still completed (the money
        moved) and a ReconciliationAnomaly is raised after the commit so the
        caller can queue it for operators.

        Raises:
            ReconciliationAnomaly: Unknown intent, or plan was not in accepted state
        """
        with transaction(self.db):
            plan = self.plans.get_by_intent(intent_id, for_update=True)
            if plan is None:
                raise ReconciliationAnomaly(
                    "unknown_plan_intent",
                    f"No rent plan holds payment intent {intent_id}",
                    entity_type="rent_plan",
                    intent_id=intent_id,
                )

            if plan.status == PlanStatus.COMPLETED.value:
                return PaymentConfirmation(applied=False, entity_id=str(plan.id), next_due_date=plan.next_due_date)

            previous = plan.status
            now = self.clock()
            due = next_due_date(plan.start_date, now.date())
            completed = self.plans.transition(
                plan.id,
                [s for s in PlanStatus if s != PlanStatus.COMPLETED],
                {"status": PlanStatus.COMPLETED.value, "completed_at": now, "next_due_date": due},
            )
            if not completed:
                return PaymentConfirmation(applied=False, entity_id=str(plan.id), next_due_date=plan.next_due_date)
            self.users.link_landlord(plan.tenant_id, plan.landlord_id)

        plan_transition_counter.labels(status=PlanStatus.COMPLETED.value).inc()
        log_plan_transition(
            str(plan.id), str(plan.tenant_id), previous, PlanStatus.COMPLETED.value,
            intent_id=intent_id, next_due_date=due.isoformat(),
        )

        if previous != PlanStatus.ACCEPTED.value:
            raise ReconciliationAnomaly(
                "confirmed_non_accepted_plan",
                f"Deposit confirmed for plan in status {previous}; plan completed anyway",
                entity_type="rent_plan",
                entity_id=str(plan.id),
                intent_id=intent_id,
            )

        return PaymentConfirmation(applied=True, entity_id=str(plan.id), next_due_date=due)

    def attach_signing(self, plan_id: uuid.UUID, submission) -> None:
        with transaction(self.db):
            self.plans.attach_signing(plan_id, submission)

    def record_signing_status(self, submission_id: str, status: SigningStatus) -> Optional[RentPlan]:
        """
        Apply a signing callback. Only `signing_status` moves; the payment
        lifecycle is never touched.

        Returns:
            The plan, or None when no plan holds this submission
        """
        plan = self.plans.get_by_submission(submission_id)
        if plan is None:
            logger.warning("No rent plan found for signing submission %s", submission_id)
            return None

        if not can_advance_signing(plan.signing_status, status):
            logger.info(
                "Ignoring signing status %s for plan %s (currently %s)",
                status.value, plan.id, plan.signing_status,
            )
            return plan

        values = {"signing_status": status.value}
        if status == SigningStatus.SIGNED:
            values["signed_at"] = self.clock()
        sources = [s for s in SigningStatus if can_advance_signing(s, status)]
        with transaction(self.db):
            self.plans.update_signing(plan.id, sources, values)
        return self._get_plan(plan.id)


async def request_signature(
    session_factory: SessionFactory,
    signing_client: DocuSealClient,
    plan_id: uuid.UUID,
    signer_email: str,
    signer_name: str,
    landlord_name: str,
    document_path: Optional[str] = None,
) -> None:
    """
    Best-effort background task: send the tenancy agreement for signature.

    Failures are logged and leave `signing_status` at pending; they never
    affect the plan's payment lifecycle.
    """
    path = Path(document_path or settings.agreement_document_path)
    if not path.exists():
        logger.warning("Agreement document %s not found, skipping signing request", path)
        return

    try:
        submission = await signing_client.send_for_signature(
            path.read_bytes(),
            signer_email,
            signer_name,
            f"Tenancy Agreement - {landlord_name}",
        )
    except GatewayError as e:
        logger.error("Signing request failed for plan %s: %s", plan_id, e, extra={"plan_id": str(plan_id)})
        return

    db = session_factory()
    try:
        RentPlanService(db).attach_signing(plan_id, submission)
    finally:
        db.close()

    logger.info(
        "Tenancy agreement sent for signing",
        extra={"plan_id": str(plan_id), "submission_id": submission.submission_id},
    )
