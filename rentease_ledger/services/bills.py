"""Bill Payment State Machine - unpaid -> paid, with reward accrual on confirmation"""

import logging
import uuid
from datetime import date
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
from rentease_ledger.domain.models import PaymentConfirmation, PaymentIntent, Role
from rentease_ledger.infrastructure.clients.payments import PaymentGateway
from rentease_ledger.infrastructure.database.models import Bill, User
from rentease_ledger.infrastructure.database.repositories import BillRepository, UserRepository
from rentease_ledger.infrastructure.database.session import transaction
from rentease_ledger.infrastructure.observability.metrics import record_bill_payment
from rentease_ledger.services.access import require_role
from rentease_ledger.services.rewards import RewardService
from rentease_ledger.utils.date_utils import Clock, utcnow

logger = logging.getLogger(__name__)


class BillService:
    """Issues bills, opens checkouts for them, applies payment confirmations"""

    def __init__(self, db: Session, gateway: Optional[PaymentGateway] = None, clock: Clock = utcnow):
        self.db = db
        self.gateway = gateway
        self.clock = clock
        self.bills = BillRepository(db)
        self.users = UserRepository(db)
        self.rewards = RewardService(db, clock=clock)

    def create_bill(
        self,
        landlord: User,
        tenant_id: uuid.UUID,
        bill_type: str,
        amount_cents: int,
        due_date: date | str,
        description: Optional[str] = None,
    ) -> Bill:
        """
        Issue a bill to one of the landlord's own tenants.

        A tenant only becomes "own" once a rent plan links them, so bills
        cannot precede an accepted plan.
        """
        require_role(landlord, Role.LANDLORD, "Only landlords can create bills")
        if not bill_type:
            raise ValidationError("Missing required fields: type")
        if amount_cents <= 0:
            raise ValidationError("Invalid amount")
        if isinstance(due_date, str):
            try:
                due_date = date.fromisoformat(due_date)
            except ValueError:
                raise ValidationError("Invalid due date") from None

        tenant = self.users.find_tenant(tenant_id=tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        if tenant.landlord_id != landlord.id:
            raise AuthorizationError(
                "You can only create bills for your own tenants. The tenant must accept a rent plan first."
            )

        with transaction(self.db):
            bill = self.bills.create(
                tenant_id=tenant.id,
                landlord_id=landlord.id,
                type=bill_type,
                amount_cents=amount_cents,
                due_date=due_date,
                description=description,
                is_paid=False,
                created_at=self.clock(),
            )
        return bill

    def initiate_payment(self, tenant: User, bill_id: uuid.UUID) -> PaymentIntent:
        """
        Open a checkout for an unpaid bill and remember its intent id.

        Does not change `is_paid`; only the confirmation webhook does.
        """
        require_role(tenant, Role.TENANT, "Only tenants can pay bills")
        bill = self.bills.get(bill_id)
        if bill is None or bill.tenant_id != tenant.id:
            raise NotFoundError("Bill not found")
        if bill.is_paid:
            raise InvalidStateError("Bill already paid")
        if self.gateway is None:
            raise GatewayError("Payment gateway unavailable")

        landlord = self.users.get(bill.landlord_id)
        intent = self.gateway.create_intent(
            amount_minor_units=bill.amount_cents,
            purpose_label=f"{bill.type.capitalize()} Bill",
            description=bill.description or f"Payment to {landlord.name}",
            metadata={
                "bill_id": str(bill.id),
                "tenant_id": str(tenant.id),
                "landlord_id": str(bill.landlord_id),
            },
            success_url=f"{settings.frontend_url}/dashboard/tenant/bills?success=true&billId={bill.id}",
            cancel_url=f"{settings.frontend_url}/dashboard/tenant/bills?cancelled=true",
        )

        with transaction(self.db):
            if not self.bills.set_intent(bill.id, intent.intent_id):
                raise InvalidStateError("Bill already paid")
        return intent

    def confirm_payment(self, intent_id: Optional[str], bill_id: Optional[uuid.UUID] = None) -> PaymentConfirmation:
        """
        Payment cleared: mark the bill paid and accrue points. Webhook path only.

        The paid flag flips through a guarded update; only the delivery that
        flips it creates the reward row and increments points, all in one
        commit. Later deliveries are no-ops.

        Raises:
            ReconciliationAnomaly: No bill matches the event
        """
        bill = self.bills.get(bill_id) if bill_id is not None else None
        if bill is None and intent_id:
            bill = self.bills.get_by_intent(intent_id)
        if bill is None:
            raise ReconciliationAnomaly(
                "unknown_bill",
                f"No bill matches payment event (bill_id={bill_id}, intent={intent_id})",
                entity_type="bill",
                entity_id=str(bill_id) if bill_id else None,
                intent_id=intent_id,
            )

        if bill.is_paid:
            return PaymentConfirmation(applied=False, entity_id=str(bill.id))

        if intent_id and bill.payment_intent_id and bill.payment_intent_id != intent_id:
            logger.info(
                "Bill %s confirmed by earlier checkout %s (latest is %s)",
                bill.id, intent_id, bill.payment_intent_id,
            )

        paid_at = self.clock()
        with transaction(self.db):
            if not self.bills.mark_paid(bill.id, paid_at):
                return PaymentConfirmation(applied=False, entity_id=str(bill.id))
            is_on_time, points = self.rewards.accrue_bill_payment(bill, paid_at)

        record_bill_payment(is_on_time, points)
        logger.info(
            "Bill marked as paid",
            extra={
                "bill_id": str(bill.id),
                "tenant_id": str(bill.tenant_id),
                "is_on_time": is_on_time,
                "points_earned": points,
            },
        )
        return PaymentConfirmation(applied=True, entity_id=str(bill.id), points_earned=points, is_on_time=is_on_time)
