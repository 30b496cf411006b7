"""Webhook reconciliation - routes processor and e-signature callbacks to the state machines"""

import logging
import uuid
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from rentease_ledger.domain.exceptions import ReconciliationAnomaly
from rentease_ledger.domain.models import PAYMENT_COMPLETED, EventOutcome, PaymentEvent, SigningStatus
from rentease_ledger.infrastructure.database.repositories import AnomalyRepository, PaymentEventRepository
from rentease_ledger.infrastructure.database.session import transaction
from rentease_ledger.infrastructure.observability.logging import log_anomaly
from rentease_ledger.infrastructure.observability.metrics import (
    reconciliation_anomaly_counter,
    webhook_event_counter,
)
from rentease_ledger.services.bills import BillService
from rentease_ledger.services.rent_plans import RentPlanService
from rentease_ledger.utils.date_utils import Clock, utcnow

logger = logging.getLogger(__name__)

SIGNING_EVENTS = {
    "form.viewed": SigningStatus.VIEWED,
    "form.completed": SigningStatus.SIGNED,
    "form.declined": SigningStatus.DECLINED,
}


def route_event(event: PaymentEvent) -> Tuple[Optional[str], Optional[str]]:
    """Entity type and id a payment event refers to, from its metadata"""
    if event.plan_id:
        return "rent_plan", event.plan_id
    if event.bill_id:
        return "bill", event.bill_id
    return None, None


class PaymentWebhookHandler:
    """
    Applies payment processor callbacks.

    Every delivery is durably recorded before it is applied. A redelivered
    event id that already settled is not dispatched again; the guarded
    updates behind the state machines still catch distinct events for the
    same payment. Whatever happens
    afterwards, `handle` returns normally so the processor sees success and
    does not redeliver; problems go to the operator anomaly queue instead.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.events = PaymentEventRepository(db)
        self.anomalies = AnomalyRepository(db)
        self.plans = RentPlanService(db, clock=clock)
        self.bills = BillService(db, clock=clock)

    def handle(self, event: PaymentEvent) -> EventOutcome:
        entity_type, entity_id = route_event(event)
        with transaction(self.db):
            record = self.events.record(event, entity_type, entity_id)
        record_id = record.id

        try:
            if event.event_id and self.events.already_settled(event.event_id, exclude_id=record_id):
                outcome = EventOutcome.DUPLICATE
            else:
                outcome = self._dispatch(event, entity_type, entity_id)
        except ReconciliationAnomaly as anomaly:
            self.db.rollback()
            self._queue_anomaly(anomaly)
            outcome = EventOutcome.ANOMALY
        except Exception as e:
            self.db.rollback()
            logger.exception("Payment event %s failed to apply", event.event_id)
            self._queue_anomaly(
                ReconciliationAnomaly(
                    "processing_error",
                    f"{type(e).__name__}: {e}",
                    entity_type=entity_type,
                    entity_id=entity_id,
                    intent_id=event.intent_id,
                )
            )
            outcome = EventOutcome.FAILED

        with transaction(self.db):
            self.events.set_outcome(record_id, outcome.value)

        webhook_event_counter.labels(outcome=outcome.value).inc()
        logger.info(
            "Payment event processed",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "intent_id": event.intent_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "outcome": outcome.value,
            },
        )
        return outcome

    def _dispatch(self, event: PaymentEvent, entity_type: Optional[str], entity_id: Optional[str]) -> EventOutcome:
        if event.event_type != PAYMENT_COMPLETED:
            return EventOutcome.IGNORED

        if entity_type is None:
            raise ReconciliationAnomaly(
                "unroutable_event",
                "Payment event metadata has neither plan_id nor bill_id",
                intent_id=event.intent_id,
            )
        if not event.intent_id:
            raise ReconciliationAnomaly(
                "missing_intent",
                "Payment event carries no intent id",
                entity_type=entity_type,
                entity_id=entity_id,
            )

        if entity_type == "rent_plan":
            confirmation = self.plans.confirm_payment(event.intent_id)
        else:
            confirmation = self.bills.confirm_payment(event.intent_id, bill_id=self._as_uuid(entity_id))

        return EventOutcome.APPLIED if confirmation.applied else EventOutcome.DUPLICATE

    @staticmethod
    def _as_uuid(value: str) -> Optional[uuid.UUID]:
        try:
            return uuid.UUID(value)
        except (TypeError, ValueError):
            return None

    def _queue_anomaly(self, anomaly: ReconciliationAnomaly) -> None:
        with transaction(self.db):
            self.anomalies.create(
                kind=anomaly.kind,
                detail=anomaly.detail,
                entity_type=anomaly.entity_type,
                entity_id=anomaly.entity_id,
                intent_id=anomaly.intent_id,
            )
        reconciliation_anomaly_counter.labels(kind=anomaly.kind).inc()
        log_anomaly(anomaly.kind, anomaly.detail, anomaly.entity_type, anomaly.entity_id, anomaly.intent_id)


class SigningWebhookHandler:
    """Applies e-signature status callbacks; never touches payment state"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.plans = RentPlanService(db, clock=clock)

    def handle(self, payload: Dict[str, Any]) -> Optional[SigningStatus]:
        event_type = payload.get("event_type")
        data = payload.get("data") or {}
        status = SIGNING_EVENTS.get(event_type)
        if status is None:
            logger.info("Unhandled signing event type: %s", event_type)
            return None

        submission_id = data.get("submission_id")
        if submission_id is None:
            logger.warning("Signing event %s without submission_id", event_type)
            return None

        plan = self.plans.record_signing_status(str(submission_id), status)
        return SigningStatus(plan.signing_status) if plan is not None else None
