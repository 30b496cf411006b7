"""Payment intent gateway - checkout creation and webhook event parsing"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import stripe

from rentease_ledger.config import settings
from rentease_ledger.domain.exceptions import GatewayError, ValidationError
from rentease_ledger.domain.models import PAYMENT_COMPLETED, PaymentEvent, PaymentIntent
from rentease_ledger.infrastructure.observability.metrics import gateway_failure_counter

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


class PaymentGateway(ABC):
    """Contract the lifecycle core needs from a payment processor"""

    @abstractmethod
    def create_intent(
        self,
        amount_minor_units: int,
        purpose_label: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        description: Optional[str] = None,
    ) -> PaymentIntent:
        """
        Open a checkout for a single payment.

        Raises:
            GatewayError: Processor unavailable or rejected the request
        """
        ...

    @abstractmethod
    def parse_event(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        """
        Verify and normalize an asynchronous callback.

        Raises:
            ValidationError: Signature invalid or payload malformed
        """
        ...


class StripeCheckoutGateway(PaymentGateway):
    """Stripe Checkout Sessions; the session id is the intent id"""

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        currency: str | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        self.currency = currency or settings.payment_currency

    def create_intent(
        self,
        amount_minor_units: int,
        purpose_label: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        description: Optional[str] = None,
    ) -> PaymentIntent:
        if amount_minor_units <= 0:
            raise ValidationError("Payment amount must be positive")
        if not self.api_key:
            gateway_failure_counter.labels(service="payments").inc()
            raise GatewayError("Payment processor is not configured")

        product_data = {"name": purpose_label}
        if description:
            product_data["description"] = description

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": amount_minor_units,
                            "product_data": product_data,
                        },
                        "quantity": 1,
                    }
                ],
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            gateway_failure_counter.labels(service="payments").inc()
            raise GatewayError(f"Payment processor error: {e.user_message or e}") from e

        return PaymentIntent(intent_id=session.id, redirect_url=session.url)

    def parse_event(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        if self.webhook_secret:
            if not signature:
                raise ValidationError("Missing webhook signature")
            try:
                stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            except stripe.SignatureVerificationError as e:
                raise ValidationError("Invalid webhook signature") from e
            except ValueError as e:
                raise ValidationError("Malformed webhook payload") from e
        else:
            logger.warning("Webhook signature verification skipped (no webhook secret configured)")

        try:
            data = json.loads(payload)
            raw_type = data["type"]
            obj = data.get("data", {}).get("object", {})
            metadata = {k: str(v) for k, v in (obj.get("metadata") or {}).items()}
        except (ValueError, KeyError, AttributeError, TypeError) as e:
            raise ValidationError(f"Malformed webhook payload: {e}") from e

        event_type = PAYMENT_COMPLETED if raw_type == CHECKOUT_COMPLETED else raw_type

        return PaymentEvent(
            event_id=data.get("id", ""),
            event_type=event_type,
            intent_id=obj.get("id"),
            metadata=metadata,
            raw=data,
        )
