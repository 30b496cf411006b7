"""/v1/webhooks - payment processor and e-signature callbacks"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from rentease_ledger.api.dependencies import (
    get_payment_gateway,
    get_payment_webhook_handler,
    get_request_id,
    get_signing_webhook_handler,
)
from rentease_ledger.api.v1.schemas import WebhookAck
from rentease_ledger.infrastructure.clients.payments import PaymentGateway
from rentease_ledger.services.webhooks import PaymentWebhookHandler, SigningWebhookHandler

router = APIRouter()


@router.post("/webhooks/payments", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    handler: PaymentWebhookHandler = Depends(get_payment_webhook_handler),
):
    """
    Payment processor callback.

    Flow:
    1. Verify the signature against the raw body (invalid: 400, processor retries)
    2. Record the event, then apply it to the plan or bill it names
    3. Acknowledge; anything that could not be applied is queued for operators
    """
    payload = await request.body()
    event = gateway.parse_event(payload, stripe_signature)

    outcome = await run_in_threadpool(handler.handle, event)

    logging.info(
        f"Payment webhook {event.event_id} handled: {outcome.value}",
        extra={"request_id": get_request_id(request)},
    )
    return WebhookAck(received=True, outcome=outcome.value)


@router.post("/webhooks/signing", response_model=WebhookAck)
async def signing_webhook(
    request: Request,
    handler: SigningWebhookHandler = Depends(get_signing_webhook_handler),
):
    """E-signature status callback; updates signing_status only"""
    try:
        payload = json.loads(await request.body())
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict) or not payload.get("event_type"):
        raise HTTPException(status_code=400, detail="Missing event_type")

    status = await run_in_threadpool(handler.handle, payload)
    return WebhookAck(received=True, outcome=status.value if status is not None else None)
