"""/v1/rent-plans - landlord proposals and the tenant's decision"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Request

from rentease_ledger.api.dependencies import (
    get_current_user,
    get_rent_plan_service,
    get_request_id,
    get_signing_client,
)
from rentease_ledger.api.v1.schemas import (
    CheckoutResponse,
    RentPlanCreateRequest,
    RentPlanResponse,
    SigningStatusResponse,
)
from rentease_ledger.infrastructure.clients.signing import DocuSealClient
from rentease_ledger.infrastructure.database.models import User
from rentease_ledger.infrastructure.database.session import SessionFactory, get_session_factory
from rentease_ledger.services.access import parse_uuid
from rentease_ledger.services.rent_plans import PlanTerms, RentPlanService, request_signature

router = APIRouter()


@router.post("/rent-plans", response_model=RentPlanResponse, status_code=201)
def propose_rent_plan(
    request_body: RentPlanCreateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    user: User = Depends(get_current_user),
    service: RentPlanService = Depends(get_rent_plan_service),
    signing_client: DocuSealClient = Depends(get_signing_client),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """
    Landlord proposes a rent plan to a tenant.

    Flow:
    1. Validate terms and resolve the tenant
    2. Persist the plan as pending
    3. Schedule the tenancy agreement for e-signature (best effort)
    """
    terms = PlanTerms(
        monthly_rent_cents=request_body.monthly_rent_cents,
        deposit_cents=request_body.deposit_cents,
        duration_months=request_body.duration_months,
        description=request_body.description,
        start_date=request_body.start_date,
    )
    plan = service.propose(
        user,
        terms,
        tenant_id=request_body.tenant_id,
        tenant_username=request_body.tenant_username,
    )

    tenant = plan.tenant
    background_tasks.add_task(
        request_signature,
        session_factory,
        signing_client,
        plan.id,
        tenant.email,
        tenant.name,
        user.name,
    )

    logging.info(
        "Rent plan proposed",
        extra={"request_id": get_request_id(request), "plan_id": str(plan.id), "tenant_id": str(tenant.id)},
    )
    return RentPlanResponse.model_validate(plan)


@router.get("/rent-plans/{plan_id}", response_model=RentPlanResponse)
def get_rent_plan(
    plan_id: str,
    user: User = Depends(get_current_user),
    service: RentPlanService = Depends(get_rent_plan_service),
):
    plan = service.get_plan(user, parse_uuid(plan_id, "plan ID"))
    return RentPlanResponse.model_validate(plan)


@router.post("/rent-plans/{plan_id}/accept", response_model=CheckoutResponse)
def accept_rent_plan(
    plan_id: str,
    user: User = Depends(get_current_user),
    service: RentPlanService = Depends(get_rent_plan_service),
):
    """
    Tenant accepts and is sent to pay the deposit.

    Returns:
        Checkout handle; the plan completes when the processor confirms payment
    """
    intent = service.accept(user, parse_uuid(plan_id, "plan ID"))
    return CheckoutResponse(intent_id=intent.intent_id, redirect_url=intent.redirect_url)


@router.post("/rent-plans/{plan_id}/reject", response_model=RentPlanResponse)
def reject_rent_plan(
    plan_id: str,
    user: User = Depends(get_current_user),
    service: RentPlanService = Depends(get_rent_plan_service),
):
    plan = service.reject(user, parse_uuid(plan_id, "plan ID"))
    return RentPlanResponse.model_validate(plan)


@router.post("/rent-plans/{plan_id}/cancel", response_model=RentPlanResponse)
def cancel_rent_plan(
    plan_id: str,
    user: User = Depends(get_current_user),
    service: RentPlanService = Depends(get_rent_plan_service),
):
    plan = service.cancel(user, parse_uuid(plan_id, "plan ID"))
    return RentPlanResponse.model_validate(plan)


@router.get("/rent-plans/{plan_id}/signing", response_model=SigningStatusResponse)
def get_signing_status(
    plan_id: str,
    user: User = Depends(get_current_user),
    service: RentPlanService = Depends(get_rent_plan_service),
):
    plan = service.get_plan(user, parse_uuid(plan_id, "plan ID"))
    return SigningStatusResponse(
        plan_id=plan.id,
        status=plan.signing_status,
        submission_id=plan.signing_submission_id,
        signing_url=plan.signing_url,
        signed_at=plan.signed_at,
    )
