"""/v1/bills - landlord-issued charges and tenant checkout"""

from fastapi import APIRouter, Depends

from rentease_ledger.api.dependencies import get_bill_service, get_current_user
from rentease_ledger.api.v1.schemas import BillCreateRequest, BillResponse, CheckoutResponse
from rentease_ledger.infrastructure.database.models import User
from rentease_ledger.services.access import parse_uuid
from rentease_ledger.services.bills import BillService

router = APIRouter()


@router.post("/bills", response_model=BillResponse, status_code=201)
def create_bill(
    request_body: BillCreateRequest,
    user: User = Depends(get_current_user),
    service: BillService = Depends(get_bill_service),
):
    """Landlord issues a bill to one of their tenants"""
    bill = service.create_bill(
        user,
        tenant_id=request_body.tenant_id,
        bill_type=request_body.type,
        amount_cents=request_body.amount_cents,
        due_date=request_body.due_date,
        description=request_body.description,
    )
    return BillResponse.model_validate(bill)


@router.post("/bills/{bill_id}/pay", response_model=CheckoutResponse)
def pay_bill(
    bill_id: str,
    user: User = Depends(get_current_user),
    service: BillService = Depends(get_bill_service),
):
    """
    Open a checkout for an unpaid bill.

    The bill stays unpaid until the processor's confirmation webhook arrives.
    """
    intent = service.initiate_payment(user, parse_uuid(bill_id, "bill ID"))
    return CheckoutResponse(intent_id=intent.intent_id, redirect_url=intent.redirect_url)
