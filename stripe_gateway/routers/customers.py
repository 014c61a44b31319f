from typing import Optional

from fastapi import APIRouter, Depends, Query

from stripe_gateway.auth import require_service_auth
from stripe_gateway.dependencies import get_stripe
from stripe_gateway.routers.common import list_response, stripe_http_error
from stripe_gateway.schemas import CustomerCreate, CustomerUpdate
from stripe_gateway.stripe_service import PROCESSOR_ERRORS, StripeService

router = APIRouter(tags=["Customers"], dependencies=[Depends(require_service_auth)])


@router.post("/customers")
def create_customer(request: CustomerCreate, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.create_customer(**request.model_dump(exclude_none=True))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "create_customer")


@router.get("/customers")
def list_customers(
    email: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    stripe_service: StripeService = Depends(get_stripe),
):
    try:
        return list_response("customers", stripe_service.list_customers(email=email, limit=limit))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "list_customers")


@router.get("/customers/{customer_id}")
def get_customer(customer_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.retrieve_customer(customer_id)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "retrieve_customer", not_found="Customer not found")


@router.patch("/customers/{customer_id}")
def update_customer(customer_id: str, request: CustomerUpdate, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.update_customer(customer_id, **request.model_dump(exclude_none=True))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "update_customer", not_found="Customer not found")
