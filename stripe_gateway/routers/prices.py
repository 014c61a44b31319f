from typing import Optional

from fastapi import APIRouter, Depends, Query

from stripe_gateway.auth import require_service_auth
from stripe_gateway.dependencies import get_stripe
from stripe_gateway.routers.common import list_response, stripe_http_error
from stripe_gateway.schemas import PriceCreate, PriceUpdate
from stripe_gateway.stripe_service import PROCESSOR_ERRORS, StripeService

router = APIRouter(tags=["Prices"], dependencies=[Depends(require_service_auth)])


def _product_id(price):
    # Expanded prices carry the whole product object
    product = price["product"]
    return product if isinstance(product, str) else product["id"]


def _create(request: PriceCreate, stripe_service: StripeService):
    try:
        return stripe_service.create_price(
            product_id=request.product_id,
            unit_amount_in_cents=request.unit_amount_in_cents,
            currency=request.currency,
            recurring=request.recurring.model_dump() if request.recurring else None,
            metadata=request.metadata,
        )
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "create_price")


@router.post("/prices")
def create_price(request: PriceCreate, stripe_service: StripeService = Depends(get_stripe)):
    return _create(request, stripe_service)


@router.post("/prices/create")
def create_price_summary(request: PriceCreate, stripe_service: StripeService = Depends(get_stripe)):
    price = _create(request, stripe_service)
    return {
        "success": True,
        "priceId": price["id"],
        "productId": _product_id(price),
        "unitAmountInCents": price["unit_amount"],
        "currency": price["currency"],
    }


@router.get("/prices/by-product/{product_id}")
def list_active_prices_for_product(product_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        result = stripe_service.list_prices(product=product_id, active=True)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "list_prices_by_product")
    return {
        "success": True,
        "prices": [
            {
                "priceId": price["id"],
                "productId": _product_id(price),
                "unitAmountInCents": price["unit_amount"],
                "currency": price["currency"],
                "active": price["active"],
            }
            for price in result.data
        ],
    }


@router.get("/prices")
def list_prices(
    product: Optional[str] = None,
    active: Optional[bool] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    stripe_service: StripeService = Depends(get_stripe),
):
    try:
        return list_response("prices", stripe_service.list_prices(product=product, active=active, limit=limit))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "list_prices")


@router.get("/prices/{price_id}")
def get_price(price_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.retrieve_price(price_id)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "retrieve_price", not_found="Price not found")


@router.patch("/prices/{price_id}")
def update_price(price_id: str, request: PriceUpdate, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.update_price(price_id, **request.model_dump(exclude_none=True))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "update_price", not_found="Price not found")
