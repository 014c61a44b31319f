from typing import Optional

from fastapi import APIRouter, Depends, Query

from stripe_gateway.auth import require_service_auth
from stripe_gateway.dependencies import get_stripe
from stripe_gateway.routers.common import list_response, stripe_http_error
from stripe_gateway.schemas import CouponCreate
from stripe_gateway.stripe_service import PROCESSOR_ERRORS, StripeService

router = APIRouter(tags=["Coupons"], dependencies=[Depends(require_service_auth)])


def _create(request: CouponCreate, stripe_service: StripeService):
    try:
        return stripe_service.create_coupon(
            id=request.id,
            name=request.name,
            percent_off=request.percent_off,
            amount_off_in_cents=request.amount_off_in_cents,
            currency=request.currency,
            duration=request.duration,
            duration_in_months=request.duration_in_months,
            max_redemptions=request.max_redemptions,
            redeem_by=int(request.redeem_by.timestamp()) if request.redeem_by else None,
            metadata=request.metadata,
        )
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "create_coupon")


@router.post("/coupons")
def create_coupon(request: CouponCreate, stripe_service: StripeService = Depends(get_stripe)):
    return _create(request, stripe_service)


@router.post("/coupons/create")
def create_coupon_summary(request: CouponCreate, stripe_service: StripeService = Depends(get_stripe)):
    coupon = _create(request, stripe_service)
    return {
        "success": True,
        "couponId": coupon["id"],
        "name": coupon.get("name"),
        "percentOff": coupon.get("percent_off"),
        "amountOffInCents": coupon.get("amount_off"),
        "currency": coupon.get("currency"),
        "duration": coupon.get("duration"),
    }


@router.get("/coupons")
def list_coupons(
    limit: Optional[int] = Query(None, ge=1, le=100),
    stripe_service: StripeService = Depends(get_stripe),
):
    try:
        return list_response("coupons", stripe_service.list_coupons(limit=limit))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "list_coupons")


@router.get("/coupons/{coupon_id}")
def get_coupon(coupon_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.retrieve_coupon(coupon_id)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "retrieve_coupon", not_found="Coupon not found")


@router.delete("/coupons/{coupon_id}")
def delete_coupon(coupon_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.delete_coupon(coupon_id)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "delete_coupon", not_found="Coupon not found")
