from typing import Optional

from fastapi import APIRouter, Depends, Query

from stripe_gateway.auth import require_service_auth
from stripe_gateway.dependencies import get_stripe
from stripe_gateway.routers.common import list_response, stripe_http_error
from stripe_gateway.schemas import ProductCreate, ProductUpdate
from stripe_gateway.stripe_service import PROCESSOR_ERRORS, StripeService

router = APIRouter(tags=["Products"], dependencies=[Depends(require_service_auth)])


def _create(request: ProductCreate, stripe_service: StripeService):
    try:
        return stripe_service.create_product(
            name=request.name,
            id=request.id,
            description=request.description,
            metadata=request.metadata,
        )
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "create_product")


@router.post("/products")
def create_product(request: ProductCreate, stripe_service: StripeService = Depends(get_stripe)):
    return _create(request, stripe_service)


@router.post("/products/create")
def create_product_summary(request: ProductCreate, stripe_service: StripeService = Depends(get_stripe)):
    """Older create route; answers with a flat summary instead of the Stripe object."""
    product = _create(request, stripe_service)
    return {
        "success": True,
        "productId": product["id"],
        "name": product["name"],
        "description": product.get("description"),
    }


@router.get("/products")
def list_products(
    active: Optional[bool] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    stripe_service: StripeService = Depends(get_stripe),
):
    try:
        return list_response("products", stripe_service.list_products(active=active, limit=limit))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "list_products")


@router.get("/products/{product_id}")
def get_product(product_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.retrieve_product(product_id)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "retrieve_product", not_found="Product not found")


@router.patch("/products/{product_id}")
def update_product(product_id: str, request: ProductUpdate, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.update_product(product_id, **request.model_dump(exclude_none=True))
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "update_product", not_found="Product not found")
