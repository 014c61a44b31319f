from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stripe_gateway import store
from stripe_gateway.auth import require_service_auth
from stripe_gateway.database import get_db
from stripe_gateway.dependencies import get_key_resolver, get_runs, get_stripe
from stripe_gateway.key_client import KeyResolutionError, KeyResolver
from stripe_gateway.routers.common import stripe_http_error
from stripe_gateway.runs_client import RunsClient, RunsServiceError, report_best_effort
from stripe_gateway.schemas import CheckoutSessionRequest, PaymentIntentRequest
from stripe_gateway.stripe_service import PROCESSOR_ERRORS, StripeService

logger = structlog.get_logger(__name__)

SERVICE_NAME = "stripe-service"

router = APIRouter(tags=["Payments"], dependencies=[Depends(require_service_auth)])


def _resolve_key(key_resolver: KeyResolver, app_id: Optional[str]) -> Optional[str]:
    # No app id: the StripeService default key applies
    if not app_id:
        return None
    try:
        return key_resolver.resolve(app_id)
    except KeyResolutionError as exc:
        logger.error("stripe_key_resolution_failed", app_id=app_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to resolve Stripe key from key-service")


def _start_run(runs: RunsClient, request, task_name: str) -> Optional[str]:
    """Create the run before touching Stripe when the caller did not bring one."""
    if request.run_id or not request.org_id:
        return request.run_id
    try:
        run = runs.create_run(
            org_id=request.org_id,
            app_id=request.app_id or SERVICE_NAME,
            service_name=SERVICE_NAME,
            task_name=task_name,
            brand_id=request.brand_id,
            campaign_id=request.campaign_id,
        )
    except RunsServiceError as exc:
        logger.error("run_create_failed", org_id=request.org_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to create run in runs-service")
    return run["id"]


def _tagged_metadata(request, run_id: Optional[str]) -> dict:
    metadata = dict(request.metadata or {})
    if run_id:
        metadata["runId"] = run_id
    if request.org_id:
        metadata["orgId"] = request.org_id
    return metadata


def _fail_run(runs: RunsClient, run_id: Optional[str]) -> None:
    if run_id:
        report_best_effort(runs.update_run, run_id, "failed")


def _complete_run(background_tasks: BackgroundTasks, runs: RunsClient, run_id: Optional[str], cost_name: str):
    if not run_id:
        return
    background_tasks.add_task(report_best_effort, runs.add_costs, run_id, [{"costName": cost_name, "quantity": 1}])
    background_tasks.add_task(report_best_effort, runs.update_run, run_id, "completed")


def _record(db: Session, runs: RunsClient, **fields):
    run_id = fields.get("run_id")
    try:
        return store.record_payment(db, **fields)
    except SQLAlchemyError:
        logger.exception("payment_record_failed", run_id=run_id)
        _fail_run(runs, run_id)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/checkout/create")
def create_checkout_session(
    request: CheckoutSessionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe),
    key_resolver: KeyResolver = Depends(get_key_resolver),
    runs: RunsClient = Depends(get_runs),
):
    stripe_key = _resolve_key(key_resolver, request.app_id)
    run_id = _start_run(runs, request, "create-checkout-session")

    try:
        session = stripe_service.create_checkout_session(
            line_items=[item.model_dump() for item in request.line_items],
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            mode=request.mode,
            customer_id=request.customer_id,
            customer_email=request.customer_email,
            metadata=_tagged_metadata(request, run_id),
            discounts=[d.model_dump() for d in request.discounts] if request.discounts else None,
            api_key=stripe_key,
        )
    except PROCESSOR_ERRORS as err:
        _fail_run(runs, run_id)
        raise stripe_http_error(err, "create_checkout_session")

    # Amount is only known once the session completes
    payment = _record(
        db, runs,
        org_id=request.org_id,
        run_id=run_id,
        brand_id=request.brand_id,
        app_id=request.app_id,
        campaign_id=request.campaign_id,
        stripe_checkout_session_id=session.id,
        amount_in_cents=0,
        currency="usd",
        status="checkout_created",
        metadata=request.metadata,
    )
    logger.info("checkout_session_created", payment_id=payment.id, session_id=session.id, run_id=run_id)

    _complete_run(background_tasks, runs, run_id, "stripe-checkout-session")

    return {
        "success": True,
        "paymentId": payment.id,
        "sessionId": session.id,
        "url": getattr(session, "url", None),
    }


@router.post("/payment-intent/create")
def create_payment_intent(
    request: PaymentIntentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe),
    key_resolver: KeyResolver = Depends(get_key_resolver),
    runs: RunsClient = Depends(get_runs),
):
    stripe_key = _resolve_key(key_resolver, request.app_id)
    run_id = _start_run(runs, request, "create-payment-intent")

    try:
        intent = stripe_service.create_payment_intent(
            amount_in_cents=request.amount_in_cents,
            currency=request.currency,
            customer_id=request.customer_id,
            description=request.description,
            metadata=_tagged_metadata(request, run_id),
            api_key=stripe_key,
        )
    except PROCESSOR_ERRORS as err:
        _fail_run(runs, run_id)
        raise stripe_http_error(err, "create_payment_intent")

    payment = _record(
        db, runs,
        org_id=request.org_id,
        run_id=run_id,
        brand_id=request.brand_id,
        app_id=request.app_id,
        campaign_id=request.campaign_id,
        stripe_payment_intent_id=intent.id,
        amount_in_cents=request.amount_in_cents,
        currency=request.currency or "usd",
        status=intent.status or "requires_payment_method",
        description=request.description,
        metadata=request.metadata,
    )
    logger.info("payment_intent_created", payment_id=payment.id, payment_intent_id=intent.id, run_id=run_id)

    _complete_run(background_tasks, runs, run_id, "stripe-payment-intent")

    return {
        "success": True,
        "paymentId": payment.id,
        "paymentIntentId": intent.id,
        "clientSecret": intent.client_secret,
        "status": intent.status,
    }


@router.get("/checkout/sessions/{session_id}")
def get_checkout_session(session_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.retrieve_checkout_session(session_id)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "retrieve_checkout_session", not_found="Checkout session not found")


@router.get("/payment-intents/{payment_intent_id}")
def get_payment_intent(payment_intent_id: str, stripe_service: StripeService = Depends(get_stripe)):
    try:
        return stripe_service.retrieve_payment_intent(payment_intent_id)
    except PROCESSOR_ERRORS as err:
        raise stripe_http_error(err, "retrieve_payment_intent", not_found="Payment intent not found")
