import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from stripe_gateway.config import Settings
from stripe_gateway.database import get_db
from stripe_gateway.dependencies import get_settings, get_stripe
from stripe_gateway.reconciler import WebhookReconciler
from stripe_gateway.stripe_service import StripeService, WebhookVerificationError

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    stripe_service: StripeService = Depends(get_stripe),
):
    # Signature covers the exact bytes Stripe sent; never parse before verifying
    payload = await request.body()

    if not settings.stripe_webhook_secret:
        logger.error("webhook_secret_not_configured")
        raise HTTPException(status_code=400, detail="Webhook secret not configured")

    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        event = stripe_service.verify_webhook(payload, stripe_signature, settings.stripe_webhook_secret)
    except WebhookVerificationError as exc:
        logger.warning("webhook_verification_failed", error=str(exc))
        raise HTTPException(status_code=400, detail=str(exc))

    event_type = event["type"]
    logger.info("webhook_received", event_type=event_type, event_id=event.get("id"))

    reconciler = WebhookReconciler(db)
    try:
        await run_in_threadpool(reconciler.reconcile, event)
    except Exception:
        db.rollback()
        logger.exception("webhook_processing_failed", event_type=event_type)
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return {"received": True}
