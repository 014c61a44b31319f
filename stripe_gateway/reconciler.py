"""Webhook reconciliation.

Maps verified Stripe events onto the local payment records. Event-log
writes are idempotent on the processor's natural id (successes, refunds,
disputes, checkout sessions); failures are appended on every delivery so
each failed attempt stays visible. Payment status is an open label that
the most recent handler overwrites; out-of-order redeliveries are not
reordered.
"""
import json

import structlog

from stripe_gateway import store
from stripe_gateway.models import (
    PaymentSuccess,
    PaymentFailure,
    Refund,
    Dispute,
    CheckoutSession,
)

logger = structlog.get_logger(__name__)


def _raw(obj) -> str:
    return json.dumps(obj, default=str)


class WebhookReconciler:
    handlers = {
        "payment_intent.succeeded": "on_payment_succeeded",
        "payment_intent.payment_failed": "on_payment_failed",
        "charge.refunded": "on_charge_refunded",
        "charge.dispute.created": "on_dispute_created",
        "checkout.session.completed": "on_checkout_session_completed",
    }

    def __init__(self, db):
        self.db = db

    @property
    def supported_events(self):
        return list(self.handlers)

    def reconcile(self, event) -> bool:
        """Apply one verified event. Returns False when the type is not handled.

        Handler errors propagate so the whole delivery fails and the
        processor retries it.
        """
        event_type = event["type"]
        handler_name = self.handlers.get(event_type)
        if handler_name is None:
            logger.info("webhook_unhandled_event", event_type=event_type)
            return False

        obj = event["data"]["object"]
        getattr(self, handler_name)(obj)
        logger.info("webhook_reconciled", event_type=event_type, object_id=obj.get("id"))
        return True

    def on_payment_succeeded(self, intent):
        store.insert_if_absent(self.db, PaymentSuccess, "stripe_payment_intent_id", {
            "stripe_payment_intent_id": intent["id"],
            "stripe_charge_id": intent.get("latest_charge"),
            "amount_in_cents": intent["amount"],
            "currency": intent["currency"],
            "receipt_url": None,
            "raw_payload": _raw(intent),
        })
        store.set_status_by_payment_intent(self.db, intent["id"], "succeeded")

    def on_payment_failed(self, intent):
        last_error = intent.get("last_payment_error") or {}
        store.append(self.db, PaymentFailure, {
            "stripe_payment_intent_id": intent["id"],
            "failure_code": last_error.get("code"),
            "failure_message": last_error.get("message"),
            "raw_payload": _raw(intent),
        })
        store.set_status_by_payment_intent(self.db, intent["id"], "failed")

    def on_charge_refunded(self, charge):
        payment_intent_id = charge.get("payment_intent")
        refunds = (charge.get("refunds") or {}).get("data") or []

        for refund in refunds:
            store.insert_if_absent(self.db, Refund, "stripe_refund_id", {
                "stripe_refund_id": refund["id"],
                "stripe_payment_intent_id": payment_intent_id,
                "stripe_charge_id": charge["id"],
                "amount_in_cents": refund["amount"],
                "currency": refund["currency"],
                "reason": refund.get("reason"),
                "status": refund.get("status") or "unknown",
                "raw_payload": _raw(refund),
            })

        # Partial refunds stay in the log only
        if charge.get("refunded") and payment_intent_id:
            store.set_status_by_payment_intent(self.db, payment_intent_id, "refunded")

    def on_dispute_created(self, dispute):
        payment_intent_id = dispute.get("payment_intent")
        store.insert_if_absent(self.db, Dispute, "stripe_dispute_id", {
            "stripe_dispute_id": dispute["id"],
            "stripe_payment_intent_id": payment_intent_id,
            "stripe_charge_id": dispute["charge"],
            "amount_in_cents": dispute["amount"],
            "currency": dispute["currency"],
            "reason": dispute.get("reason"),
            "status": dispute["status"],
            "raw_payload": _raw(dispute),
        })

        if payment_intent_id:
            store.set_status_by_payment_intent(self.db, payment_intent_id, "disputed")

    def on_checkout_session_completed(self, session):
        payment_intent_id = session.get("payment_intent")
        store.insert_if_absent(self.db, CheckoutSession, "stripe_session_id", {
            "stripe_session_id": session["id"],
            "stripe_payment_intent_id": payment_intent_id,
            "stripe_customer_id": session.get("customer"),
            "amount_total_in_cents": session.get("amount_total"),
            "currency": session.get("currency"),
            "payment_status": session["payment_status"],
            "status": session.get("status") or "complete",
            "raw_payload": _raw(session),
        })

        # The payment row only knows its session id until this point
        if payment_intent_id:
            store.apply_checkout_completion(self.db, session["id"], {
                "stripe_payment_intent_id": payment_intent_id,
                "stripe_customer_id": session.get("customer"),
                "amount_in_cents": session.get("amount_total") or 0,
                "currency": session.get("currency") or "usd",
                "status": "succeeded" if session["payment_status"] == "paid" else "pending",
            })
