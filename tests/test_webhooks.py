import hashlib
import hmac
import json
import time

import pytest
import stripe
from sqlalchemy.exc import OperationalError

from stripe_gateway.models import (
    CheckoutSession,
    Dispute,
    Payment,
    PaymentFailure,
    PaymentSuccess,
    Refund,
)
from tests import payloads
from tests.conftest import WEBHOOK_SECRET


def post_webhook(client, body=b'{"type": "test"}', signature="test_signature"):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["stripe-signature"] = signature
    return client.post("/webhooks/stripe", content=body, headers=headers)


def deliver(client, mocker, event_type, obj):
    mocker.patch("stripe.Webhook.construct_event", return_value=payloads.event(event_type, obj))
    return post_webhook(client)


def add_payment(db, **fields):
    values = {"amount_in_cents": 2000, "currency": "usd", "status": "requires_payment_method"}
    values.update(fields)
    payment = Payment(**values)
    db.add(payment)
    db.commit()
    return payment.id


def reload_payment(db, payment_id):
    db.expire_all()
    return db.get(Payment, payment_id)


def test_payment_succeeded_delivered_twice_records_once(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_succeeded")

    for _ in range(2):
        response = deliver(client, mocker, "payment_intent.succeeded", payloads.payment_intent_succeeded())
        assert response.status_code == 200
        assert response.json() == {"received": True}

    successes = db.query(PaymentSuccess).all()
    assert len(successes) == 1
    assert successes[0].stripe_payment_intent_id == "pi_test_succeeded"
    assert successes[0].stripe_charge_id == "ch_test_123"
    assert successes[0].amount_in_cents == 2000
    assert successes[0].currency == "usd"
    assert json.loads(successes[0].raw_payload)["id"] == "pi_test_succeeded"
    assert reload_payment(db, payment_id).status == "succeeded"


def test_payment_failed_delivered_twice_records_twice(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_failed")

    for _ in range(2):
        response = deliver(client, mocker, "payment_intent.payment_failed", payloads.payment_intent_failed())
        assert response.status_code == 200

    failures = db.query(PaymentFailure).all()
    assert len(failures) == 2
    assert {f.failure_code for f in failures} == {"card_declined"}
    assert failures[0].failure_message == "Your card was declined."
    assert reload_payment(db, payment_id).status == "failed"


def test_payment_failed_without_error_details(client, db, mocker):
    deliver(client, mocker, "payment_intent.payment_failed",
            payloads.payment_intent_failed(last_payment_error=None))

    failure = db.query(PaymentFailure).one()
    assert failure.failure_code is None
    assert failure.failure_message is None


def test_late_failure_overwrites_success(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_succeeded")

    deliver(client, mocker, "payment_intent.succeeded", payloads.payment_intent_succeeded())
    deliver(client, mocker, "payment_intent.payment_failed",
            payloads.payment_intent_failed(id="pi_test_succeeded"))

    assert reload_payment(db, payment_id).status == "failed"


def test_partial_refund_logged_without_status_change(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_refunded", status="succeeded")

    response = deliver(client, mocker, "charge.refunded", payloads.charge_refunded(refunded=False))

    assert response.status_code == 200
    refund = db.query(Refund).one()
    assert refund.stripe_refund_id == "re_test_123"
    assert refund.stripe_charge_id == "ch_test_refunded"
    assert refund.stripe_payment_intent_id == "pi_test_refunded"
    assert refund.reason == "requested_by_customer"
    assert reload_payment(db, payment_id).status == "succeeded"


def test_full_refund_marks_payment_refunded(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_refunded", status="succeeded")

    deliver(client, mocker, "charge.refunded", payloads.charge_refunded())
    deliver(client, mocker, "charge.refunded", payloads.charge_refunded())

    assert db.query(Refund).count() == 1
    assert reload_payment(db, payment_id).status == "refunded"


def test_charge_with_several_refunds_logs_each(client, db, mocker):
    charge = payloads.charge_refunded()
    charge["refunds"]["data"].append({
        "id": "re_test_456",
        "amount": 500,
        "currency": "usd",
        "reason": None,
        "status": None,
    })

    deliver(client, mocker, "charge.refunded", charge)

    refunds = {r.stripe_refund_id: r for r in db.query(Refund).all()}
    assert set(refunds) == {"re_test_123", "re_test_456"}
    assert refunds["re_test_456"].status == "unknown"


def test_dispute_created_marks_payment_disputed(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_disputed", status="succeeded")

    deliver(client, mocker, "charge.dispute.created", payloads.dispute_created())
    deliver(client, mocker, "charge.dispute.created", payloads.dispute_created())

    dispute = db.query(Dispute).one()
    assert dispute.stripe_dispute_id == "dp_test_123"
    assert dispute.reason == "fraudulent"
    assert dispute.status == "needs_response"
    assert reload_payment(db, payment_id).status == "disputed"


def test_dispute_without_payment_intent_only_logged(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_disputed", status="succeeded")

    deliver(client, mocker, "charge.dispute.created", payloads.dispute_created(payment_intent=None))

    assert db.query(Dispute).count() == 1
    assert reload_payment(db, payment_id).status == "succeeded"


@pytest.mark.parametrize("payment_status, expected", [
    ("paid", "succeeded"),
    ("unpaid", "pending"),
    ("no_payment_required", "pending"),
])
def test_checkout_completed_links_session_to_intent(client, db, mocker, payment_status, expected):
    payment_id = add_payment(
        db,
        stripe_checkout_session_id="cs_test_123",
        amount_in_cents=0,
        status="checkout_created",
    )

    response = deliver(client, mocker, "checkout.session.completed",
                       payloads.checkout_session_completed(payment_status=payment_status))

    assert response.status_code == 200
    payment = reload_payment(db, payment_id)
    assert payment.stripe_payment_intent_id == "pi_test_checkout"
    assert payment.stripe_customer_id == "cus_test_123"
    assert payment.amount_in_cents == 5000
    assert payment.status == expected

    record = db.query(CheckoutSession).one()
    assert record.stripe_session_id == "cs_test_123"
    assert record.payment_status == payment_status


def test_checkout_completed_redelivery_keeps_single_record(client, db, mocker):
    add_payment(db, stripe_checkout_session_id="cs_test_123", amount_in_cents=0, status="checkout_created")

    deliver(client, mocker, "checkout.session.completed", payloads.checkout_session_completed())
    deliver(client, mocker, "checkout.session.completed", payloads.checkout_session_completed())

    assert db.query(CheckoutSession).count() == 1


def test_unknown_event_type_accepted_and_ignored(client, db, mocker):
    add_payment(db, stripe_payment_intent_id="pi_untouched")

    response = deliver(client, mocker, "some.unknown.event", {"id": "obj_1"})

    assert response.status_code == 200
    assert response.json() == {"received": True}
    for model in (PaymentSuccess, PaymentFailure, Refund, Dispute, CheckoutSession):
        assert db.query(model).count() == 0
    assert db.query(Payment).one().status == "requires_payment_method"


def test_missing_signature_rejected(client, db, mocker):
    construct = mocker.patch("stripe.Webhook.construct_event")

    response = post_webhook(client, signature=None)

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing stripe-signature header"
    construct.assert_not_called()
    assert db.query(PaymentSuccess).count() == 0


def test_invalid_signature_rejected(client, db, mocker):
    mocker.patch(
        "stripe.Webhook.construct_event",
        side_effect=stripe.SignatureVerificationError("Invalid", "sig"),
    )
    reconcile = mocker.patch("stripe_gateway.reconciler.WebhookReconciler.reconcile")

    response = post_webhook(client, signature="invalid_sig")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
    reconcile.assert_not_called()
    assert db.query(PaymentSuccess).count() == 0


def test_invalid_payload_rejected(client, mocker):
    mocker.patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json"))

    response = post_webhook(client, body=b"not json")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payload"


def test_missing_webhook_secret_rejected(client, settings, mocker):
    settings.stripe_webhook_secret = None
    construct = mocker.patch("stripe.Webhook.construct_event")

    response = post_webhook(client)

    assert response.status_code == 400
    assert response.json()["detail"] == "Webhook secret not configured"
    construct.assert_not_called()


def test_handler_failure_returns_500_and_keeps_logged_event(client, db, mocker):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_succeeded")
    mocker.patch(
        "stripe_gateway.store.set_status_by_payment_intent",
        side_effect=OperationalError("UPDATE", {}, Exception("database is locked")),
    )

    response = deliver(client, mocker, "payment_intent.succeeded", payloads.payment_intent_succeeded())

    assert response.status_code == 500
    assert response.json()["detail"] == "Webhook processing failed"

    # The event row commits on its own; the status update that failed leaves the payment untouched
    assert db.query(PaymentSuccess).count() == 1
    assert reload_payment(db, payment_id).status == "requires_payment_method"


def test_webhook_does_not_require_api_key(client, mocker):
    response = deliver(client, mocker, "some.unknown.event", {"id": "obj_1"})
    assert response.status_code == 200


def test_genuine_signature_verified_against_raw_body(client, db):
    payment_id = add_payment(db, stripe_payment_intent_id="pi_test_succeeded")
    body = json.dumps(payloads.event("payment_intent.succeeded", payloads.payment_intent_succeeded())).encode()
    timestamp = int(time.time())
    digest = hmac.new(WEBHOOK_SECRET.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()

    response = post_webhook(client, body=body, signature=f"t={timestamp},v1={digest}")

    assert response.status_code == 200
    assert db.query(PaymentSuccess).count() == 1
    assert reload_payment(db, payment_id).status == "succeeded"


def test_tampered_body_fails_genuine_verification(client, db):
    body = json.dumps(payloads.event("payment_intent.succeeded", payloads.payment_intent_succeeded())).encode()
    timestamp = int(time.time())
    digest = hmac.new(WEBHOOK_SECRET.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()

    response = post_webhook(client, body=body.replace(b"2000", b"9999"), signature=f"t={timestamp},v1={digest}")

    assert response.status_code == 400
    assert db.query(PaymentSuccess).count() == 0
