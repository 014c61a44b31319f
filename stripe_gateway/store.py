"""Payment Record Store.

Every helper commits its own statement. Event-log inserts and the payment
status updates that follow them are deliberately separate statements; a
crash in between leaves the event logged and the status stale until the
processor redelivers.
"""
import json

from sqlalchemy import insert, update, select, func
from sqlalchemy.dialects import postgresql, sqlite

from stripe_gateway.models import (
    Payment,
    PaymentSuccess,
    PaymentFailure,
    Refund,
    Dispute,
)

_CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_if_absent(db, model, key: str, values: dict) -> bool:
    """Insert a row unless one with the same natural key exists.

    Relies on the unique index over ``key``; concurrent deliveries of the
    same event are settled by the database constraint. Returns True when a
    row was written.
    """
    dialect = db.get_bind().dialect.name
    conflict_insert = _CONFLICT_INSERTS.get(dialect)
    if conflict_insert is None:
        raise NotImplementedError(f"insert-if-absent is not supported on {dialect}")

    stmt = conflict_insert(model).values(**values).on_conflict_do_nothing(index_elements=[key])
    result = db.execute(stmt)
    db.commit()
    return result.rowcount > 0


def append(db, model, values: dict) -> None:
    db.execute(insert(model).values(**values))
    db.commit()


def set_status_by_payment_intent(db, payment_intent_id: str, status: str) -> int:
    """Overwrite the status of every payment holding this intent id (last writer wins)."""
    result = db.execute(
        update(Payment)
        .where(Payment.stripe_payment_intent_id == payment_intent_id)
        .values(status=status)
    )
    db.commit()
    return result.rowcount


def apply_checkout_completion(db, session_id: str, values: dict) -> int:
    result = db.execute(
        update(Payment)
        .where(Payment.stripe_checkout_session_id == session_id)
        .values(**values)
    )
    db.commit()
    return result.rowcount


def record_payment(db, metadata=None, **fields) -> Payment:
    payment = Payment(
        metadata_json=json.dumps(metadata) if metadata else None,
        **fields
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def get_payment(db, payment_id: str):
    return db.get(Payment, payment_id)


def payments_for_org(db, org_id: str):
    return db.query(Payment).filter(Payment.org_id == org_id).order_by(Payment.created_at.desc()).all()


def payments_for_run(db, run_id: str):
    return db.query(Payment).filter(Payment.run_id == run_id).order_by(Payment.created_at.desc()).all()


def events_for_payment_intent(db, payment_intent_id: str) -> dict:
    if not payment_intent_id:
        return {"successes": [], "failures": [], "refunds": [], "disputes": []}

    def rows(model):
        return [
            row.as_dict()
            for row in db.query(model).filter(model.stripe_payment_intent_id == payment_intent_id).all()
        ]

    return {
        "successes": rows(PaymentSuccess),
        "failures": rows(PaymentFailure),
        "refunds": rows(Refund),
        "disputes": rows(Dispute),
    }


def payment_stats(db, org_id=None, brand_id=None, app_id=None, campaign_id=None, run_ids=None) -> dict:
    query = db.query(Payment)
    if org_id:
        query = query.filter(Payment.org_id == org_id)
    if brand_id:
        query = query.filter(Payment.brand_id == brand_id)
    if app_id:
        query = query.filter(Payment.app_id == app_id)
    if campaign_id:
        query = query.filter(Payment.campaign_id == campaign_id)
    if run_ids:
        query = query.filter(Payment.run_id.in_(run_ids))

    payments = query.all()
    intent_ids = [p.stripe_payment_intent_id for p in payments if p.stripe_payment_intent_id]

    def count(model):
        if not intent_ids:
            return 0
        return db.scalar(
            select(func.count()).select_from(model).where(model.stripe_payment_intent_id.in_(intent_ids))
        ) or 0

    return {
        "totalPayments": len(payments),
        "totalAmountInCents": sum(p.amount_in_cents for p in payments),
        "successCount": count(PaymentSuccess),
        "failureCount": count(PaymentFailure),
        "refundCount": count(Refund),
        "disputeCount": count(Dispute),
    }
