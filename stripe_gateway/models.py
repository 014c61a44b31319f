import uuid
from datetime import datetime, timezone

from pydantic.alias_generators import to_camel
from sqlalchemy import Column, String, Integer, Text, DateTime, Index, inspect

from stripe_gateway.database import Base


def _new_id():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class SerializableMixin:
    def as_dict(self):
        """Column values keyed by camelCase column name, datetimes as ISO strings."""
        data = {}
        for attr in inspect(self).mapper.column_attrs:
            value = getattr(self, attr.key)
            if isinstance(value, datetime):
                value = value.isoformat()
            data[to_camel(attr.columns[0].name)] = value
        return data


class Payment(SerializableMixin, Base):
    __tablename__ = "stripe_payments"

    id = Column(String(36), primary_key=True, default=_new_id)
    org_id = Column(String)
    run_id = Column(String)
    brand_id = Column(String)
    app_id = Column(String)
    campaign_id = Column(String)
    stripe_payment_intent_id = Column(String)
    stripe_checkout_session_id = Column(String)
    stripe_customer_id = Column(String)
    amount_in_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="usd")
    # Open string: pending | checkout_created | requires_payment_method | succeeded | failed | refunded | disputed
    status = Column(String, nullable=False, default="pending")
    description = Column(Text)
    metadata_json = Column("metadata", Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_stripe_payments_org_id", "org_id"),
        Index("idx_stripe_payments_run_id", "run_id"),
        Index("idx_stripe_payments_brand_id", "brand_id"),
        Index("idx_stripe_payments_app_id", "app_id"),
        Index("idx_stripe_payments_campaign_id", "campaign_id"),
        Index("idx_stripe_payments_payment_intent_id", "stripe_payment_intent_id"),
        Index("idx_stripe_payments_checkout_session_id", "stripe_checkout_session_id"),
    )


class PaymentSuccess(SerializableMixin, Base):
    __tablename__ = "stripe_payment_successes"

    id = Column(String(36), primary_key=True, default=_new_id)
    stripe_payment_intent_id = Column(String, nullable=False)
    stripe_charge_id = Column(String)
    amount_in_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)
    receipt_url = Column(Text)
    raw_payload = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_payment_successes_intent_id", "stripe_payment_intent_id", unique=True),
    )


class PaymentFailure(SerializableMixin, Base):
    __tablename__ = "stripe_payment_failures"

    id = Column(String(36), primary_key=True, default=_new_id)
    # Not unique: every failed delivery is kept
    stripe_payment_intent_id = Column(String, nullable=False)
    failure_code = Column(String)
    failure_message = Column(Text)
    raw_payload = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_payment_failures_intent_id", "stripe_payment_intent_id"),
    )


class Refund(SerializableMixin, Base):
    __tablename__ = "stripe_refunds"

    id = Column(String(36), primary_key=True, default=_new_id)
    stripe_refund_id = Column(String, nullable=False)
    stripe_payment_intent_id = Column(String)
    stripe_charge_id = Column(String, nullable=False)
    amount_in_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)
    reason = Column(String)
    status = Column(String, nullable=False)
    raw_payload = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_refunds_refund_id", "stripe_refund_id", unique=True),
        Index("idx_refunds_payment_intent_id", "stripe_payment_intent_id"),
    )


class Dispute(SerializableMixin, Base):
    __tablename__ = "stripe_disputes"

    id = Column(String(36), primary_key=True, default=_new_id)
    stripe_dispute_id = Column(String, nullable=False)
    stripe_payment_intent_id = Column(String)
    stripe_charge_id = Column(String, nullable=False)
    amount_in_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)
    reason = Column(String)
    status = Column(String, nullable=False)
    raw_payload = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_disputes_dispute_id", "stripe_dispute_id", unique=True),
        Index("idx_disputes_payment_intent_id", "stripe_payment_intent_id"),
    )


class CheckoutSession(SerializableMixin, Base):
    __tablename__ = "stripe_checkout_sessions"

    id = Column(String(36), primary_key=True, default=_new_id)
    stripe_session_id = Column(String, nullable=False)
    stripe_payment_intent_id = Column(String)
    stripe_customer_id = Column(String)
    amount_total_in_cents = Column(Integer)
    currency = Column(String)
    payment_status = Column(String, nullable=False)
    status = Column(String, nullable=False)
    raw_payload = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_checkout_sessions_session_id", "stripe_session_id", unique=True),
        Index("idx_checkout_sessions_payment_intent_id", "stripe_payment_intent_id"),
    )
