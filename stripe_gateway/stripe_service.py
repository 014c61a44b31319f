from typing import Optional

import stripe
import structlog

logger = structlog.get_logger(__name__)


class StripeConfigError(RuntimeError):
    pass


class WebhookVerificationError(Exception):
    pass


PROCESSOR_ERRORS = (stripe.StripeError, StripeConfigError)


def is_not_found(err: Exception) -> bool:
    return getattr(err, "http_status", None) == 404 or getattr(err, "code", None) == "resource_missing"


def _already_exists(err: Exception) -> bool:
    return getattr(err, "code", None) == "resource_already_exists"


def _compact(**params):
    return {k: v for k, v in params.items() if v is not None}


class StripeService:
    """Typed facade over the stripe library.

    Built once at start-up with the process-wide key; every call accepts an
    ``api_key`` override for tenants whose key was resolved per request.
    """

    def __init__(self, default_api_key: Optional[str] = None):
        self._default_api_key = default_api_key

    def _key(self, api_key: Optional[str] = None) -> str:
        key = api_key or self._default_api_key
        if not key:
            raise StripeConfigError("STRIPE_SECRET_KEY not configured")
        return key

    # --- Checkout sessions ---

    def create_checkout_session(
        self,
        line_items,
        success_url: str,
        cancel_url: str,
        mode: str = "payment",
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        metadata: Optional[dict] = None,
        discounts=None,
        api_key: Optional[str] = None,
    ):
        params = _compact(
            customer=customer_id,
            customer_email=None if customer_id else customer_email,
            metadata=metadata,
            discounts=[
                _compact(coupon=d.get("coupon"), promotion_code=d.get("promotion_code"))
                for d in discounts
            ] if discounts else None,
        )
        return stripe.checkout.Session.create(
            line_items=[
                {"price": item["price_id"], "quantity": item["quantity"]}
                for item in line_items
            ],
            mode=mode or "payment",
            success_url=success_url,
            cancel_url=cancel_url,
            api_key=self._key(api_key),
            **params
        )

    def retrieve_checkout_session(self, session_id: str, api_key: Optional[str] = None):
        return stripe.checkout.Session.retrieve(session_id, api_key=self._key(api_key))

    def list_checkout_sessions(self, limit: Optional[int] = None, payment_intent: Optional[str] = None,
                               api_key: Optional[str] = None):
        return stripe.checkout.Session.list(
            api_key=self._key(api_key), **_compact(limit=limit, payment_intent=payment_intent)
        )

    def update_checkout_session(self, session_id: str, api_key: Optional[str] = None, **fields):
        return stripe.checkout.Session.modify(session_id, api_key=self._key(api_key), **fields)

    # --- Payment intents ---

    def create_payment_intent(
        self,
        amount_in_cents: int,
        currency: str = "usd",
        customer_id: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
        automatic_payment_methods: bool = True,
        api_key: Optional[str] = None,
    ):
        params = _compact(
            customer=customer_id,
            description=description,
            automatic_payment_methods={"enabled": True} if automatic_payment_methods else None,
        )
        return stripe.PaymentIntent.create(
            amount=amount_in_cents,
            currency=currency or "usd",
            metadata=metadata or {},
            api_key=self._key(api_key),
            **params
        )

    def retrieve_payment_intent(self, payment_intent_id: str, api_key: Optional[str] = None):
        return stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self._key(api_key))

    def list_payment_intents(self, limit: Optional[int] = None, customer: Optional[str] = None,
                             api_key: Optional[str] = None):
        return stripe.PaymentIntent.list(api_key=self._key(api_key), **_compact(limit=limit, customer=customer))

    def update_payment_intent(self, payment_intent_id: str, api_key: Optional[str] = None, **fields):
        return stripe.PaymentIntent.modify(payment_intent_id, api_key=self._key(api_key), **fields)

    # --- Products ---

    def create_product(self, name: str, id: Optional[str] = None, description: Optional[str] = None,
                       metadata: Optional[dict] = None, api_key: Optional[str] = None):
        key = self._key(api_key)
        try:
            return stripe.Product.create(
                name=name, metadata=metadata or {}, api_key=key,
                **_compact(id=id, description=description)
            )
        except stripe.StripeError as err:
            # Creating with a caller-chosen id is idempotent
            if id and _already_exists(err):
                logger.info("stripe_product_exists", product_id=id)
                return stripe.Product.retrieve(id, api_key=key)
            raise

    def retrieve_product(self, product_id: str, api_key: Optional[str] = None):
        return stripe.Product.retrieve(product_id, api_key=self._key(api_key))

    def list_products(self, active: Optional[bool] = None, limit: Optional[int] = None,
                      api_key: Optional[str] = None):
        return stripe.Product.list(api_key=self._key(api_key), **_compact(active=active, limit=limit))

    def update_product(self, product_id: str, api_key: Optional[str] = None, **fields):
        return stripe.Product.modify(product_id, api_key=self._key(api_key), **fields)

    # --- Prices ---

    def create_price(self, product_id: str, unit_amount_in_cents: int, currency: str = "usd",
                     recurring: Optional[dict] = None, metadata: Optional[dict] = None,
                     api_key: Optional[str] = None):
        params = {}
        if recurring:
            params["recurring"] = {
                "interval": recurring["interval"],
                "interval_count": recurring.get("interval_count") or 1,
            }
        return stripe.Price.create(
            product=product_id,
            unit_amount=unit_amount_in_cents,
            currency=currency or "usd",
            metadata=metadata or {},
            api_key=self._key(api_key),
            **params
        )

    def retrieve_price(self, price_id: str, api_key: Optional[str] = None):
        return stripe.Price.retrieve(price_id, api_key=self._key(api_key))

    def list_prices(self, product: Optional[str] = None, active: Optional[bool] = None,
                    limit: Optional[int] = None, api_key: Optional[str] = None):
        return stripe.Price.list(api_key=self._key(api_key), **_compact(product=product, active=active, limit=limit))

    def update_price(self, price_id: str, api_key: Optional[str] = None, **fields):
        return stripe.Price.modify(price_id, api_key=self._key(api_key), **fields)

    # --- Coupons ---

    def create_coupon(self, id: Optional[str] = None, name: Optional[str] = None,
                      percent_off: Optional[float] = None, amount_off_in_cents: Optional[int] = None,
                      currency: Optional[str] = None, duration: str = "once",
                      duration_in_months: Optional[int] = None, max_redemptions: Optional[int] = None,
                      redeem_by: Optional[int] = None, metadata: Optional[dict] = None,
                      api_key: Optional[str] = None):
        key = self._key(api_key)
        try:
            return stripe.Coupon.create(
                duration=duration or "once",
                metadata=metadata or {},
                api_key=key,
                **_compact(
                    id=id,
                    name=name,
                    percent_off=percent_off,
                    amount_off=amount_off_in_cents,
                    currency=currency,
                    duration_in_months=duration_in_months,
                    max_redemptions=max_redemptions,
                    redeem_by=redeem_by,
                )
            )
        except stripe.StripeError as err:
            if id and _already_exists(err):
                logger.info("stripe_coupon_exists", coupon_id=id)
                return stripe.Coupon.retrieve(id, api_key=key)
            raise

    def retrieve_coupon(self, coupon_id: str, api_key: Optional[str] = None):
        return stripe.Coupon.retrieve(coupon_id, api_key=self._key(api_key))

    def list_coupons(self, limit: Optional[int] = None, api_key: Optional[str] = None):
        return stripe.Coupon.list(api_key=self._key(api_key), **_compact(limit=limit))

    def update_coupon(self, coupon_id: str, api_key: Optional[str] = None, **fields):
        return stripe.Coupon.modify(coupon_id, api_key=self._key(api_key), **fields)

    def delete_coupon(self, coupon_id: str, api_key: Optional[str] = None):
        return stripe.Coupon.delete(coupon_id, api_key=self._key(api_key))

    # --- Customers ---

    def create_customer(self, email: Optional[str] = None, name: Optional[str] = None,
                        description: Optional[str] = None, metadata: Optional[dict] = None,
                        api_key: Optional[str] = None):
        return stripe.Customer.create(
            api_key=self._key(api_key),
            **_compact(email=email, name=name, description=description, metadata=metadata)
        )

    def retrieve_customer(self, customer_id: str, api_key: Optional[str] = None):
        return stripe.Customer.retrieve(customer_id, api_key=self._key(api_key))

    def list_customers(self, email: Optional[str] = None, limit: Optional[int] = None,
                       api_key: Optional[str] = None):
        return stripe.Customer.list(api_key=self._key(api_key), **_compact(email=email, limit=limit))

    def update_customer(self, customer_id: str, api_key: Optional[str] = None, **fields):
        return stripe.Customer.modify(customer_id, api_key=self._key(api_key), **fields)

    # --- Webhooks ---

    def verify_webhook(self, payload: bytes, signature: str, secret: str):
        """Verify the signature over the raw body and return the parsed event."""
        try:
            return stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as err:
            raise WebhookVerificationError("Invalid payload") from err
        except stripe.SignatureVerificationError as err:
            raise WebhookVerificationError("Invalid signature") from err
